"""Configuration management for Terminal Deployer."""

import os
from typing import Optional, Tuple, Type

from pydantic import Field, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

CONFIG_FILE_ENV = "DEPLOYER_CONFIG_FILE"
DEFAULT_CONFIG_FILE = "deployer.yaml"

SERVICE_CONTROL_MODES = ("auto", "iis", "command", "none")


class Settings(BaseSettings):
    """Deployer and artifact server configuration settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Server configuration
    host: str = Field(default_factory=lambda: os.getenv("HOST", "0.0.0.0"), description="Server host")
    port: int = Field(default_factory=lambda: int(os.getenv("PORT", "8000")), description="Server port")
    workers: int = Field(1, description="Number of worker processes")
    reload: bool = Field(False, description="Enable auto-reload in development")

    # Artifact store (serving side)
    artifacts_root: Optional[str] = Field(
        None,
        description="Root directory holding master archives and one folder per terminal",
    )
    temp_dir: Optional[str] = Field(
        None,
        description="Directory for transient artifacts (defaults to the system temp dir)",
    )

    # Remote artifact API (deploying side)
    artifact_api_base_url: Optional[str] = Field(None, description="Artifact API base URL")
    artifact_api_terminal_id: Optional[str] = Field(None, description="Terminal identifier to fetch")
    artifact_api_tag: Optional[str] = Field(None, description="Tag or zip name to fetch")
    fetch_timeout_seconds: float = Field(60.0, description="Total download timeout across retries")
    fetch_max_retries: int = Field(3, description="Maximum download attempts")
    fetch_backoff_base: float = Field(0.3, description="Base delay for exponential backoff")
    max_artifact_size_mb: int = Field(512, description="Maximum downloaded artifact size in MB")

    # Deployment
    site_name: str = Field("Default Web Site", description="Service (site) name to stop and start")
    target_dir: str = Field(r"C:\inetpub\wwwroot", description="Live directory replaced on deploy")
    local_zip_path: Optional[str] = Field(None, description="Configured local package zip")
    default_zip_path: str = Field(
        os.path.join("artifacts", "packages", "site.zip"),
        description="Conventional package location checked after the configured one",
    )
    backup_dir: str = Field(
        os.path.join("artifacts", "backups"),
        description="Directory receiving backup snapshots",
    )
    require_remote: bool = Field(False, description="Treat remote fetch failure as fatal")
    allow_local_fallback: bool = Field(True, description="Allow configured/default local zips")

    # Service control
    service_control: str = Field("auto", description="auto, iis, command or none")
    appcmd_path: str = Field(r"C:\Windows\System32\inetsrv\appcmd.exe", description="IIS appcmd executable")
    service_stop_command: Optional[str] = Field(None, description="Stop command template, e.g. 'systemctl stop {name}'")
    service_start_command: Optional[str] = Field(None, description="Start command template")

    # Observability
    log_level: str = Field("INFO")
    log_format: str = Field("json")
    metrics_enabled: bool = Field(True)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        """Layer an optional YAML file underneath env and .env values."""
        yaml_file = os.getenv(CONFIG_FILE_ENV, DEFAULT_CONFIG_FILE)
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlConfigSettingsSource(settings_cls, yaml_file=yaml_file),
            file_secret_settings,
        )

    @field_validator(
        "artifacts_root",
        "temp_dir",
        "artifact_api_base_url",
        "artifact_api_terminal_id",
        "artifact_api_tag",
        "local_zip_path",
        "service_stop_command",
        "service_start_command",
        mode="before",
    )
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        """Treat empty or whitespace-only values as unset."""
        if isinstance(v, str):
            v = v.strip()
            return v or None
        return v

    @field_validator("service_control")
    @classmethod
    def validate_service_control(cls, v: str) -> str:
        mode = v.strip().lower()
        if mode not in SERVICE_CONTROL_MODES:
            raise ValueError(f"service_control must be one of {', '.join(SERVICE_CONTROL_MODES)}, got: {v}")
        return mode

    @property
    def remote_configured(self) -> bool:
        """True when base URL, terminal id and tag are all present."""
        return bool(self.artifact_api_base_url and self.artifact_api_terminal_id and self.artifact_api_tag)

    @property
    def max_artifact_size_bytes(self) -> int:
        return self.max_artifact_size_mb * 1024 * 1024
