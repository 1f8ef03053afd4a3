"""Decide where the deployable archive comes from."""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Callable, Optional

import httpx

from terminal_deployer.archive.temporary import TemporaryArtifact
from terminal_deployer.core.config import Settings
from terminal_deployer.core.exceptions import (
    DeployerError,
    OperationCancelledError,
    ResolutionError,
    map_os_error,
)
from terminal_deployer.deploy.fetch import build_artifact_url, fetch_artifact_to_path
from terminal_deployer.deploy.models import ArtifactReference, ArtifactSource, DeploymentPolicy
from terminal_deployer.utils.logging import StepLogger


class ArtifactResolver:
    """Resolves an ArtifactReference in strict priority order.

    1. remote artifact API (when base URL, terminal id and tag are set)
    2. configured local zip
    3. conventional default zip
    4. interactive prompt
    """

    def __init__(
        self,
        settings: Settings,
        policy: Optional[DeploymentPolicy] = None,
        *,
        prompt: Callable[[str], str] = input,
        transport: Optional[httpx.BaseTransport] = None,
        cancel_event: Optional[threading.Event] = None,
        step_logger: Optional[StepLogger] = None,
    ):
        self.settings = settings
        self.policy = policy or DeploymentPolicy.from_settings(settings)
        self.prompt = prompt
        self.transport = transport
        self.cancel_event = cancel_event
        self.log = step_logger or StepLogger()

    def resolve(self) -> ArtifactReference:
        reference = self._try_remote()
        if reference is not None:
            return reference

        if self.policy.allow_local_fallback:
            reference = self._try_local()
            if reference is not None:
                return reference

        if self.policy.interactive:
            return self._prompt_for_path()

        raise ResolutionError("No deployable package found", code="NO_ARTIFACT")

    def _try_remote(self) -> Optional[ArtifactReference]:
        s = self.settings
        if not s.remote_configured:
            if self.policy.require_remote:
                raise ResolutionError("Remote artifact API is required but not configured", code="REMOTE_NOT_CONFIGURED")
            return None

        try:
            artifact = TemporaryArtifact(s.temp_dir, prefix="deployer_", suffix=".zip")
        except OSError as e:
            return self._remote_failed(map_os_error(e, "Cannot prepare download directory"))

        try:
            url = build_artifact_url(s.artifact_api_base_url, s.artifact_api_terminal_id, s.artifact_api_tag)
            self.log.info("Downloading package from API", url=url)
            fetch_artifact_to_path(
                url,
                artifact.path,
                max_size_bytes=s.max_artifact_size_bytes,
                total_timeout_sec=s.fetch_timeout_seconds,
                max_retries=s.fetch_max_retries,
                backoff_base=s.fetch_backoff_base,
                cancel_event=self.cancel_event,
                transport=self.transport,
            )
        except OperationCancelledError:
            artifact.release()
            raise
        except DeployerError as e:
            artifact.release()
            return self._remote_failed(e)
        except BaseException:
            artifact.release()
            raise

        self.log.ok("Downloaded package", path=str(artifact.path))
        return ArtifactReference.from_temporary(artifact)

    def _remote_failed(self, error: DeployerError) -> None:
        if self.policy.require_remote:
            self.log.error("Failed to download from API", error=str(error))
            raise ResolutionError(f"Remote artifact fetch failed: {error}", code="REMOTE_FAILED") from error
        self.log.warn("Failed to download from API; falling back to local resolution", error=str(error))
        return None

    def _try_local(self) -> Optional[ArtifactReference]:
        configured = self.settings.local_zip_path
        if configured and Path(configured).is_file():
            self.log.info("Using local zip", path=configured)
            return ArtifactReference(path=configured, source=ArtifactSource.LOCAL)

        default = self.settings.default_zip_path
        if default and Path(default).is_file():
            self.log.info("Using default local zip", path=default)
            return ArtifactReference(path=default, source=ArtifactSource.DEFAULT)
        return None

    def _prompt_for_path(self) -> ArtifactReference:
        self.log.step("No configured package found")
        try:
            answer = self.prompt("Enter path to package .zip: ")
        except EOFError:
            answer = ""
        path = (answer or "").strip().strip('"').strip()
        if not path or not Path(path).is_file():
            self.log.error("Package zip not found", path=path or None)
            raise ResolutionError("Package zip not found", code="NO_ARTIFACT")
        return ArtifactReference(path=path, source=ArtifactSource.INTERACTIVE)
