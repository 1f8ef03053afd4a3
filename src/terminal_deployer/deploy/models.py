"""Models for the backup, stop, replace, start deployment cycle."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, PrivateAttr

from terminal_deployer.archive.temporary import TemporaryArtifact


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ArtifactSource(str, Enum):
    REMOTE = "remote"
    LOCAL = "local"
    DEFAULT = "default"
    INTERACTIVE = "interactive"


class ArtifactReference(BaseModel):
    """A locally addressable archive plus where it came from.

    Only remote-fetched references are owned; ``release()`` is a no-op for
    files the caller supplied.
    """

    path: str
    source: ArtifactSource
    owned: bool = False
    _temporary: Optional[TemporaryArtifact] = PrivateAttr(default=None)

    @classmethod
    def from_temporary(cls, artifact: TemporaryArtifact) -> "ArtifactReference":
        ref = cls(path=str(artifact.path), source=ArtifactSource.REMOTE, owned=True)
        ref._temporary = artifact
        return ref

    def release(self) -> None:
        if self.owned and self._temporary is not None:
            self._temporary.release()


class DeploymentPolicy(BaseModel):
    """Which artifact sources a deployment may use.

    ``require_remote`` makes a failed remote fetch fatal instead of falling
    back to local resolution.
    """

    allow_local_fallback: bool = True
    require_remote: bool = False
    interactive: bool = False

    @classmethod
    def from_settings(cls, settings, interactive: bool = False) -> "DeploymentPolicy":
        return cls(
            allow_local_fallback=settings.allow_local_fallback,
            require_remote=settings.require_remote,
            interactive=interactive,
        )


class DeploymentStep(str, Enum):
    RESOLVE = "resolve"
    BACKUP = "backup"
    STOP_SERVICE = "stop_service"
    REPLACE = "replace"
    START_SERVICE = "start_service"
    DONE = "done"


class DeploymentStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class ServiceCommandResult(BaseModel):
    action: str
    name: str
    available: bool = True
    exit_code: Optional[int] = None
    stdout: str = ""
    stderr: str = ""
    message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.available and self.exit_code in (0, None)


class DeploymentWarning(BaseModel):
    step: DeploymentStep
    message: str
    path: Optional[str] = None


class DeploymentRecord(BaseModel):
    deploymentId: str
    target_dir: str
    site_name: str
    status: DeploymentStatus = DeploymentStatus.PENDING
    step: DeploymentStep = DeploymentStep.RESOLVE
    completed_steps: List[DeploymentStep] = Field(default_factory=list)
    artifact: Optional[ArtifactReference] = None
    backup_path: Optional[str] = None
    backup_skipped: bool = False
    service_results: List[ServiceCommandResult] = Field(default_factory=list)
    warnings: List[DeploymentWarning] = Field(default_factory=list)
    error: Optional[str] = None
    failed_step: Optional[DeploymentStep] = None
    createdAt: datetime = Field(default_factory=_utcnow)
    updatedAt: datetime = Field(default_factory=_utcnow)

    @property
    def succeeded(self) -> bool:
        return self.status == DeploymentStatus.SUCCEEDED

    def enter(self, step: DeploymentStep) -> None:
        self.status = DeploymentStatus.RUNNING
        self.step = step
        self.updatedAt = _utcnow()

    def complete(self, step: DeploymentStep) -> None:
        self.completed_steps.append(step)
        self.updatedAt = _utcnow()

    def warn(self, step: DeploymentStep, message: str, path: Optional[str] = None) -> None:
        self.warnings.append(DeploymentWarning(step=step, message=message, path=path))
        self.updatedAt = _utcnow()

    def fail(self, step: DeploymentStep, error: str) -> None:
        self.status = DeploymentStatus.FAILED
        self.failed_step = step
        self.error = error
        self.updatedAt = _utcnow()

    def finish(self) -> None:
        if self.status != DeploymentStatus.FAILED:
            self.status = DeploymentStatus.SUCCEEDED
            self.step = DeploymentStep.DONE
            self.completed_steps.append(DeploymentStep.DONE)
        self.updatedAt = _utcnow()
