"""Deployment side: resolve an artifact, back up, stop, replace, start."""

from .backup import create_backup, latest_backup, list_backups, restore_backup
from .fetch import build_artifact_url, fetch_artifact_to_path
from .models import (
    ArtifactReference,
    ArtifactSource,
    DeploymentPolicy,
    DeploymentRecord,
    DeploymentStatus,
    DeploymentStep,
    ServiceCommandResult,
)
from .resolver import ArtifactResolver
from .sequencer import DeploymentSequencer
from .service_control import (
    AppCmdServiceController,
    CommandServiceController,
    NoopServiceController,
    ServiceController,
    build_service_controller,
)

__all__ = [
    "ArtifactReference",
    "ArtifactResolver",
    "ArtifactSource",
    "AppCmdServiceController",
    "CommandServiceController",
    "DeploymentPolicy",
    "DeploymentRecord",
    "DeploymentSequencer",
    "DeploymentStatus",
    "DeploymentStep",
    "NoopServiceController",
    "ServiceCommandResult",
    "ServiceController",
    "build_artifact_url",
    "build_service_controller",
    "create_backup",
    "fetch_artifact_to_path",
    "latest_backup",
    "list_backups",
    "restore_backup",
]
