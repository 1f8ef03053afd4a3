"""Custom exceptions for Terminal Deployer."""

from typing import Optional


class DeployerError(Exception):
    """Base exception for all deployer errors."""

    http_status: int = 500

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.code = code


class ValidationError(DeployerError):
    """Malformed terminal identifier or tag."""

    http_status = 400


class NotFoundError(DeployerError):
    """Missing source archive, subtree or deployable artifact."""

    http_status = 404


class AccessError(DeployerError):
    """Permission denied reading or writing an artifact."""

    http_status = 403


class ArtifactIOError(DeployerError):
    """Generic I/O or transport fault."""
    pass


class ArtifactFetchError(ArtifactIOError):
    """Remote artifact download failed."""
    pass


class ResolutionError(DeployerError):
    """No artifact source produced a deployable archive."""
    pass


class ConfigurationError(DeployerError):
    """Configuration error."""
    pass


class DeploymentInProgressError(DeployerError):
    """Another deployment holds the lock for the same target."""

    http_status = 409


class OperationCancelledError(DeployerError):
    """Caller cancelled an in-flight transfer or extraction."""
    pass


class ServiceControlError(DeployerError):
    """Service-control command could not be invoked."""
    pass


class PartialCleanupWarning(UserWarning):
    """A single item could not be removed while clearing a directory.

    Never raised; collected and logged so callers can inspect them.
    """

    def __init__(self, path: str, reason: str):
        super().__init__(f"Could not delete '{path}': {reason}")
        self.path = path
        self.reason = reason


def map_os_error(exc: BaseException, message: str) -> DeployerError:
    """Translate a filesystem/zip exception into the deployer taxonomy."""
    if isinstance(exc, DeployerError):
        return exc
    if isinstance(exc, FileNotFoundError):
        return NotFoundError(f"{message}: not found", code="NOT_FOUND")
    if isinstance(exc, PermissionError):
        return AccessError(f"{message}: permission denied", code="ACCESS_DENIED")
    return ArtifactIOError(f"{message}: {exc}", code="IO_ERROR")
