"""Per-terminal artifact lookup over the artifact store root.

Layout::

    <root>/<tag>.zip                 master archive, one folder per terminal
    <root>/<terminal>/<tag>.zip      prepared archive for one terminal

A prepared archive wins; otherwise the terminal's folder is carved out of the
master archive into a temporary file.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union

import structlog
from prometheus_client import Counter

from terminal_deployer.archive.subset import extract_subset
from terminal_deployer.archive.temporary import TemporaryArtifact
from terminal_deployer.core.exceptions import (
    AccessError,
    ArtifactIOError,
    ConfigurationError,
    NotFoundError,
    OperationCancelledError,
)
from terminal_deployer.utils.validation import normalize_tag, validate_identifier

logger = structlog.get_logger()

ARTIFACT_EXPORTS = Counter(
    "terminal_artifact_exports_total",
    "Artifacts handed out by the store",
    ["mode", "outcome"],
)


@dataclass
class ServedArtifact:
    """A file ready to stream; call ``release()`` once the body is sent."""

    path: Path
    filename: str
    temporary: Optional[TemporaryArtifact] = field(default=None, repr=False)

    def release(self) -> None:
        if self.temporary is not None:
            self.temporary.release()


class ArtifactStore:
    """Read-only view over the artifact store root."""

    def __init__(self, root: Optional[Union[str, Path]], temp_dir: Optional[Union[str, Path]] = None):
        self.root = Path(root) if root else None
        self.temp_dir = Path(temp_dir) if temp_dir else None

    def open(
        self,
        terminal_id: str,
        tag: str,
        cancel_event: Optional[threading.Event] = None,
    ) -> ServedArtifact:
        """Locate or build the archive for ``terminal_id`` at ``tag``.

        Error messages only echo the caller-supplied identifiers.
        """
        validate_identifier(terminal_id, "terminal id")
        tag = normalize_tag(tag)
        if self.root is None:
            raise ConfigurationError("Artifacts root not configured", code="ROOT_NOT_CONFIGURED")

        filename = f"{terminal_id}-{tag}.zip"
        prepared = self.root / terminal_id / f"{tag}.zip"
        if prepared.is_file():
            self._check_readable(prepared, tag)
            ARTIFACT_EXPORTS.labels(mode="prepared", outcome="ok").inc()
            logger.info("Serving prepared artifact", terminal_id=terminal_id, tag=tag)
            return ServedArtifact(path=prepared, filename=filename)

        master = self.root / f"{tag}.zip"
        if not master.is_file():
            ARTIFACT_EXPORTS.labels(mode="none", outcome="not_found").inc()
            raise NotFoundError(f"Artifact '{tag}' not found", code="ARTIFACT_NOT_FOUND")

        artifact = TemporaryArtifact(self.temp_dir, prefix=f"{terminal_id}_", suffix=".zip")
        try:
            entries = extract_subset(master, terminal_id, artifact.path, cancel_event=cancel_event)
        except NotFoundError as e:
            artifact.release()
            ARTIFACT_EXPORTS.labels(mode="subset", outcome="not_found").inc()
            raise NotFoundError(
                f"Terminal '{terminal_id}' not found in artifact '{tag}'", code="TERMINAL_NOT_FOUND"
            ) from e
        except AccessError as e:
            artifact.release()
            ARTIFACT_EXPORTS.labels(mode="subset", outcome="forbidden").inc()
            raise AccessError(f"Permission denied reading artifact '{tag}'", code=e.code) from e
        except OperationCancelledError:
            artifact.release()
            raise
        except ArtifactIOError as e:
            artifact.release()
            ARTIFACT_EXPORTS.labels(mode="subset", outcome="error").inc()
            raise ArtifactIOError(f"Failed to read artifact '{tag}'", code=e.code) from e
        except BaseException:
            artifact.release()
            raise

        ARTIFACT_EXPORTS.labels(mode="subset", outcome="ok").inc()
        logger.info("Built terminal artifact from master archive", terminal_id=terminal_id, tag=tag, entries=entries)
        return ServedArtifact(path=artifact.path, filename=filename, temporary=artifact)

    @staticmethod
    def _check_readable(path: Path, tag: str) -> None:
        try:
            with open(path, "rb"):
                pass
        except PermissionError as e:
            raise AccessError(f"Permission denied reading artifact '{tag}'", code="ACCESS_DENIED") from e
        except OSError as e:
            raise ArtifactIOError(f"Failed to read artifact '{tag}'", code="IO_ERROR") from e
