"""Transient artifact files that are deleted exactly once."""

from __future__ import annotations

import os
import tempfile
import threading
import uuid
from pathlib import Path
from typing import BinaryIO, Callable, Optional, TypeVar, Union

import structlog

logger = structlog.get_logger()

T = TypeVar("T")


class TemporaryArtifact:
    """A uniquely named file in a shared temp area, owned by one caller.

    The name carries a uuid4 suffix, which is the only isolation between
    concurrent users of the same directory.
    """

    def __init__(
        self,
        directory: Optional[Union[str, Path]] = None,
        prefix: str = "artifact_",
        suffix: str = ".zip",
    ):
        base = Path(directory) if directory else Path(tempfile.gettempdir())
        base.mkdir(parents=True, exist_ok=True)
        self.path = base / f"{prefix}{uuid.uuid4().hex}{suffix}"
        self._released = False
        self._lock = threading.Lock()

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> bool:
        """Delete the backing file once; returns True if nothing is left behind.

        Deletion failures are logged and swallowed.
        """
        with self._lock:
            if self._released:
                return not self.path.exists()
            self._released = True
        try:
            os.remove(self.path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("Failed to delete temporary artifact", path=str(self.path), error=str(e))
            return False
        return True

    def __enter__(self) -> "TemporaryArtifact":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()

    def __repr__(self) -> str:
        return f"TemporaryArtifact(path={str(self.path)!r}, released={self._released})"


def with_temporary_artifact(
    producer: Callable[[Path], object],
    consumer: Callable[[BinaryIO], T],
    *,
    directory: Optional[Union[str, Path]] = None,
    suffix: str = ".zip",
) -> T:
    """Populate a temporary file with ``producer`` and hand it to ``consumer``.

    The file is removed when the consumer returns or raises, and also when
    the producer fails after writing part of it.
    """
    with TemporaryArtifact(directory, suffix=suffix) as artifact:
        producer(artifact.path)
        with open(artifact.path, "rb") as handle:
            return consumer(handle)
