"""Carve one terminal's folder out of a master archive."""

from __future__ import annotations

import os
import threading
import zipfile
import zlib
from pathlib import Path, PurePosixPath
from typing import BinaryIO, Optional, Set

import structlog

from terminal_deployer.core.exceptions import (
    NotFoundError,
    OperationCancelledError,
    map_os_error,
)

logger = structlog.get_logger()

COPY_BUFFER_SIZE = 64 * 1024


def normalize_entry_name(name: str) -> str:
    """Forward-slash form of an archive entry name."""
    return name.replace("\\", "/")


def _is_unsafe(relative: str) -> bool:
    path = PurePosixPath(relative)
    return relative.startswith("/") or ".." in path.parts


def extract_subset(
    source: Path,
    prefix: str,
    dest: Path,
    *,
    cancel_event: Optional[threading.Event] = None,
) -> int:
    """Write every entry under ``prefix/`` of ``source`` into a new archive.

    Entry names in the output have the prefix and its separator stripped.
    Directory placeholders count as matches but are not written.

    Returns:
        Number of entries written

    Raises:
        NotFoundError: source missing, or nothing under the prefix
        AccessError: permission denied reading source or writing dest
        ArtifactIOError: corrupt source or any other I/O fault
        OperationCancelledError: cancel_event was set mid-stream
    """
    source = Path(source)
    dest = Path(dest)
    marker = normalize_entry_name(prefix).strip("/") + "/"

    if not source.is_file():
        raise NotFoundError(f"Source archive not found: {source}", code="SOURCE_NOT_FOUND")

    matched = False
    written = 0
    seen: Set[str] = set()
    try:
        with zipfile.ZipFile(source, "r") as src, zipfile.ZipFile(dest, "w", zipfile.ZIP_DEFLATED) as out:
            for info in src.infolist():
                if cancel_event is not None and cancel_event.is_set():
                    raise OperationCancelledError("Subset extraction cancelled", code="CANCELLED")

                name = normalize_entry_name(info.filename)
                if not name.startswith(marker):
                    continue
                matched = True

                relative = name[len(marker):]
                if not relative or relative.endswith("/"):
                    continue
                if _is_unsafe(relative):
                    logger.warning("Skipping unsafe archive entry", entry=name)
                    continue
                if relative in seen:
                    logger.warning("Skipping duplicate archive entry", entry=name)
                    continue
                seen.add(relative)

                target = zipfile.ZipInfo(relative, date_time=info.date_time)
                target.external_attr = info.external_attr
                target.compress_type = zipfile.ZIP_DEFLATED
                with src.open(info, "r") as reader, out.open(target, "w") as writer:
                    _copy_entry(reader, writer, cancel_event)
                written += 1
    except (zipfile.BadZipFile, zipfile.LargeZipFile, zlib.error, EOFError) as e:
        _discard(dest)
        raise map_os_error(e, f"Corrupt source archive {source.name}") from e
    except OSError as e:
        _discard(dest)
        raise map_os_error(e, f"Failed to extract '{prefix}' from {source.name}") from e
    except BaseException:
        _discard(dest)
        raise

    if not matched:
        _discard(dest)
        raise NotFoundError(f"No entries under '{prefix}' in {source.name}", code="PREFIX_NOT_FOUND")

    logger.info("Extracted archive subset", source=source.name, prefix=prefix, entries=written)
    return written


def _copy_entry(reader: BinaryIO, writer: BinaryIO, cancel_event: Optional[threading.Event]) -> None:
    while True:
        if cancel_event is not None and cancel_event.is_set():
            raise OperationCancelledError("Subset extraction cancelled", code="CANCELLED")
        chunk = reader.read(COPY_BUFFER_SIZE)
        if not chunk:
            return
        writer.write(chunk)


def _discard(path: Path) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning("Failed to discard partial archive", path=str(path), error=str(e))
