"""Archive a directory tree, and wipe-and-repopulate a directory from an archive."""

from __future__ import annotations

import os
import shutil
import zipfile
import zlib
from pathlib import Path
from typing import List

import structlog

from terminal_deployer.core.exceptions import (
    ArtifactIOError,
    NotFoundError,
    PartialCleanupWarning,
    map_os_error,
)

logger = structlog.get_logger()


def zip_directory(source_dir: Path, zip_path: Path) -> int:
    """Archive the whole tree under ``source_dir`` into ``zip_path``.

    Names are relative to ``source_dir`` (the folder itself is not included)
    and use forward slashes. Empty directories are kept as placeholders.
    An existing ``zip_path`` is replaced.

    Returns:
        Number of entries written
    """
    source_dir = Path(source_dir)
    zip_path = Path(zip_path)
    if not source_dir.is_dir():
        raise NotFoundError(f"Source directory not found: {source_dir}", code="SOURCE_NOT_FOUND")

    entries = 0
    try:
        zip_path.parent.mkdir(parents=True, exist_ok=True)
        if zip_path.exists():
            zip_path.unlink()
        with zipfile.ZipFile(zip_path, "w", zipfile.ZIP_DEFLATED, compresslevel=9) as zf:
            for root, dirs, files in os.walk(source_dir):
                dirs.sort()
                root_path = Path(root)
                rel_root = root_path.relative_to(source_dir)
                if rel_root.parts and not dirs and not files:
                    zf.write(root_path, rel_root.as_posix() + "/")
                    entries += 1
                for name in sorted(files):
                    file_path = root_path / name
                    zf.write(file_path, (rel_root / name).as_posix())
                    entries += 1
    except (OSError, zipfile.LargeZipFile) as e:
        _remove_partial(zip_path)
        raise map_os_error(e, f"Failed to archive {source_dir}") from e
    except BaseException:
        _remove_partial(zip_path)
        raise

    return entries


def extract_archive(zip_path: Path, dest_dir: Path) -> int:
    """Safely extract ``zip_path`` into ``dest_dir``, preventing zip-slip.

    Existing files are overwritten. Returns the number of files written.
    """
    zip_path = Path(zip_path)
    dest_dir = Path(dest_dir)
    files = 0
    try:
        dest_dir.mkdir(parents=True, exist_ok=True)
        base = dest_dir.resolve()
        with zipfile.ZipFile(zip_path, "r") as zf:
            for member in zf.infolist():
                name = member.filename.replace("\\", "/")
                member_path = Path(name)
                if name.startswith("/") or member_path.is_absolute() or ".." in member_path.parts:
                    raise ArtifactIOError(f"Archive contains unsafe path: {name}", code="UNSAFE_ENTRY")
                target = (base / member_path).resolve()
                if target != base and base not in target.parents:
                    raise ArtifactIOError(f"Archive entry escapes destination: {name}", code="UNSAFE_ENTRY")
                if name.endswith("/"):
                    target.mkdir(parents=True, exist_ok=True)
                    continue
                target.parent.mkdir(parents=True, exist_ok=True)
                with zf.open(member, "r") as src, open(target, "wb") as out:
                    shutil.copyfileobj(src, out)
                files += 1
    except (zipfile.BadZipFile, zipfile.LargeZipFile, zlib.error, EOFError) as e:
        raise ArtifactIOError(f"Corrupt archive {zip_path.name}: {e}", code="CORRUPT_ARCHIVE") from e
    except OSError as e:
        raise map_os_error(e, f"Failed to extract {zip_path.name}") from e
    return files


def clear_directory(dest_dir: Path) -> List[PartialCleanupWarning]:
    """Delete every immediate child of ``dest_dir``, recursively.

    A child that cannot be removed is logged and reported, never raised.
    """
    warnings: List[PartialCleanupWarning] = []
    dest_dir = Path(dest_dir)
    for child in sorted(dest_dir.iterdir()):
        try:
            if child.is_dir() and not child.is_symlink():
                shutil.rmtree(child)
            else:
                child.unlink()
        except OSError as e:
            warning = PartialCleanupWarning(str(child), str(e))
            logger.warning("Could not delete item while clearing directory", path=str(child), error=str(e))
            warnings.append(warning)
    return warnings


def replace_directory_contents(dest_dir: Path, archive_path: Path) -> List[PartialCleanupWarning]:
    """Clear ``dest_dir`` and extract ``archive_path`` into it.

    Returns:
        Cleanup warnings from the clear phase

    Raises:
        NotFoundError: archive_path does not exist
        ArtifactIOError: extraction failed (corrupt archive, disk full)
    """
    archive_path = Path(archive_path)
    dest_dir = Path(dest_dir)
    if not archive_path.is_file():
        raise NotFoundError(f"Archive to deploy not found: {archive_path}", code="ARCHIVE_NOT_FOUND")

    try:
        dest_dir.mkdir(parents=True, exist_ok=True)
        warnings = clear_directory(dest_dir)
    except OSError as e:
        raise map_os_error(e, f"Failed to prepare {dest_dir}") from e
    files = extract_archive(archive_path, dest_dir)
    logger.info(
        "Directory contents replaced",
        dest=str(dest_dir),
        files=files,
        cleanup_warnings=len(warnings),
    )
    return warnings


def _remove_partial(path: Path) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning("Failed to remove partial archive", path=str(path), error=str(e))
