"""Backup snapshots of a deployment target."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, List, Optional

import structlog

from terminal_deployer.archive.directory import replace_directory_contents, zip_directory
from terminal_deployer.core.exceptions import NotFoundError, PartialCleanupWarning, map_os_error

logger = structlog.get_logger()

BACKUP_PREFIX = "backup_"
BACKUP_SUFFIX = ".zip"
TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def next_backup_path(backup_dir: Path, now: datetime) -> Path:
    """Sortable, unused snapshot name for ``now``.

    Same-second collisions get a zero-padded counter, which still sorts after
    the plain name.
    """
    stamp = now.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)
    candidate = backup_dir / f"{BACKUP_PREFIX}{stamp}{BACKUP_SUFFIX}"
    counter = 0
    while candidate.exists():
        counter += 1
        candidate = backup_dir / f"{BACKUP_PREFIX}{stamp}_{counter:03d}{BACKUP_SUFFIX}"
    return candidate


def create_backup(
    target_dir: Path,
    backup_dir: Path,
    clock: Callable[[], datetime] = utc_now,
) -> Path:
    """Archive the current contents of ``target_dir`` into a new snapshot."""
    backup_dir = Path(backup_dir)
    try:
        backup_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise map_os_error(e, f"Failed to create backup directory {backup_dir}") from e
    backup_path = next_backup_path(backup_dir, clock())
    entries = zip_directory(Path(target_dir), backup_path)
    logger.info("Backup snapshot written", path=str(backup_path), entries=entries)
    return backup_path


def list_backups(backup_dir: Path) -> List[Path]:
    """Snapshots in ``backup_dir``, oldest first."""
    backup_dir = Path(backup_dir)
    if not backup_dir.is_dir():
        return []
    return sorted(
        p for p in backup_dir.iterdir()
        if p.is_file() and p.name.startswith(BACKUP_PREFIX) and p.name.endswith(BACKUP_SUFFIX)
    )


def latest_backup(backup_dir: Path) -> Optional[Path]:
    backups = list_backups(backup_dir)
    return backups[-1] if backups else None


def restore_backup(backup_path: Path, target_dir: Path) -> List[PartialCleanupWarning]:
    """Manually roll ``target_dir`` back to a snapshot."""
    backup_path = Path(backup_path)
    if not backup_path.is_file():
        raise NotFoundError(f"Backup snapshot not found: {backup_path}", code="BACKUP_NOT_FOUND")
    logger.info("Restoring backup snapshot", backup=str(backup_path), target=str(target_dir))
    return replace_directory_contents(Path(target_dir), backup_path)
