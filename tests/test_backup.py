from datetime import datetime, timezone
from pathlib import Path

import pytest

from conftest import make_zip, read_zip, tree
from terminal_deployer.core.exceptions import NotFoundError
from terminal_deployer.deploy.backup import (
    create_backup,
    latest_backup,
    list_backups,
    next_backup_path,
    restore_backup,
)


NOW = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)


def test_backup_name_is_timestamped(tmp_path: Path):
    assert next_backup_path(tmp_path, NOW).name == "backup_20240102_030405.zip"


def test_same_second_backups_get_counter(tmp_path: Path):
    (tmp_path / "backup_20240102_030405.zip").write_bytes(b"")
    (tmp_path / "backup_20240102_030405_001.zip").write_bytes(b"")

    assert next_backup_path(tmp_path, NOW).name == "backup_20240102_030405_002.zip"


def test_create_backup_archives_target(tmp_path: Path):
    target = tmp_path / "site"
    (target / "bin").mkdir(parents=True)
    (target / "bin" / "app.dll").write_bytes(b"dll")
    (target / "index.html").write_text("v1")

    path = create_backup(target, tmp_path / "backups", clock=lambda: NOW)

    assert path.parent == tmp_path / "backups"
    assert read_zip(path) == {"bin/app.dll": b"dll", "index.html": b"v1"}


def test_list_and_latest_are_chronological(tmp_path: Path):
    backups = tmp_path / "backups"
    backups.mkdir()
    for name in (
        "backup_20240102_030405_001.zip",
        "backup_20231231_235959.zip",
        "backup_20240102_030405.zip",
        "notes.txt",
    ):
        (backups / name).write_bytes(b"")

    names = [p.name for p in list_backups(backups)]

    assert names == [
        "backup_20231231_235959.zip",
        "backup_20240102_030405.zip",
        "backup_20240102_030405_001.zip",
    ]
    assert latest_backup(backups).name == "backup_20240102_030405_001.zip"


def test_no_backups(tmp_path: Path):
    assert list_backups(tmp_path / "missing") == []
    assert latest_backup(tmp_path / "missing") is None


def test_restore_replaces_target(tmp_path: Path):
    target = tmp_path / "site"
    target.mkdir()
    (target / "new.html").write_text("new")
    snapshot = make_zip(tmp_path / "backups" / "backup_20240102_030405.zip", {"old.html": "old"})

    warnings = restore_backup(snapshot, target)

    assert warnings == []
    assert tree(target) == {"old.html": b"old"}


def test_restore_missing_snapshot(tmp_path: Path):
    target = tmp_path / "site"
    target.mkdir()
    (target / "keep.html").write_text("keep")

    with pytest.raises(NotFoundError):
        restore_backup(tmp_path / "nope.zip", target)

    assert tree(target) == {"keep.html": b"keep"}
