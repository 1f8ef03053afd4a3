from pathlib import Path

import pytest

from conftest import make_zip, read_zip, tree
from terminal_deployer.__main__ import main
from terminal_deployer.core.config import Settings


@pytest.fixture(autouse=True)
def no_service_control(monkeypatch):
    monkeypatch.setenv("SERVICE_CONTROL", "none")


def test_no_command_prints_help():
    assert main([]) == 2


def test_extract(tmp_path: Path):
    master = make_zip(tmp_path / "master.zip", {"A/x.txt": "1", "B/y.txt": "2"})
    out = tmp_path / "A.zip"

    assert main(["--log-format", "console", "extract", str(master), "A", str(out)]) == 0
    assert read_zip(out) == {"A/x.txt": b"1"}


def test_extract_missing_terminal_fails(tmp_path: Path):
    master = make_zip(tmp_path / "master.zip", {"A/x.txt": "1"})

    assert main(["extract", str(master), "C", str(tmp_path / "C.zip")]) == 1
    assert not (tmp_path / "C.zip").exists()


def test_extract_rejects_bad_identifier(tmp_path: Path):
    master = make_zip(tmp_path / "master.zip", {"A/x.txt": "1"})

    assert main(["extract", str(master), "../A", str(tmp_path / "out.zip")]) == 1


def test_deploy_backup_restore_cycle(tmp_path: Path):
    site = tmp_path / "site"
    site.mkdir()
    (site / "index.html").write_text("v1")
    package = make_zip(tmp_path / "pkg.zip", {"index.html": "v2", "app.js": "js"})
    backups = tmp_path / "backups"
    common = ["--target", str(site), "--backup-dir", str(backups)]

    assert main(["deploy", "--non-interactive", "--zip", str(package)] + common) == 0
    assert tree(site) == {"index.html": b"v2", "app.js": b"js"}
    snapshots = sorted(backups.glob("backup_*.zip"))
    assert len(snapshots) == 1

    assert main(["restore"] + common) == 0
    assert tree(site) == {"index.html": b"v1"}

    assert main(["backup"] + common) == 0
    assert len(list(backups.glob("backup_*.zip"))) == 2


def test_deploy_without_package_fails(tmp_path: Path):
    site = tmp_path / "site"
    site.mkdir()
    (site / "index.html").write_text("v1")

    code = main(["deploy", "--non-interactive", "--target", str(site), "--backup-dir", str(tmp_path / "b")])

    assert code == 1
    assert tree(site) == {"index.html": b"v1"}


def test_restore_without_snapshots(tmp_path: Path):
    assert main(["restore", "--target", str(tmp_path / "site"), "--backup-dir", str(tmp_path / "none")]) == 1


def test_serve_hands_log_options_to_the_server_factory(monkeypatch):
    # Registered with monkeypatch so the values exported by serve are undone
    monkeypatch.setenv("HOST", "127.0.0.1")
    monkeypatch.setenv("PORT", "8000")
    monkeypatch.setenv("LOG_LEVEL", "INFO")
    monkeypatch.setenv("LOG_FORMAT", "json")
    started = []
    monkeypatch.setattr("terminal_deployer.main.run", lambda settings: started.append(settings))

    code = main(["--log-level", "DEBUG", "--log-format", "console", "serve", "--port", "9001"])

    assert code == 0
    assert len(started) == 1
    rebuilt = Settings()
    assert rebuilt.log_level == "DEBUG"
    assert rebuilt.log_format == "console"
    assert rebuilt.port == 9001
