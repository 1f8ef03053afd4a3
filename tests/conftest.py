"""
Pytest configuration and fixtures for Terminal Deployer tests.
"""

import zipfile
from pathlib import Path
from typing import Dict, Union

import pytest


CONFIG_ENV_VARS = (
    "ARTIFACTS_ROOT",
    "TEMP_DIR",
    "ARTIFACT_API_BASE_URL",
    "ARTIFACT_API_TERMINAL_ID",
    "ARTIFACT_API_TAG",
    "LOCAL_ZIP_PATH",
    "DEFAULT_ZIP_PATH",
    "TARGET_DIR",
    "BACKUP_DIR",
    "REQUIRE_REMOTE",
    "ALLOW_LOCAL_FALLBACK",
    "SERVICE_CONTROL",
    "DEPLOYER_CONFIG_FILE",
)


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path, monkeypatch):
    """
    Run every test from an empty working directory with no deployer env vars,
    so .env, deployer.yaml and artifacts/packages/site.zip never leak in.
    """
    for name in CONFIG_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    workdir = tmp_path / "cwd"
    workdir.mkdir()
    monkeypatch.chdir(workdir)
    return workdir


def make_zip(path: Path, files: Dict[str, Union[str, bytes]]) -> Path:
    """Write a zip whose entries are exactly ``files`` (names kept verbatim)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(path, "w", zipfile.ZIP_DEFLATED) as zf:
        for name, data in files.items():
            zf.writestr(name, data)
    return path


def read_zip(path: Path) -> Dict[str, bytes]:
    with zipfile.ZipFile(path) as zf:
        return {info.filename: zf.read(info) for info in zf.infolist()}


def tree(root: Path) -> Dict[str, bytes]:
    """Relative-path -> bytes map of every file under root."""
    return {
        p.relative_to(root).as_posix(): p.read_bytes()
        for p in sorted(root.rglob("*"))
        if p.is_file()
    }
