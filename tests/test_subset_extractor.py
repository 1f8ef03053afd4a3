import threading
import zipfile
from pathlib import Path

import pytest

from conftest import make_zip, read_zip
from terminal_deployer.archive.subset import extract_subset, normalize_entry_name
from terminal_deployer.core.exceptions import (
    ArtifactIOError,
    NotFoundError,
    OperationCancelledError,
)


def test_scenario_prefix_a(tmp_path: Path):
    master = make_zip(tmp_path / "master.zip", {"A/x.txt": "1", "A/sub/y.txt": "2", "B/z.txt": "3"})
    out = tmp_path / "out.zip"

    written = extract_subset(master, "A", out)

    assert written == 2
    assert read_zip(out) == {"x.txt": b"1", "sub/y.txt": b"2"}


def test_other_terminals_never_leak(tmp_path: Path):
    master = make_zip(tmp_path / "master.zip", {
        "A/x.txt": "a",
        "AB/x.txt": "ab",
        "B/A/x.txt": "nested",
        "x.txt": "root",
    })
    out = tmp_path / "out.zip"

    extract_subset(master, "A", out)

    assert read_zip(out) == {"x.txt": b"a"}


def test_backslash_entries_are_normalized(tmp_path: Path):
    master = make_zip(tmp_path / "master.zip", {"A\\dir\\file.txt": "w", "B\\other.txt": "o"})
    out = tmp_path / "out.zip"

    extract_subset(master, "A", out)

    assert read_zip(out) == {"dir/file.txt": b"w"}


def test_directory_placeholders_match_but_are_not_written(tmp_path: Path):
    master = make_zip(tmp_path / "master.zip", {"A/": b"", "A/empty/": b"", "B/z.txt": "3"})
    out = tmp_path / "out.zip"

    written = extract_subset(master, "A", out)

    assert written == 0
    assert out.exists()
    assert read_zip(out) == {}


def test_payload_is_byte_identical(tmp_path: Path):
    payload = bytes(range(256)) * 500
    master = tmp_path / "master.zip"
    with zipfile.ZipFile(master, "w", zipfile.ZIP_STORED) as zf:
        zf.writestr("T1/bin/app.dll", payload)
    out = tmp_path / "out.zip"

    extract_subset(master, "T1", out)

    assert read_zip(out)["bin/app.dll"] == payload


def test_missing_prefix_raises_and_leaves_no_output(tmp_path: Path):
    master = make_zip(tmp_path / "master.zip", {"A/x.txt": "1"})
    out = tmp_path / "out.zip"

    with pytest.raises(NotFoundError):
        extract_subset(master, "C", out)

    assert not out.exists()


def test_missing_source_raises_not_found(tmp_path: Path):
    out = tmp_path / "out.zip"

    with pytest.raises(NotFoundError):
        extract_subset(tmp_path / "nope.zip", "A", out)

    assert not out.exists()


def test_corrupt_source_raises_io_error_and_cleans_up(tmp_path: Path):
    master = tmp_path / "master.zip"
    master.write_bytes(b"this is not a zip archive")
    out = tmp_path / "out.zip"

    with pytest.raises(ArtifactIOError):
        extract_subset(master, "A", out)

    assert not out.exists()


def test_cancellation_discards_partial_output(tmp_path: Path):
    master = make_zip(tmp_path / "master.zip", {"A/x.txt": "1", "A/y.txt": "2"})
    out = tmp_path / "out.zip"
    cancel = threading.Event()
    cancel.set()

    with pytest.raises(OperationCancelledError):
        extract_subset(master, "A", out, cancel_event=cancel)

    assert not out.exists()


def test_duplicate_and_unsafe_entries_are_skipped(tmp_path: Path):
    master = make_zip(tmp_path / "master.zip", {
        "A/x.txt": "first",
        "A\\x.txt": "second",
        "A/../evil.txt": "bad",
    })
    out = tmp_path / "out.zip"

    extract_subset(master, "A", out)

    assert read_zip(out) == {"x.txt": b"first"}


def test_normalize_entry_name():
    assert normalize_entry_name("a\\b\\c.txt") == "a/b/c.txt"
    assert normalize_entry_name("a/b/") == "a/b/"


class TripAfter(threading.Event):
    """Reports set from the ``calls``-th check onwards."""

    def __init__(self, calls: int):
        super().__init__()
        self.calls = calls
        self.checks = 0

    def is_set(self) -> bool:
        self.checks += 1
        return self.checks >= self.calls


def test_cancellation_is_checked_while_copying_a_large_entry(tmp_path: Path):
    master = make_zip(tmp_path / "master.zip", {"A/big.bin": bytes(range(256)) * 4096})
    out = tmp_path / "out.zip"
    # First check happens before the entry, the second inside its copy loop
    cancel = TripAfter(calls=2)

    with pytest.raises(OperationCancelledError):
        extract_subset(master, "A", out, cancel_event=cancel)

    assert cancel.checks == 2
    assert not out.exists()
