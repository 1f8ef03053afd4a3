import threading
from pathlib import Path

import httpx
import pytest

from terminal_deployer.core.exceptions import ArtifactFetchError, OperationCancelledError, ValidationError
from terminal_deployer.deploy.fetch import build_artifact_url, fetch_artifact_to_path


def test_build_artifact_url_trims_trailing_slash():
    assert build_artifact_url("https://api.example.com/", "T1", "v2") == "https://api.example.com/artifacts/T1/v2"


def test_build_artifact_url_validates_segments():
    with pytest.raises(ValidationError):
        build_artifact_url("https://api.example.com", "../T1", "v2")
    with pytest.raises(ValidationError):
        build_artifact_url("https://api.example.com", "T1", "v 2")


def test_download_writes_bytes(tmp_path: Path):
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, content=b"zip-bytes")

    dest = tmp_path / "pkg.zip"
    out = fetch_artifact_to_path("https://api.example.com/artifacts/T1/v2", dest, transport=httpx.MockTransport(handler))

    assert out == dest
    assert dest.read_bytes() == b"zip-bytes"
    assert requests[0].url.path == "/artifacts/T1/v2"
    assert not (tmp_path / "pkg.zip.downloading").exists()


def test_client_error_is_not_retried(tmp_path: Path):
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(404, text="Zip 'v2.zip' not found.")

    with pytest.raises(ArtifactFetchError) as exc_info:
        fetch_artifact_to_path(
            "https://api.example.com/artifacts/T1/v2",
            tmp_path / "pkg.zip",
            transport=httpx.MockTransport(handler),
            backoff_base=0,
        )

    assert len(calls) == 1
    assert exc_info.value.code == "HTTP_404"
    assert not (tmp_path / "pkg.zip").exists()


def test_server_error_retried_then_success(tmp_path: Path):
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if len(calls) < 3:
            return httpx.Response(503)
        return httpx.Response(200, content=b"ok")

    out = fetch_artifact_to_path(
        "https://api.example.com/artifacts/T1/v2",
        tmp_path / "pkg.zip",
        transport=httpx.MockTransport(handler),
        backoff_base=0,
    )

    assert len(calls) == 3
    assert out.read_bytes() == b"ok"


def test_transport_failure_exhausts_retries(tmp_path: Path):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(ArtifactFetchError):
        fetch_artifact_to_path(
            "https://api.example.com/artifacts/T1/v2",
            tmp_path / "pkg.zip",
            transport=httpx.MockTransport(handler),
            max_retries=2,
            backoff_base=0,
        )


def test_size_limit_enforced(tmp_path: Path):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"a" * 1024)

    with pytest.raises(ArtifactFetchError):
        fetch_artifact_to_path(
            "https://api.example.com/large",
            tmp_path / "dl" / "pkg.zip",
            transport=httpx.MockTransport(handler),
            max_size_bytes=10,
        )

    assert list((tmp_path / "dl").iterdir()) == []


def test_cancellation_aborts_and_cleans_up(tmp_path: Path):
    cancel = threading.Event()
    cancel.set()

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"data")

    with pytest.raises(OperationCancelledError):
        fetch_artifact_to_path(
            "https://api.example.com/artifacts/T1/v2",
            tmp_path / "dl" / "pkg.zip",
            transport=httpx.MockTransport(handler),
            cancel_event=cancel,
        )

    assert list((tmp_path / "dl").iterdir()) == []


def test_build_artifact_url_drops_zip_extension():
    assert build_artifact_url("https://api.example.com", "T1", "v2.zip") == "https://api.example.com/artifacts/T1/v2"
