"""Fetch utilities for downloading terminal artifacts from the artifact API."""

from __future__ import annotations

import os
import threading
import time
from pathlib import Path
from typing import Iterable, Optional

import httpx
import structlog

from terminal_deployer.core.exceptions import ArtifactFetchError, OperationCancelledError
from terminal_deployer.utils.validation import normalize_tag, validate_identifier


logger = structlog.get_logger()


def build_artifact_url(base_url: str, terminal_id: str, tag: str) -> str:
    """``{base}/artifacts/{terminal}/{tag}`` with validated segments."""
    validate_identifier(terminal_id, "terminal id")
    return f"{base_url.rstrip('/')}/artifacts/{terminal_id}/{normalize_tag(tag)}"


def _write_stream_to_file(
    stream_iter: Iterable[bytes],
    dest_path: Path,
    max_size_bytes: int,
    cancel_event: Optional[threading.Event] = None,
) -> int:
    """Write streaming bytes to file with max-size enforcement.

    Bytes land in a ``.downloading`` sibling that replaces dest_path only on
    success. Returns number of bytes written.
    """
    tmp_file = dest_path.with_suffix(dest_path.suffix + ".downloading")
    bytes_written = 0
    try:
        with open(tmp_file, "wb") as f:
            for chunk in stream_iter:
                if cancel_event is not None and cancel_event.is_set():
                    raise OperationCancelledError("Artifact download cancelled", code="CANCELLED")
                if not chunk:
                    continue
                bytes_written += len(chunk)
                if bytes_written > max_size_bytes:
                    raise ArtifactFetchError("Artifact exceeds maximum allowed size", code="TOO_LARGE")
                f.write(chunk)
        os.replace(tmp_file, dest_path)
    except BaseException:
        try:
            os.remove(tmp_file)
        except OSError:
            pass
        raise
    return bytes_written


def _is_retryable(exc: Exception) -> bool:
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code >= 500
    return isinstance(exc, (httpx.TransportError, OSError))


def fetch_artifact_to_path(
    url: str,
    dest_path: Path,
    *,
    max_size_bytes: int = 512 * 1024 * 1024,
    total_timeout_sec: float = 60.0,
    max_retries: int = 3,
    backoff_base: float = 0.3,
    cancel_event: Optional[threading.Event] = None,
    transport: Optional[httpx.BaseTransport] = None,
) -> Path:
    """Stream ``url`` to ``dest_path``.

    Transport errors and 5xx responses are retried with bounded exponential
    backoff inside the total timeout; any other non-2xx status fails at once.

    Raises:
        ArtifactFetchError: download failed
        OperationCancelledError: cancel_event was set during the transfer
    """
    dest_path = Path(dest_path)
    dest_path.parent.mkdir(parents=True, exist_ok=True)

    start = time.time()
    attempt = 0
    last_error: Optional[Exception] = None

    while attempt < max_retries and (time.time() - start) < total_timeout_sec:
        attempt += 1
        try:
            logger.info("Downloading artifact", url=url, dest=str(dest_path), attempt=attempt)
            timeout = httpx.Timeout(max(0.1, total_timeout_sec - (time.time() - start)))
            with httpx.Client(timeout=timeout, transport=transport) as client:
                with client.stream("GET", url, follow_redirects=True) as resp:
                    resp.raise_for_status()
                    bytes_written = _write_stream_to_file(
                        resp.iter_bytes(), dest_path, max_size_bytes, cancel_event
                    )
            logger.info("Downloaded artifact", bytes=bytes_written)
            return dest_path
        except OperationCancelledError:
            raise
        except ArtifactFetchError:
            raise
        except Exception as e:
            last_error = e
            elapsed = time.time() - start
            remaining = total_timeout_sec - elapsed
            logger.warning("Fetch attempt failed", attempt=attempt, error=str(e), remaining_time_sec=max(0.0, remaining))
            if not _is_retryable(e) or attempt >= max_retries or remaining <= 0:
                break
            sleep_for = min(backoff_base * (2 ** (attempt - 1)), max(0.0, remaining))
            if cancel_event is None:
                time.sleep(sleep_for)
            elif cancel_event.wait(sleep_for):
                raise OperationCancelledError("Artifact download cancelled", code="CANCELLED")

    if isinstance(last_error, httpx.HTTPStatusError):
        status = last_error.response.status_code
        raise ArtifactFetchError(
            f"Artifact API returned {status} {last_error.response.reason_phrase}", code=f"HTTP_{status}"
        )
    raise ArtifactFetchError(f"Failed to fetch artifact after {attempt} attempts: {last_error}", code="FETCH_FAILED")
