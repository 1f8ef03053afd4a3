"""Artifact-serving endpoint: one terminal's archive for one tag."""

from __future__ import annotations

import asyncio
import threading

import structlog
from fastapi import APIRouter, Request
from fastapi.responses import FileResponse
from starlette.types import Receive, Scope, Send

from terminal_deployer.store.artifact_store import ArtifactStore, ServedArtifact


router = APIRouter()
logger = structlog.get_logger()


_artifact_store: ArtifactStore | None = None


def init_artifact_store(store: ArtifactStore) -> ArtifactStore:
    global _artifact_store
    _artifact_store = store
    return _artifact_store


def get_artifact_store(req: Request) -> ArtifactStore:
    store = getattr(req.app.state, "artifact_store", None) or _artifact_store
    if store is None:
        raise RuntimeError("ArtifactStore not initialized")
    return store


class ArtifactFileResponse(FileResponse):
    """FileResponse that releases its artifact however the send ends."""

    def __init__(self, served: ServedArtifact, **kwargs):
        super().__init__(served.path, media_type="application/zip", filename=served.filename, **kwargs)
        self.served = served

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await super().__call__(scope, receive, send)
        finally:
            self.served.release()


def _release_abandoned(future: asyncio.Future[ServedArtifact]) -> None:
    if future.cancelled() or future.exception() is not None:
        return
    served = future.result()
    logger.info("Releasing artifact of cancelled request", filename=served.filename)
    served.release()


@router.get(
    "/artifacts/{terminal_id}/{tag}",
    response_class=FileResponse,
    summary="Download terminal artifact",
    description="Downloads the zip artifact for the specified terminal and tag (with or without .zip)",
    responses={
        200: {"content": {"application/zip": {}}},
        400: {"description": "Invalid terminal id or tag"},
        403: {"description": "Permission denied reading the artifact"},
        404: {"description": "Artifact or terminal not found"},
    },
)
async def get_artifact(terminal_id: str, tag: str, req: Request) -> ArtifactFileResponse:
    store = get_artifact_store(req)
    cancel_event = threading.Event()
    loop = asyncio.get_running_loop()
    future = loop.run_in_executor(None, store.open, terminal_id, tag, cancel_event)
    try:
        # Shielded so a cancelled request can still collect what the worker produced
        served = await asyncio.shield(future)
    except asyncio.CancelledError:
        cancel_event.set()
        future.add_done_callback(_release_abandoned)
        raise
    logger.info("Serving artifact", terminal_id=terminal_id, tag=tag, filename=served.filename)
    return ArtifactFileResponse(served)
