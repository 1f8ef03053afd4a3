"""Artifact server entry point for Terminal Deployer."""

import signal
import sys
from contextlib import asynccontextmanager

import structlog
import uvicorn
from fastapi import FastAPI
from prometheus_client import make_asgi_app

from terminal_deployer import __version__
from terminal_deployer.api.artifacts import init_artifact_store, router as artifacts_router
from terminal_deployer.api.health import health_check as server_health_check
from terminal_deployer.api.health import router as health_router
from terminal_deployer.api.middleware import (
    setup_error_handling,
    setup_logging_middleware,
    setup_metrics_middleware,
)
from terminal_deployer.core.config import Settings
from terminal_deployer.store.artifact_store import ArtifactStore
from terminal_deployer.utils.logging import setup_logging

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    settings = app.state.settings
    store: ArtifactStore = app.state.artifact_store
    logger.info("Starting Terminal Artifact API", version=__version__, artifacts_root=settings.artifacts_root)
    if store.root is None:
        logger.warning("Artifacts root not configured; artifact requests will fail")
    elif not store.root.is_dir():
        logger.warning("Artifacts root does not exist", artifacts_root=str(store.root))
    if store.temp_dir is not None:
        store.temp_dir.mkdir(parents=True, exist_ok=True)

    yield

    logger.info("Shutting down Terminal Artifact API")


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create FastAPI application."""
    if settings is None:
        settings = Settings()

    # Setup logging
    setup_logging(settings.log_level, settings.log_format)

    app = FastAPI(
        title="Terminal Artifact API",
        version=__version__,
        description="API for downloading terminal deployment artifacts",
        lifespan=lifespan,
    )

    # Store settings and the store in app state
    app.state.settings = settings
    app.state.artifact_store = init_artifact_store(ArtifactStore(settings.artifacts_root, settings.temp_dir))

    # Setup middleware
    setup_error_handling(app)
    setup_logging_middleware(app)
    setup_metrics_middleware(app)

    # Mount routers
    app.include_router(health_router, prefix="/runtime", tags=["runtime"])
    app.include_router(artifacts_router, tags=["artifacts"])

    @app.get("/health")
    async def top_level_health():
        return await server_health_check()

    # Mount Prometheus metrics endpoint
    if settings.metrics_enabled:
        metrics_app = make_asgi_app()
        app.mount("/metrics", metrics_app)

    return app


def run(settings: Settings | None = None) -> None:
    """Run the artifact server."""
    settings = settings or Settings()

    def handle_sigterm(signum, frame):
        logger.info("Received SIGTERM, initiating graceful shutdown")
        sys.exit(0)

    signal.signal(signal.SIGTERM, handle_sigterm)

    config = uvicorn.Config(
        "terminal_deployer.main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        workers=settings.workers,
        reload=settings.reload,
        log_config=None,  # We handle logging ourselves
        access_log=False,  # Handled by middleware
    )

    server = uvicorn.Server(config)
    server.run()


if __name__ == "__main__":
    run()
