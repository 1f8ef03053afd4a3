"""API module for Terminal Deployer."""

from .artifacts import router as artifacts_router
from .health import router as health_router

__all__ = [
    "artifacts_router",
    "health_router",
]
