"""Health check endpoints."""

from datetime import datetime, timezone
from typing import Dict

from fastapi import APIRouter

from terminal_deployer import __version__

router = APIRouter()

# Track start time
START_TIME = datetime.now(timezone.utc)


@router.get("/health", response_model=Dict[str, str])
async def health_check() -> Dict[str, str]:
    """Simple health check endpoint."""
    return {
        "status": "healthy",
        "version": __version__,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "started": START_TIME.isoformat(),
    }
