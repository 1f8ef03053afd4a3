"""Terminal Deployer - per-terminal artifact serving and zip deployments."""

__version__ = "0.1.0"
__author__ = "Terminal Deployer Team"

from terminal_deployer.core.config import Settings

__all__ = ["Settings", "__version__"]
