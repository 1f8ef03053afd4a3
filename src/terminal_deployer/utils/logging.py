"""Logging configuration utilities."""

import logging
import sys
from typing import Any, Optional

import structlog
from structlog.contextvars import bind_contextvars, unbind_contextvars


SENSITIVE_KEYS = {
    "password",
    "secret",
    "token",
    "api_key",
    "apikey",
    "authorization",
    "auth",
    "access_key",
    "accesskey",
    "secret_key",
    "secretkey",
}


def _redact_sensitive(_, __, event_dict: dict) -> dict:
    """Redact sensitive fields in the structured log."""
    for key in list(event_dict.keys()):
        if key.lower() in SENSITIVE_KEYS:
            event_dict[key] = "[REDACTED]"
    return event_dict


def setup_logging(log_level: str = "INFO", log_format: str = "json") -> None:
    """Configure structured logging."""

    # Configure standard logging
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )

    # Configure structlog processors
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
        _redact_sensitive,
    ]

    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, log_level.upper())),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def bind_deployment_context(deployment_id: Optional[str] = None, site_name: Optional[str] = None) -> None:
    """Bind correlation fields for deployment logs using contextvars."""
    if deployment_id:
        bind_contextvars(deploymentId=deployment_id)
    if site_name:
        bind_contextvars(siteName=site_name)


def unbind_deployment_context() -> None:
    unbind_contextvars("deploymentId", "siteName")


class StepLogger:
    """One structured line per deployment step.

    Each line carries ``kind`` (step, info, ok, warn or error) so console and
    JSON output both read as a step-by-step transcript.
    """

    def __init__(self, logger: Any = None):
        self._logger = logger or structlog.get_logger("terminal_deployer.deploy")

    def step(self, message: str, **kw: Any) -> None:
        self._logger.info(message, kind="step", **kw)

    def info(self, message: str, **kw: Any) -> None:
        self._logger.info(message, kind="info", **kw)

    def ok(self, message: str, **kw: Any) -> None:
        self._logger.info(message, kind="ok", **kw)

    def warn(self, message: str, **kw: Any) -> None:
        self._logger.warning(message, kind="warn", **kw)

    def error(self, message: str, **kw: Any) -> None:
        self._logger.error(message, kind="error", **kw)
