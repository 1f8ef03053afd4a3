"""Error mapping, request logging and request metrics for the artifact API."""

import time
import uuid
from typing import Any, Callable, Dict, Optional

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from prometheus_client import Counter, Gauge, Histogram
from starlette.exceptions import HTTPException as StarletteHTTPException

from terminal_deployer.core.exceptions import DeployerError

logger = structlog.get_logger()

REQUEST_ID_HEADER = "X-Request-ID"

REQUEST_COUNT = Counter(
    "terminal_deployer_http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"],
)

REQUEST_DURATION = Histogram(
    "terminal_deployer_http_request_duration_seconds",
    "HTTP request duration",
    ["method", "endpoint"],
)

REQUESTS_IN_FLIGHT = Gauge(
    "terminal_deployer_http_requests_in_flight",
    "Requests currently being served",
)


def _route_template(request: Request) -> str:
    # Path templates keep label cardinality bounded
    route = request.scope.get("route")
    return getattr(route, "path", request.url.path)


def _error_response(status_code: int, error: str, message: Any, code: Optional[str] = None, **extra: Any) -> JSONResponse:
    body: Dict[str, Any] = {"error": error, "message": message}
    if code is not None:
        body["code"] = code
    body.update(extra)
    return JSONResponse(status_code=status_code, content=body)


def setup_error_handling(app: FastAPI) -> None:
    """Map deployer errors to their HTTP status with a uniform JSON body.

    Messages come from the exception itself; the store only puts caller
    supplied identifiers in them, never filesystem paths.
    """

    @app.exception_handler(DeployerError)
    async def deployer_error_handler(request: Request, exc: DeployerError) -> JSONResponse:
        if exc.http_status >= 500:
            logger.error("Request failed", error=exc.__class__.__name__, message=str(exc), code=exc.code)
        else:
            logger.info("Request rejected", error=exc.__class__.__name__, code=exc.code)
        return _error_response(exc.http_status, exc.__class__.__name__, str(exc), exc.code)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return _error_response(422, "ValidationError", "Invalid request data", details=exc.errors())

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return _error_response(exc.status_code, "HTTPException", exc.detail)

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unexpected error", exc_info=exc)
        return _error_response(500, "InternalServerError", "An unexpected error occurred")


def setup_logging_middleware(app: FastAPI) -> None:
    """One log line per request, correlated by request id."""

    @app.middleware("http")
    async def log_requests(request: Request, call_next: Callable) -> Response:
        # Reuse the caller's id so proxies and deployer clients can correlate
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
            client=request.client.host if request.client else None,
        )
        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as exc:
            logger.exception("Request failed", duration_seconds=time.perf_counter() - started, exc_info=exc)
            raise
        else:
            logger.info(
                "Request completed",
                status_code=response.status_code,
                duration_seconds=time.perf_counter() - started,
            )
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        finally:
            structlog.contextvars.clear_contextvars()


def setup_metrics_middleware(app: FastAPI) -> None:
    """Request counters and latency per route template."""

    @app.middleware("http")
    async def collect_metrics(request: Request, call_next: Callable) -> Response:
        if request.url.path.startswith("/metrics"):
            return await call_next(request)

        started = time.perf_counter()
        REQUESTS_IN_FLIGHT.inc()
        try:
            response = await call_next(request)
        finally:
            REQUESTS_IN_FLIGHT.dec()

        endpoint = _route_template(request)
        REQUEST_COUNT.labels(method=request.method, endpoint=endpoint, status=response.status_code).inc()
        REQUEST_DURATION.labels(method=request.method, endpoint=endpoint).observe(time.perf_counter() - started)
        return response
