"""Exception handlers mapping the error taxonomy to HTTP responses."""
from __future__ import annotations

from fastapi import Request, status
from fastapi.responses import JSONResponse

from dw_dashboard.core.errors import DashboardError, DownstreamError
from dw_dashboard.core.logging import get_logger

logger = get_logger(__name__)


def error_body(exc: DashboardError) -> dict:
    body: dict = {"message": exc.message}
    if exc.details:
        body["details"] = exc.details
    return body


async def dashboard_error_handler(request: Request, exc: DashboardError) -> JSONResponse:
    if isinstance(exc, DownstreamError):
        logger.error("HTTP %d on %s %s: %s", exc.status_code, request.method, request.url.path, exc.details)
    else:
        logger.warning("HTTP %d on %s %s: %s", exc.status_code, request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=error_body(exc))


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Log the full exception and return a generic 500."""
    logger.error("Unhandled exception on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"message": "Internal server error."},
    )
