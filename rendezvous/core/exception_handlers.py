"""Global exception handlers for consistent error responses.

This module provides FastAPI exception handlers that intercept all errors
(domain and unexpected) and return consistent JSON responses with proper
HTTP status codes and traceability.

Design:
- AppError subclasses → their own status (400, 404, 409, 429, 503)
- Unexpected Exception → generic 500 (safety net)
- All responses include request_id for distributed tracing
- Logs carry the route template, never the raw path, since claim paths embed
  the phrase
"""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from rendezvous.core.config import settings
from rendezvous.core.errors import AppError, RateLimitedError
from rendezvous.core.logging import get_request_id
from rendezvous.core.middleware import route_template

logger = logging.getLogger(__name__)


def _rate_limit_headers(exc: RateLimitedError) -> dict[str, str]:
    details = exc.details or {}
    headers = {"Retry-After": str(details.get("retry_after", 0))}
    if settings.rate_limit.include_headers:
        headers["X-RateLimit-Limit"] = str(details.get("limit", ""))
        headers["X-RateLimit-Remaining"] = str(details.get("remaining", 0))
        headers["X-RateLimit-Reset"] = str(details.get("reset_at", ""))
    return headers


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Handle domain application errors with consistent JSON format.

    The status code comes from the error class:
    - InvalidPhraseError → 400 Bad Request
    - PhraseNotFoundError → 404 Not Found
    - PhraseConflictError → 409 Conflict
    - RateLimitedError → 429 Too Many Requests (with Retry-After)
    - StoreUnavailableError → 503 Service Unavailable

    Args:
        request: FastAPI request object.
        exc: AppError instance (or subclass).

    Returns:
        JSONResponse with appropriate status code and error details.
    """
    status_code = exc.http_status
    log = logger.error if status_code >= 500 else logger.info

    log(
        "app_error_handled",
        extra={
            "error_code": exc.code,
            "error_message": exc.message,
            "status_code": status_code,
            "route": route_template(request),
            "request_id": get_request_id(),
        },
    )

    error_content = {
        "code": exc.code,
        "message": exc.message,
        "request_id": get_request_id(),
    }
    if exc.details:
        error_content["details"] = exc.details

    headers = _rate_limit_headers(exc) if isinstance(exc, RateLimitedError) else None

    return JSONResponse(
        status_code=status_code,
        content={"error": error_content},
        headers=headers,
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Fallback handler for unexpected errors (safety net).

    Logs detailed information for debugging while returning a generic
    message. No stack traces or exception text reach the client.
    """
    logger.error(
        "unhandled_exception",
        extra={
            "error_type": type(exc).__name__,
            "error_msg": str(exc),
            "route": route_template(request),
            "request_method": request.method,
            "request_id": get_request_id(),
        },
    )

    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "internal_server_error",
                "message": "An unexpected error occurred. Please try again later.",
                "request_id": get_request_id(),
            }
        },
    )


def setup_exception_handlers(app) -> None:
    """Register all exception handlers with FastAPI app.

    Args:
        app: FastAPI application instance.
    """
    app.exception_handler(AppError)(app_error_handler)
    app.exception_handler(Exception)(general_exception_handler)
