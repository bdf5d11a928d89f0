"""HTTP middleware for request ID propagation and access logging.

The middleware:
- Accepts an incoming X-Request-ID header or generates a UUID
- Stores request_id in contextvars for log correlation
- Echoes request_id and the request duration in response headers
- Logs one ``http.request`` line per request using the route template, so
  phrases embedded in paths never reach the logs

Usage:
    app.middleware("http")(request_id_middleware)
"""

from __future__ import annotations

import logging
import time
import uuid

from fastapi import Request, Response

from rendezvous.core.config import settings
from rendezvous.core.logging import clear_request_id, set_request_id

logger = logging.getLogger(__name__)


def route_template(request: Request) -> str:
    """Return the matched route path, e.g. ``/phrase/{phrase}``, never the raw URL."""
    route = request.scope.get("route")
    path = getattr(route, "path", None)
    return path or "<unmatched>"


async def request_id_middleware(request: Request, call_next) -> Response:
    """Attach a correlation id to the request and its response.

    Args:
        request: The incoming HTTP request object.
        call_next: The next middleware/route handler in the stack.

    Returns:
        Response: The downstream response with ``X-Request-ID`` and
            ``X-Request-Duration-ms`` headers added.
    """

    header_name = settings.log.request_id_header
    request_id = request.headers.get(header_name) or str(uuid.uuid4())
    set_request_id(request_id)
    start = time.perf_counter()
    try:
        response: Response = await call_next(request)
        duration_ms = (time.perf_counter() - start) * 1000
        logger.info(
            "http.request",
            extra={
                "method": request.method,
                "route": route_template(request),
                "status": response.status_code,
                "duration_ms": round(duration_ms, 2),
            },
        )
    finally:
        clear_request_id()

    response.headers[header_name] = request_id
    response.headers.setdefault("X-Request-Duration-ms", f"{duration_ms:.2f}")
    return response
