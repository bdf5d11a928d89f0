"""Rate limiting wiring for the HTTP layer.

Provides the process-wide limiter instance, derives the client identity the
limiter keys on, and admits phrase requests in an HTTP middleware. Admission
runs before FastAPI reads or validates the body, so malformed and truncated
requests spend budget exactly like well-formed ones.

Identity strategy:
- Client IP from the socket peer address.
- When ``APP_CLIENT_IP_HEADER`` names a trusted proxy header (for example
  ``X-Forwarded-For``), its first hop is used instead.
"""

from __future__ import annotations

import hashlib
import logging

from fastapi import Request, Response

from rendezvous.adapters.rate_limit.base import AbstractRateLimiter
from rendezvous.adapters.rate_limit.in_memory import InMemoryFixedWindowRateLimiter
from rendezvous.core.config import settings
from rendezvous.core.errors import RateLimitedError
from rendezvous.core.exception_handlers import app_error_handler

logger = logging.getLogger(__name__)

PHRASE_PATH = "/phrase"


_limiter: AbstractRateLimiter | None = None
_limiter_config: tuple[int, int] | None = None


def get_rate_limiter() -> AbstractRateLimiter | None:
    """Return the process-wide rate limiter, or None when disabled.

    The instance is cached in-module to preserve state across requests.
    If configuration changes (primarily in tests), the limiter is rebuilt.
    """

    global _limiter, _limiter_config

    if not settings.rate_limit.enabled:
        return None

    config = (
        settings.rate_limit.requests,
        settings.rate_limit.window_seconds,
    )

    if _limiter is None or _limiter_config != config:
        _limiter = InMemoryFixedWindowRateLimiter(
            limit=settings.rate_limit.requests,
            window_seconds=settings.rate_limit.window_seconds,
        )
        _limiter_config = config
        logger.info(
            "rate_limit.configured",
            extra={"limit": config[0], "window_s": config[1]},
        )

    return _limiter


def reset_rate_limiter() -> None:
    """Drop the cached limiter so the next call builds a fresh one."""

    global _limiter, _limiter_config
    _limiter = None
    _limiter_config = None


def get_client_identity(request: Request) -> str:
    """Derive the rate limiting identity for the current request.

    Args:
        request: FastAPI request.

    Returns:
        str: Namespaced identity, e.g. ``ip:203.0.113.7``.
    """

    header_name = settings.app.client_ip_header
    if header_name:
        forwarded = request.headers.get(header_name)
        if forwarded:
            first_hop = forwarded.split(",")[0].strip()
            if first_hop:
                return f"ip:{first_hop}"

    client_host = request.client.host if request.client else "unknown"
    return f"ip:{client_host}"


def _hash_identity(identity: str) -> str:
    """Hash the client identity for logging without exposing addresses."""
    return hashlib.sha256(identity.encode()).hexdigest()[:16]


def enforce_rate_limit(limiter: AbstractRateLimiter, identity: str, operation: str) -> None:
    """Consume one unit of ``identity``'s budget.

    Args:
        limiter: Limiter holding the per-identity windows.
        identity: Client identity, e.g. ``ip:203.0.113.7``.
        operation: ``register`` or ``claim``, for the logs only.

    Raises:
        RateLimitedError: 429 when the budget for the current window is spent.
    """

    result = limiter.consume(identity)
    if result.allowed:
        logger.debug(
            "rate_limit.allowed",
            extra={
                "operation": operation,
                "identity_hash": _hash_identity(identity),
                "limit": result.limit,
                "remaining": result.remaining,
            },
        )
        return

    retry_after = result.retry_after_seconds or 0
    logger.warning(
        "rate_limit.exceeded",
        extra={
            "operation": operation,
            "identity_hash": _hash_identity(identity),
            "limit": result.limit,
            "retry_after_s": retry_after,
        },
    )
    raise RateLimitedError(
        message="Rate limit exceeded. Try again later.",
        details={
            "limit": result.limit,
            "remaining": result.remaining,
            "reset_at": result.reset_at,
            "retry_after": retry_after,
        },
    )


def phrase_operation(request: Request) -> str | None:
    """Name the phrase operation a request targets, or None for other routes."""

    path = request.url.path
    if request.method == "POST" and path == PHRASE_PATH:
        return "register"
    if request.method == "GET" and path.startswith(PHRASE_PATH + "/"):
        return "claim"
    return None


async def rate_limit_middleware(request: Request, call_next) -> Response:
    """Charge phrase requests against the client's budget before routing.

    Over-budget requests are answered with the standard 429 error envelope and
    never reach body parsing, phrase validation or the store.

    Usage:
        app.middleware("http")(rate_limit_middleware)
    """

    operation = phrase_operation(request)
    limiter = get_rate_limiter() if operation else None
    if limiter is not None:
        try:
            enforce_rate_limit(limiter, get_client_identity(request), operation)
        except RateLimitedError as exc:
            return await app_error_handler(request, exc)

    return await call_next(request)
