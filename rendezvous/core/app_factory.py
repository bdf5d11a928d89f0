"""Application factory for FastAPI app.

Centralizes app construction (metadata, middleware, handlers, routers) so
tests can build isolated instances.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from rendezvous.api.routes import health_router, phrase_router
from rendezvous.api.routes.phrase import close_rendezvous_store
from rendezvous.core.config import settings
from rendezvous.core.exception_handlers import setup_exception_handlers
from rendezvous.core.logging import configure_logging
from rendezvous.core.middleware import request_id_middleware
from rendezvous.core.openapi import apply_openapi_customizations
from rendezvous.core.rate_limit import rate_limit_middleware


def parse_origins(origins_string: str | None) -> list[str]:
    """Parse a comma-separated origin list.

    Examples:
        >>> parse_origins("https://a.example, https://b.example")
        ['https://a.example', 'https://b.example']
        >>> parse_origins(None)
        []
    """
    if not origins_string:
        return []
    return [origin.strip() for origin in origins_string.split(",") if origin.strip()]


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    yield
    close_rendezvous_store()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application instance.

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    app = FastAPI(
        title="Phrase Rendezvous API",
        description=(
            "Ephemeral rendezvous exchange: one peer registers its address under a "
            "short passphrase, the other claims it exactly once. Requests are "
            "rate limited per client address."
        ),
        version="0.1.0",
        license_info={
            "name": "MIT License",
            "url": "https://opensource.org/licenses/MIT",
        },
        lifespan=_lifespan,
    )

    # Middleware, innermost first: rate admission runs inside the request id
    # scope but before any route reads the body.
    app.middleware("http")(rate_limit_middleware)
    app.middleware("http")(request_id_middleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=parse_origins(settings.app.cors_allow_origins),
        allow_methods=["GET", "POST"],
        allow_headers=["Origin", "Content-Type", "Accept"],
        expose_headers=["Content-Length"],
        allow_credentials=False,
        max_age=3600,
    )

    # Exception handlers
    setup_exception_handlers(app)

    # Routers
    app.include_router(phrase_router)
    app.include_router(health_router)

    apply_openapi_customizations(app)

    return app
