from __future__ import annotations

from rendezvous.api.routes.health import router as health_router
from rendezvous.api.routes.phrase import router as phrase_router

__all__ = ["health_router", "phrase_router"]
