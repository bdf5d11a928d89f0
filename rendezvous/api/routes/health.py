from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends

from rendezvous.adapters.kv.base import KVEngineError
from rendezvous.api.routes.phrase import get_rendezvous_store
from rendezvous.core.errors import StoreUnavailableError
from rendezvous.services.rendezvous_store import RendezvousStore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_PROBE_KEY = b"__health__"


@router.get("/health")
def health_check() -> dict:
    """Liveness check; does not touch the store."""

    return {"status": "ok"}


@router.get("/health/ready")
def readiness_check(
    store: Annotated[RendezvousStore, Depends(get_rendezvous_store)],
) -> dict:
    """Readiness check probing the KV engine behind the store.

    Raises:
        StoreUnavailableError: 503 when the engine cannot be reached.
    """

    try:
        store.engine.exists(_PROBE_KEY)
    except KVEngineError as exc:
        logger.warning("health.store_unavailable", extra={"error_msg": str(exc)})
        raise StoreUnavailableError(message="Rendezvous store is unavailable") from exc

    return {"status": "ok", "store": "ok"}
