from __future__ import annotations

import logging
import threading
from typing import Annotated

from fastapi import APIRouter, Depends, Request, status

from rendezvous.adapters.kv.factory import create_kv_engine
from rendezvous.core.config import settings
from rendezvous.core.rate_limit import get_client_identity
from rendezvous.schemas.phrase import AddressItem, RegisterResponse
from rendezvous.services.exchange_service import ExchangeService
from rendezvous.services.rendezvous_store import RendezvousStore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Phrase"])

_store: RendezvousStore | None = None
_store_lock = threading.Lock()


def get_rendezvous_store() -> RendezvousStore:
    """Return the process-wide rendezvous store, creating it on first use."""
    global _store

    if _store is not None:
        return _store

    # Dependencies run in the threadpool, so first requests may race here.
    with _store_lock:
        if _store is None:
            _store = RendezvousStore(
                create_kv_engine(settings.store),
                entry_ttl_seconds=settings.store.entry_ttl_seconds,
                lock_timeout_seconds=settings.store.lock_timeout_seconds,
                payload_model=AddressItem,
            )
            logger.info(
                "store.opened",
                extra={
                    "backend": settings.store.backend,
                    "entry_ttl_s": settings.store.entry_ttl_seconds,
                },
            )
        return _store


def close_rendezvous_store() -> None:
    """Close the engine behind the store and forget the instance."""
    global _store

    with _store_lock:
        if _store is not None:
            _store.engine.close()
            _store = None


def get_exchange_service(
    store: Annotated[RendezvousStore, Depends(get_rendezvous_store)],
) -> ExchangeService:
    # rate_limit_middleware already charged this request before body parsing.
    return ExchangeService(
        store=store,
        rate_limiter=None,
        claim_invalid_as_not_found=settings.app.claim_invalid_as_not_found,
    )


ServiceDep = Annotated[ExchangeService, Depends(get_exchange_service)]


@router.post(
    "/phrase",
    response_model=RegisterResponse,
    status_code=status.HTTP_201_CREATED,
)
def add_address(item: AddressItem, request: Request, service: ServiceDep) -> RegisterResponse:
    """Register an address under a passphrase.

    The entry stays available until it is claimed once or expires.

    Raises:
        RateLimitedError: 429 when the client's budget is spent.
        InvalidPhraseError: 400 when the phrase is malformed.
        PhraseConflictError: 409 when the phrase is already registered.
        StoreUnavailableError: 503 when the store fails.
    """
    stored = service.register(get_client_identity(request), item.phrase, item.maddr)
    return RegisterResponse(data=stored)


@router.get("/phrase/{phrase}", response_model=AddressItem)
def get_address(phrase: str, request: Request, service: ServiceDep) -> AddressItem:
    """Claim the address registered under a passphrase.

    A successful claim deletes the entry; any later claim gets 404.

    Raises:
        RateLimitedError: 429 when the client's budget is spent.
        PhraseNotFoundError: 404 when nothing is registered under the phrase.
        StoreUnavailableError: 503 when the store fails.
    """
    return service.claim(get_client_identity(request), phrase)
