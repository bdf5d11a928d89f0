"""Exchange service orchestrating rate limiting, validation and the store.

Both operations run the same sequence:

1. Consume one unit of the client's rate budget (reject before anything else).
2. Validate the phrase grammar.
3. Delegate to the rendezvous store.

Rate limiting comes first so malformed or malicious traffic is throttled like
well-formed traffic and never reaches the store once over budget. The HTTP
layer admits requests earlier still, in ``rate_limit_middleware``, and builds
the service without a limiter so a request is never charged twice.
"""

from __future__ import annotations

import logging

from rendezvous.adapters.rate_limit.base import AbstractRateLimiter
from rendezvous.core.errors import InvalidPhraseError, PhraseNotFoundError
from rendezvous.core.rate_limit import enforce_rate_limit
from rendezvous.schemas.phrase import AddressItem
from rendezvous.services.rendezvous_store import RendezvousStore, hash_phrase
from rendezvous.utils.phrase_validator import is_valid_phrase

logger = logging.getLogger(__name__)


class ExchangeService:
    """Register and claim address items under passphrases."""

    def __init__(
        self,
        *,
        store: RendezvousStore,
        rate_limiter: AbstractRateLimiter | None,
        claim_invalid_as_not_found: bool = True,
    ) -> None:
        """Initialize the exchange service.

        Args:
            store: Claim-once store holding pending exchanges.
            rate_limiter: Per-identity limiter, or None when admission happens
                elsewhere (the HTTP middleware) or limiting is disabled.
            claim_invalid_as_not_found: Report malformed phrases on claim as
                not found rather than invalid format.
        """
        self.store = store
        self.rate_limiter = rate_limiter
        self.claim_invalid_as_not_found = claim_invalid_as_not_found

    def _admit(self, identity: str, operation: str) -> None:
        if self.rate_limiter is None:
            return

        enforce_rate_limit(self.rate_limiter, identity, operation)

    def register(self, identity: str, phrase: str, maddr: str) -> AddressItem:
        """Register ``maddr`` under ``phrase`` for a later claim.

        Args:
            identity: Client identity derived from the network origin.
            phrase: Passphrase chosen by the registering client.
            maddr: Address to hand to whoever claims the phrase.

        Returns:
            The stored address item.

        Raises:
            RateLimitedError: If the client's budget is exhausted.
            InvalidPhraseError: If the phrase fails the grammar.
            PhraseConflictError: If the phrase already holds an entry.
            StoreUnavailableError: If the store fails.
        """
        self._admit(identity, "register")

        if not is_valid_phrase(phrase):
            logger.info("exchange.invalid_phrase", extra={"operation": "register"})
            raise InvalidPhraseError(message="Invalid phrase format")

        item = AddressItem(phrase=phrase, maddr=maddr)
        self.store.register(phrase, item.model_dump())
        return item

    def claim(self, identity: str, phrase: str) -> AddressItem:
        """Claim the address registered under ``phrase``, consuming it.

        Raises:
            RateLimitedError: If the client's budget is exhausted.
            PhraseNotFoundError: If nothing is registered under the phrase (or
                the phrase is malformed and aliasing is enabled).
            InvalidPhraseError: If the phrase is malformed and aliasing is off.
            StoreUnavailableError: If the store fails.
        """
        self._admit(identity, "claim")

        if not is_valid_phrase(phrase):
            logger.info("exchange.invalid_phrase", extra={"operation": "claim"})
            if self.claim_invalid_as_not_found:
                raise PhraseNotFoundError(message="Phrase not found")
            raise InvalidPhraseError(message="Invalid phrase format")

        payload = self.store.claim(phrase)
        logger.info("exchange.claimed", extra={"phrase_hash": hash_phrase(phrase)})
        return AddressItem.model_validate(payload)
