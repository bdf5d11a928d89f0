"""Claim-once rendezvous store on top of a plain KV engine.

The engine only offers get/put/delete, so the store makes each
check-then-act sequence indivisible itself:

- register: absent? then put. Two racing registers of a fresh phrase cannot
  both succeed.
- claim: get, decode, delete, return. Of many racing claims exactly one gets
  the payload; the rest see the phrase as absent.

Locking is per phrase, so a slow operation on one phrase never stalls the
others. Lock waits are bounded and reported as ``StoreUnavailableError``.
"""

from __future__ import annotations

import hashlib
import logging
import threading
import time
from contextlib import contextmanager
from typing import Any, Callable, Iterator

from pydantic import BaseModel, ValidationError

from rendezvous.adapters.kv.base import AbstractKVEngine, KVEngineError
from rendezvous.core.errors import (
    PhraseConflictError,
    PhraseNotFoundError,
    StoreUnavailableError,
)
from rendezvous.schemas.phrase import StoredEntry

logger = logging.getLogger(__name__)


def hash_phrase(phrase: str) -> str:
    """Short digest of a phrase for logs, so phrases never appear in clear."""
    return hashlib.sha256(phrase.encode()).hexdigest()[:16]


class PhraseLockTimeout(Exception):
    """Raised when a phrase lock cannot be acquired in time."""


class _LockSlot:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.users = 0


class PhraseLockTable:
    """Reference-counted table of per-phrase locks.

    A slot exists only while some thread holds or waits for its lock, so the
    table stays as small as the number of phrases in flight.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._slots: dict[str, _LockSlot] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._slots)

    @contextmanager
    def hold(self, phrase: str, timeout: float) -> Iterator[None]:
        """Hold the lock for ``phrase`` for the duration of the block.

        Raises:
            PhraseLockTimeout: If the lock is not acquired within ``timeout`` seconds.
        """
        with self._guard:
            slot = self._slots.get(phrase)
            if slot is None:
                slot = self._slots[phrase] = _LockSlot()
            slot.users += 1

        acquired = slot.lock.acquire(timeout=timeout)
        try:
            if not acquired:
                raise PhraseLockTimeout(f"phrase lock not acquired within {timeout}s")
            yield
        finally:
            if acquired:
                slot.lock.release()
            with self._guard:
                slot.users -= 1
                if slot.users == 0:
                    del self._slots[phrase]


class RendezvousStore:
    """Register/claim store with claim-once semantics.

    Attributes:
        entry_ttl_seconds: Age after which an unclaimed entry counts as absent
            (None disables expiry).
        lock_timeout_seconds: Upper bound on waiting for a phrase lock.
        payload_model: Optional schema every stored payload must satisfy. It is
            checked when an entry is read, before a claim deletes it.
    """

    def __init__(
        self,
        engine: AbstractKVEngine,
        *,
        entry_ttl_seconds: int | None = None,
        lock_timeout_seconds: float = 5.0,
        clock: Callable[[], float] = time.time,
        payload_model: type[BaseModel] | None = None,
    ) -> None:
        if entry_ttl_seconds is not None and entry_ttl_seconds < 1:
            raise ValueError("entry_ttl_seconds must be >= 1 or None")
        if lock_timeout_seconds <= 0:
            raise ValueError("lock_timeout_seconds must be > 0")

        self._engine = engine
        self.entry_ttl_seconds = entry_ttl_seconds
        self.lock_timeout_seconds = lock_timeout_seconds
        self._clock = clock
        self.payload_model = payload_model
        self._locks = PhraseLockTable()

    @property
    def engine(self) -> AbstractKVEngine:
        return self._engine

    @contextmanager
    def _locked(self, phrase: str, operation: str) -> Iterator[None]:
        try:
            with self._locks.hold(phrase, self.lock_timeout_seconds):
                yield
        except PhraseLockTimeout as exc:
            logger.error(
                "store.lock_timeout",
                extra={
                    "operation": operation,
                    "phrase_hash": hash_phrase(phrase),
                    "timeout_s": self.lock_timeout_seconds,
                },
            )
            raise StoreUnavailableError(
                message="Store is busy. Try again later.",
            ) from exc

    def _engine_failure(self, phrase: str, operation: str, exc: Exception) -> StoreUnavailableError:
        logger.error(
            "store.engine_error",
            extra={
                "operation": operation,
                "phrase_hash": hash_phrase(phrase),
                "error_type": type(exc).__name__,
                "error_msg": str(exc),
            },
        )
        return StoreUnavailableError(message="Failed to access the rendezvous store")

    def _is_expired(self, entry: StoredEntry, now: float) -> bool:
        if self.entry_ttl_seconds is None:
            return False
        return now - entry.created_at >= self.entry_ttl_seconds

    def _decode(self, phrase: str, raw: bytes) -> StoredEntry:
        try:
            entry = StoredEntry.model_validate_json(raw)
            if self.payload_model is not None:
                self.payload_model.model_validate(entry.payload)
        except ValidationError as exc:
            # The error text echoes input values, which may include the phrase.
            logger.error(
                "store.decode_error",
                extra={
                    "phrase_hash": hash_phrase(phrase),
                    "error_count": exc.error_count(),
                },
            )
            raise StoreUnavailableError(
                message="Failed to access the rendezvous store",
            ) from exc
        return entry

    def register(self, phrase: str, payload: dict[str, Any]) -> None:
        """Create the entry for ``phrase`` unless one is already live.

        An expired entry is replaced as if it were absent.

        Args:
            phrase: Validated passphrase.
            payload: JSON-serialisable payload returned to the claimer.

        Raises:
            PhraseConflictError: If a live entry already exists.
            StoreUnavailableError: On engine failure or lock timeout.
        """
        key = phrase.encode()
        with self._locked(phrase, "register"):
            now = self._clock()
            try:
                raw = self._engine.get(key)
            except KVEngineError as exc:
                raise self._engine_failure(phrase, "get", exc) from exc

            if raw is not None:
                existing = self._decode(phrase, raw)
                if not self._is_expired(existing, now):
                    logger.info(
                        "store.conflict",
                        extra={"phrase_hash": hash_phrase(phrase)},
                    )
                    raise PhraseConflictError(message="Phrase already exists")

            entry = StoredEntry(payload=payload, created_at=now)
            try:
                self._engine.put(key, entry.model_dump_json().encode())
            except KVEngineError as exc:
                raise self._engine_failure(phrase, "put", exc) from exc

        logger.info(
            "store.registered",
            extra={"phrase_hash": hash_phrase(phrase), "replaced_expired": raw is not None},
        )

    def claim(self, phrase: str) -> dict[str, Any]:
        """Return the payload for ``phrase`` and delete the entry.

        The payload is only handed out once the delete succeeded, so a failed
        delete leaves the entry claimable and reports no success.

        Args:
            phrase: Passphrase to claim.

        Returns:
            The payload stored at registration.

        Raises:
            PhraseNotFoundError: If no live entry exists.
            StoreUnavailableError: On engine failure, lock timeout or an
                undecodable stored value.
        """
        key = phrase.encode()
        with self._locked(phrase, "claim"):
            try:
                raw = self._engine.get(key)
            except KVEngineError as exc:
                raise self._engine_failure(phrase, "get", exc) from exc

            if raw is None:
                raise PhraseNotFoundError(message="Phrase not found")

            entry = self._decode(phrase, raw)
            expired = self._is_expired(entry, self._clock())

            try:
                self._engine.delete(key)
            except KVEngineError as exc:
                raise self._engine_failure(phrase, "delete", exc) from exc

        if expired:
            logger.info("store.expired", extra={"phrase_hash": hash_phrase(phrase)})
            raise PhraseNotFoundError(message="Phrase not found")

        logger.info("store.claimed", extra={"phrase_hash": hash_phrase(phrase)})
        return entry.payload
