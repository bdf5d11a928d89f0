"""KV engine interface."""

from __future__ import annotations

from abc import ABC, abstractmethod


class KVEngineError(Exception):
    """Raised by engines on any I/O or backend failure."""


class AbstractKVEngine(ABC):
    """Opaque byte-string key-value store.

    Each primitive must be individually atomic; nothing is guaranteed across
    calls.
    """

    @abstractmethod
    def get(self, key: bytes) -> bytes | None:
        """Return the stored value, or None when the key is absent.

        Raises:
            KVEngineError: If the backend fails.
        """
        raise NotImplementedError

    @abstractmethod
    def put(self, key: bytes, value: bytes) -> None:
        """Store ``value`` under ``key``, replacing any previous value.

        Raises:
            KVEngineError: If the backend fails.
        """
        raise NotImplementedError

    @abstractmethod
    def delete(self, key: bytes) -> None:
        """Remove ``key``. Deleting an absent key is not an error.

        Raises:
            KVEngineError: If the backend fails.
        """
        raise NotImplementedError

    def exists(self, key: bytes) -> bool:
        """Return True when ``key`` holds a value."""
        return self.get(key) is not None

    def close(self) -> None:
        """Release backend resources."""
