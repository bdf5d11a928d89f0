"""Redis-backed KV engine.

Only GET, SET, DEL and EXISTS are used; atomicity of register/claim comes
from the store's own locking, so the store must run in a single process when
this backend is shared.
"""

from __future__ import annotations

import logging

import redis

from rendezvous.adapters.kv.base import AbstractKVEngine, KVEngineError

logger = logging.getLogger(__name__)


class RedisKVEngine(AbstractKVEngine):
    """KV engine on top of a ``redis.Redis`` client.

    Keys are namespaced with ``key_prefix``. When ``expire_seconds`` is set,
    values are written with a server-side expiry so abandoned entries are
    reclaimed by Redis itself.
    """

    def __init__(
        self,
        client: redis.Redis,
        *,
        key_prefix: str = "",
        expire_seconds: int | None = None,
    ) -> None:
        self._client = client
        self._prefix = key_prefix.encode()
        self._expire_seconds = expire_seconds

    @classmethod
    def from_url(
        cls,
        url: str,
        *,
        key_prefix: str = "",
        expire_seconds: int | None = None,
    ) -> "RedisKVEngine":
        """Build an engine from a ``redis://`` URL."""
        client = redis.Redis.from_url(url)
        return cls(client, key_prefix=key_prefix, expire_seconds=expire_seconds)

    def _key(self, key: bytes) -> bytes:
        return self._prefix + key

    def get(self, key: bytes) -> bytes | None:
        try:
            return self._client.get(self._key(key))
        except redis.RedisError as exc:
            logger.error("kv.redis_error", extra={"operation": "get", "error": str(exc)})
            raise KVEngineError(f"redis GET failed: {exc}") from exc

    def put(self, key: bytes, value: bytes) -> None:
        try:
            self._client.set(self._key(key), value, ex=self._expire_seconds)
        except redis.RedisError as exc:
            logger.error("kv.redis_error", extra={"operation": "put", "error": str(exc)})
            raise KVEngineError(f"redis SET failed: {exc}") from exc

    def delete(self, key: bytes) -> None:
        try:
            self._client.delete(self._key(key))
        except redis.RedisError as exc:
            logger.error("kv.redis_error", extra={"operation": "delete", "error": str(exc)})
            raise KVEngineError(f"redis DEL failed: {exc}") from exc

    def exists(self, key: bytes) -> bool:
        try:
            return bool(self._client.exists(self._key(key)))
        except redis.RedisError as exc:
            logger.error("kv.redis_error", extra={"operation": "exists", "error": str(exc)})
            raise KVEngineError(f"redis EXISTS failed: {exc}") from exc

    def close(self) -> None:
        try:
            self._client.close()
        except redis.RedisError as exc:
            raise KVEngineError(f"redis close failed: {exc}") from exc
