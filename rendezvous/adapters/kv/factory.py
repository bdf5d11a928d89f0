"""Factory for creating the configured KV engine."""

from rendezvous.adapters.kv.base import AbstractKVEngine
from rendezvous.adapters.kv.in_memory import InMemoryKVEngine
from rendezvous.adapters.kv.redis_engine import RedisKVEngine
from rendezvous.core.config import StoreSettings, settings


def create_kv_engine(store_settings: StoreSettings | None = None) -> AbstractKVEngine:
    """Instantiate the KV engine selected by ``STORE_BACKEND``.

    Args:
        store_settings: Optional store settings; defaults to global settings.

    Returns:
        AbstractKVEngine: Ready-to-use engine instance.

    Raises:
        ValueError: If the backend name is unknown.
    """
    cfg = store_settings or settings.store
    backend = cfg.backend.lower()

    if backend == "memory":
        return InMemoryKVEngine()

    if backend == "redis":
        return RedisKVEngine.from_url(
            cfg.redis_url,
            key_prefix=cfg.key_prefix,
            expire_seconds=cfg.entry_ttl_seconds,
        )

    raise ValueError(f"Unknown store backend: '{backend}'. Supported backends: memory, redis")
