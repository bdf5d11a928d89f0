"""In-memory KV engine (default backend).

Contents vanish with the process, which suits entries that only live for
seconds to minutes.
"""

from __future__ import annotations

import threading

from rendezvous.adapters.kv.base import AbstractKVEngine


class InMemoryKVEngine(AbstractKVEngine):
    """Dict-backed engine guarded by a lock."""

    def __init__(self) -> None:
        self._data: dict[bytes, bytes] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return f"InMemoryKVEngine(size={len(self)})"

    def get(self, key: bytes) -> bytes | None:
        with self._lock:
            return self._data.get(key)

    def put(self, key: bytes, value: bytes) -> None:
        with self._lock:
            self._data[key] = bytes(value)

    def delete(self, key: bytes) -> None:
        with self._lock:
            self._data.pop(key, None)

    def exists(self, key: bytes) -> bool:
        with self._lock:
            return key in self._data

    def close(self) -> None:
        with self._lock:
            self._data.clear()
