# bizmodel/core/kv_store.py
"""
Key-value store used by the session fallback cache.

The session gate only depends on the KeyValueStore protocol (get / set /
delete with a TTL), so the backing store is chosen at the dependency level:
the in-process TTLStore below for a single worker, or anything shared (Redis,
memcached) exposing the same three methods for multi-worker deployments.

Keys should be deterministic and namespaced, see make_key().
"""

import threading
import time
from functools import lru_cache
from typing import Any, Callable, Protocol


class KeyValueStore(Protocol):
    def get(self, key: str) -> Any | None: ...

    def set(self, key: str, value: Any, ttl_seconds: float) -> None: ...

    def delete(self, key: str) -> None: ...


def make_key(namespace: str, identifier: Any) -> str:
    """
    Utility to construct consistent cache keys.

    Example:
        make_key("fallback-session", "1.2.3.4|Mozilla") -> "fallback-session:1.2.3.4|Mozilla"
    """
    return f"{namespace}:{identifier}"


class TTLStore:
    """
    Thread-safe in-process store with per-entry expiry.

    Expired entries are dropped lazily on read and swept on writes, so the
    map cannot grow without bound on a long-lived worker.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        sweep_every: int = 256,
    ):
        self._clock = clock
        self._data: dict[str, tuple[Any, float]] = {}
        self._lock = threading.Lock()
        self._sweep_every = sweep_every
        self._writes = 0

    def get(self, key: str) -> Any | None:
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if self._clock() >= expires_at:
                del self._data[key]
                return None
            return value

    def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        with self._lock:
            self._data[key] = (value, self._clock() + ttl_seconds)
            self._writes += 1
            if self._writes % self._sweep_every == 0:
                self._sweep()

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)

    def _sweep(self) -> None:
        now = self._clock()
        for key in [k for k, (_, exp) in self._data.items() if now >= exp]:
            del self._data[key]


@lru_cache
def get_fallback_store() -> KeyValueStore:
    """
    FastAPI dependency for the session fallback cache.

    Cached so every request in this worker shares one store; override it in
    app.dependency_overrides to plug in a shared backend (or a fresh store
    in tests).
    """
    return TTLStore()
