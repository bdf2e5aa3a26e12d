"""
Caching abstraction with in-memory and Redis backends.

Provides a ``CacheBackend`` protocol used by
:class:`weft.orchestration.caching.CapabilityCache` to memoize
capability Outcomes (embeddings above all).

Manifesto:
    Deterministic capabilities are paid for once. The backend only stores
    plain values with a TTL; fingerprinting and single-flight belong to the
    capability cache on top of it.

    - **Protocol-based:** CacheBackend defines the contract
    - **InMemoryCache:** single process, bounded LRU, lock-protected
    - **RedisCache:** shared across processes, JSON values

Architecture:
    ::

        CacheBackend (Protocol)
        ├── InMemoryCache  — single-process, bounded LRU
        └── RedisCache     — distributed, requires the ``redis`` extra

        API: get(key) → value | None
             set(key, value, ttl_seconds=None)
             delete(key)
             exists(key) → bool
             clear()

Examples:
    >>> cache = InMemoryCache(max_size=1000, default_ttl_seconds=3600)
    >>> cache.set("embedding:abc", {"content": [0.1, 0.2]})
    >>> cache.get("embedding:abc")
    {'content': [0.1, 0.2]}

Guardrails:
    ❌ DON'T: Use InMemoryCache in multi-process deployments (no sharing)
    ✅ DO: Use RedisCache when several workers should share embeddings

Tags:
    cache, redis, in-memory, ttl, weft
"""

from __future__ import annotations

import json
import threading
import time
from collections import OrderedDict
from collections.abc import Callable
from typing import Any, Protocol


class CacheBackend(Protocol):
    """Protocol for cache backend implementations.

    Keys are strings, values are JSON-serializable for shared backends.
    """

    def get(self, key: str) -> Any | None:
        """Return the cached value, or ``None`` if missing or expired."""
        ...

    def set(self, key: str, value: Any, *, ttl_seconds: int | None = None) -> None:
        """Store a value. ``ttl_seconds=None`` → use the backend default."""
        ...

    def delete(self, key: str) -> None:
        """Remove a key. No-op if it does not exist."""
        ...

    def exists(self, key: str) -> bool:
        """``True`` if the key exists and has not expired."""
        ...

    def clear(self) -> None:
        """Remove all keys."""
        ...


# ------------------------------------------------------------------ #
# In-Memory Cache
# ------------------------------------------------------------------ #


class InMemoryCache:
    """Bounded in-memory cache with TTL support.

    Uses LRU eviction when ``max_size`` is reached. All operations hold a
    lock, so one instance can be shared by concurrent Parallel branches.

    Example:
        cache = InMemoryCache(max_size=500, default_ttl_seconds=1800)
        cache.set("k", {"v": 1}, ttl_seconds=60)
    """

    def __init__(
        self,
        *,
        max_size: int = 10_000,
        default_ttl_seconds: int | None = 3600,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize in-memory cache.

        Args:
            max_size: Maximum number of keys (LRU eviction after).
            default_ttl_seconds: Default TTL for all keys (``None`` → no expiry).
            clock: Wall clock in seconds; injectable for tests.
        """
        self._store: OrderedDict[str, tuple[Any, float | None]] = OrderedDict()
        self._max_size = max_size
        self._default_ttl = default_ttl_seconds
        self._clock = clock
        self._lock = threading.RLock()

    def get(self, key: str) -> Any | None:
        """Retrieve a value by key."""
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None

            value, expires_at = entry
            if expires_at is not None and self._clock() >= expires_at:
                del self._store[key]
                return None

            self._store.move_to_end(key)
            return value

    def set(self, key: str, value: Any, *, ttl_seconds: int | None = None) -> None:
        """Store a value with optional TTL."""
        ttl = ttl_seconds if ttl_seconds is not None else self._default_ttl
        with self._lock:
            expires_at = (self._clock() + ttl) if ttl else None

            if key not in self._store and len(self._store) >= self._max_size:
                self._store.popitem(last=False)

            self._store[key] = (value, expires_at)
            self._store.move_to_end(key)

    def delete(self, key: str) -> None:
        """Remove a key from the cache."""
        with self._lock:
            self._store.pop(key, None)

    def exists(self, key: str) -> bool:
        """Check if key exists and is not expired."""
        return self.get(key) is not None

    def clear(self) -> None:
        """Remove all keys."""
        with self._lock:
            self._store.clear()

    def size(self) -> int:
        """Return current number of cached keys (expired ones included until read)."""
        with self._lock:
            return len(self._store)


# ------------------------------------------------------------------ #
# Redis Cache — Optional
# ------------------------------------------------------------------ #


class RedisCache:
    """Redis-backed distributed cache.

    Requires the ``redis`` package (``pip install weft-core[redis]``).
    Values are stored as JSON.

    Example:
        cache = RedisCache("redis://localhost:6379/0", default_ttl_seconds=600)

    Raises:
        ImportError: If ``redis`` package is not installed.
    """

    def __init__(
        self,
        url: str = "redis://localhost:6379/0",
        *,
        default_ttl_seconds: int | None = 3600,
    ):
        try:
            import redis
        except ImportError as exc:
            msg = (
                "Redis backend requires 'redis' package. "
                "Install with: pip install weft-core[redis]"
            )
            raise ImportError(msg) from exc

        self._client = redis.from_url(url, decode_responses=False)
        self._default_ttl = default_ttl_seconds

    def get(self, key: str) -> Any | None:
        """Retrieve a value by key."""
        raw = self._client.get(key)
        if raw is None:
            return None
        return json.loads(raw)

    def set(self, key: str, value: Any, *, ttl_seconds: int | None = None) -> None:
        """Store a value with optional TTL."""
        ttl = ttl_seconds if ttl_seconds is not None else self._default_ttl
        serialized = json.dumps(value)

        if ttl:
            self._client.setex(key, ttl, serialized)
        else:
            self._client.set(key, serialized)

    def delete(self, key: str) -> None:
        """Remove a key from the cache."""
        self._client.delete(key)

    def exists(self, key: str) -> bool:
        """Check if key exists."""
        return bool(self._client.exists(key))

    def clear(self) -> None:
        """Flush the current Redis database."""
        self._client.flushdb()


__all__ = [
    "CacheBackend",
    "InMemoryCache",
    "RedisCache",
]
