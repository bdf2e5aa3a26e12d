"""
Capability cache — memoize deterministic capability calls by fingerprint.

Manifesto:
    Embedding the same text with the same model twice is money thrown
    away. ``CapabilityCache`` keys every cacheable invocation by a
    canonical fingerprint and serves repeats at zero cost. Under Parallel
    fan-out several branches may ask for the same fingerprint at once;
    only one of them computes, the others wait for its Outcome.

ARCHITECTURE
────────────
::

    CapabilityCache(backend, default_ttl_seconds, ttl_overrides, namespace)
    ├── .fingerprint(capability, input, config) → sha256 hex
    ├── .ttl_for(capability, policy)            → policy → override → default
    └── .fetch(capability, input, compute, cancel=, policy=)
          ├── hit   → stored Outcome, cost 0, tokens 0, cached=True
          ├── miss  → single-flight leader runs compute()
          │            └── success stored with TTL, failures never stored
          └── wait  → followers block on the leader, then take its Outcome
                       (zero cost; a CANCELLED or raising leader is retried)

    CachePolicy(ttl_seconds, config)   attached to a Step / Branch / Route

Fingerprint inputs: namespace, capability identity, capability version,
canonical JSON of ``capability.cache_config`` merged with the policy's
``config`` (model, dimensions ...), canonical JSON of the input. Bumping
a capability's ``version`` invalidates its entries.

Backend errors are logged and treated as a miss; a broken cache never
fails a run.

Tags:
    weft, cache, fingerprint, single-flight, embeddings
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from weft.core.cache import CacheBackend, InMemoryCache, RedisCache
from weft.core.errors import CacheError, ConfigError, categorize_error
from weft.core.hashing import canonical_json, compute_hash
from weft.core.logging import get_logger
from weft.core.settings import CacheBackendKind, WeftSettings, get_settings
from weft.orchestration.capability import capability_identity, capability_version
from weft.orchestration.outcome import ErrorKind, Outcome

if TYPE_CHECKING:
    from weft.orchestration.capability import CancellationToken

logger = get_logger(__name__)

_FOLLOWER_POLL_SECONDS = 0.05


@dataclass(frozen=True)
class CachePolicy:
    """Opt-in caching for one step, branch or route.

    Attributes:
        ttl_seconds: Entry lifetime; ``None`` defers to the cache's
            per-capability override, then its default.
        config: Extra fingerprint components (e.g. ``{"dimensions": 256}``).
    """

    ttl_seconds: int | None = None
    config: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.ttl_seconds is not None and self.ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be positive, got {self.ttl_seconds}")


class _Flight:
    """One in-progress computation for a key."""

    __slots__ = ("done", "outcome")

    def __init__(self) -> None:
        self.done = threading.Event()
        self.outcome: Outcome | None = None


class CapabilityCache:
    """Process-wide memo of capability Outcomes.

    Safe to share across runs and threads: the backend is expected to be
    thread-safe and single-flight bookkeeping holds its own lock.
    """

    def __init__(
        self,
        backend: CacheBackend | None = None,
        *,
        default_ttl_seconds: int | None = 3600,
        ttl_overrides: Mapping[str, int] | None = None,
        namespace: str = "weft",
    ):
        self.backend: CacheBackend = backend if backend is not None else InMemoryCache()
        self.default_ttl_seconds = default_ttl_seconds
        self.ttl_overrides = dict(ttl_overrides or {})
        self.namespace = namespace
        self._lock = threading.Lock()
        self._flights: dict[str, _Flight] = {}
        self.hits = 0
        self.misses = 0

    # =========================================================================
    # Keys & TTL
    # =========================================================================

    def fingerprint(
        self,
        capability: Any,
        input: Any,
        config: Mapping[str, Any] | None = None,
    ) -> str:
        merged = {**getattr(capability, "cache_config", {}), **(config or {})}
        digest = compute_hash(
            self.namespace,
            capability_identity(capability),
            capability_version(capability),
            canonical_json(merged),
            canonical_json(input),
        )
        return f"{self.namespace}:{digest}"

    def ttl_for(self, capability: Any, policy: CachePolicy | None = None) -> int | None:
        if policy is not None and policy.ttl_seconds is not None:
            return policy.ttl_seconds
        override = self.ttl_overrides.get(capability_identity(capability))
        if override is not None:
            return override
        return self.default_ttl_seconds

    # =========================================================================
    # Fetch
    # =========================================================================

    def fetch(
        self,
        capability: Any,
        input: Any,
        compute: Callable[[], Outcome],
        *,
        cancel: CancellationToken | None = None,
        policy: CachePolicy | None = None,
    ) -> Outcome:
        """Return the cached Outcome for this call, computing it at most once.

        ``compute`` performs the real invocation and must return an Outcome.
        Followers that waited on a leader get its Outcome at zero cost, a
        failed one included (failures are never stored). Exceptions from
        ``compute`` propagate to the leader; waiting followers then retry
        on their own, as they do when the leader's Outcome is CANCELLED.
        """
        key = self.fingerprint(capability, input, policy.config if policy else None)
        identity = capability_identity(capability)

        while True:
            stored = self._read(key)
            if stored is not None:
                self._count_hit(key, identity)
                return stored.as_cache_hit()

            with self._lock:
                flight = self._flights.get(key)
                leader = flight is None
                if leader:
                    flight = _Flight()
                    self._flights[key] = flight

            if leader:
                return self._lead(key, identity, capability, compute, flight, policy)

            while not flight.done.wait(_FOLLOWER_POLL_SECONDS):
                if cancel is not None:
                    cancel.checkpoint()
            if cancel is not None:
                cancel.checkpoint()
            shared = flight.outcome
            if shared is None or shared.error == ErrorKind.CANCELLED:
                # The leader raised or was stopped by its own run; try again.
                continue
            if shared.succeeded:
                self._count_hit(key, identity)
            else:
                logger.debug("cache.shared_failure", key=key, capability=identity)
            return shared.shared()

    def _lead(
        self,
        key: str,
        identity: str,
        capability: Any,
        compute: Callable[[], Outcome],
        flight: _Flight,
        policy: CachePolicy | None,
    ) -> Outcome:
        try:
            # A previous flight may have stored the value after our first read.
            stored = self._read(key)
            if stored is not None:
                self._count_hit(key, identity)
                flight.outcome = stored
                return stored.as_cache_hit()

            with self._lock:
                self.misses += 1
            logger.debug("cache.miss", key=key, capability=identity)

            outcome = compute()
            flight.outcome = outcome
            if outcome.succeeded:
                self._write(key, outcome, self.ttl_for(capability, policy))
            return outcome
        finally:
            with self._lock:
                self._flights.pop(key, None)
            flight.done.set()

    def invalidate(self, capability: Any, input: Any, config: Mapping[str, Any] | None = None) -> None:
        self.backend.delete(self.fingerprint(capability, input, config))

    def clear(self) -> None:
        self.backend.clear()

    def stats(self) -> dict[str, int]:
        with self._lock:
            return {"hits": self.hits, "misses": self.misses, "in_flight": len(self._flights)}

    # =========================================================================
    # Backend access
    # =========================================================================

    def _count_hit(self, key: str, identity: str) -> None:
        with self._lock:
            self.hits += 1
        logger.debug("cache.hit", key=key, capability=identity)

    def _read(self, key: str) -> Outcome | None:
        try:
            data = self.backend.get(key)
        except Exception as exc:
            self._log_backend_error("get", key, exc)
            return None
        if data is None:
            return None
        return Outcome.from_dict(data)

    def _write(self, key: str, outcome: Outcome, ttl_seconds: int | None) -> None:
        try:
            self.backend.set(key, outcome.to_dict(), ttl_seconds=ttl_seconds)
        except Exception as exc:
            self._log_backend_error("set", key, exc)

    def _log_backend_error(self, op: str, key: str, exc: Exception) -> None:
        error = CacheError(f"cache {op} failed: {exc}", cause=exc).with_context(key=key, op=op)
        logger.warning("cache.error", **error.to_dict(), cause_category=categorize_error(exc).value)


def build_cache(settings: WeftSettings | None = None, **kwargs: Any) -> CapabilityCache:
    """Create a CapabilityCache from settings.

    Example:
        cache = build_cache(WeftSettings(cache_backend="redis"))

    Raises:
        ConfigError: ``cache_backend`` is ``redis`` but the ``redis``
            package is not installed.
    """
    settings = settings if settings is not None else get_settings()
    if settings.cache_backend == CacheBackendKind.REDIS:
        try:
            backend: CacheBackend = RedisCache(
                settings.redis_url,
                default_ttl_seconds=settings.cache_default_ttl_seconds,
            )
        except ImportError as exc:
            raise ConfigError(
                "cache_backend=redis requires the redis extra (pip install weft-core[redis])",
                cause=exc,
            ) from exc
    else:
        backend = InMemoryCache(
            max_size=settings.cache_max_size,
            default_ttl_seconds=settings.cache_default_ttl_seconds,
        )
    return CapabilityCache(
        backend,
        default_ttl_seconds=settings.cache_default_ttl_seconds,
        namespace=settings.cache_namespace,
        **kwargs,
    )


__all__ = ["CachePolicy", "CapabilityCache", "build_cache"]
