"""
Weft core — cross-cutting primitives shared by the orchestration engine.

MODULE MAP
──────────
- errors.py    ─ WeftError hierarchy + ErrorCategory
- logging.py   ─ structlog configuration, get_logger
- hashing.py   ─ canonical_json, compute_hash (cache fingerprints)
- cache.py     ─ CacheBackend protocol, InMemoryCache, RedisCache
- settings.py  ─ WeftSettings (pydantic-settings)
"""

from weft.core.cache import CacheBackend, InMemoryCache, RedisCache
from weft.core.errors import (
    CacheError,
    ConfigError,
    ErrorCategory,
    ErrorContext,
    OrchestrationError,
    WeftError,
    categorize_error,
)
from weft.core.hashing import canonical_json, compute_hash
from weft.core.logging import (
    LogContext,
    configure_logging,
    configure_logging_from_settings,
    get_logger,
)
from weft.core.settings import CacheBackendKind, WeftSettings, get_settings

__all__ = [
    # Cache
    "CacheBackend",
    "InMemoryCache",
    "RedisCache",
    # Errors
    "CacheError",
    "ConfigError",
    "ErrorCategory",
    "ErrorContext",
    "OrchestrationError",
    "WeftError",
    "categorize_error",
    # Hashing
    "canonical_json",
    "compute_hash",
    # Logging
    "LogContext",
    "configure_logging",
    "configure_logging_from_settings",
    "get_logger",
    # Settings
    "CacheBackendKind",
    "WeftSettings",
    "get_settings",
]
