"""
Centralized settings for Weft.

Manifesto:
    Defaults such as the cache TTL or the parallel worker cap are values,
    not ambient globals. ``WeftSettings`` is built once (from ``WEFT_*``
    environment variables and ``.env``) and handed explicitly to workflows
    and to :func:`weft.orchestration.caching.build_cache`.

Tags:
    weft, configuration, settings, pydantic

Doc-Types:
    api-reference
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class CacheBackendKind(str, Enum):
    """Which cache backend ``build_cache`` creates."""

    MEMORY = "memory"
    REDIS = "redis"


class WeftSettings(BaseSettings):
    """Weft configuration.

    All fields can be set via ``WEFT_*`` environment variables (e.g.
    ``WEFT_CACHE_DEFAULT_TTL_SECONDS=600``) or through a ``.env`` file.
    """

    model_config = SettingsConfigDict(
        env_prefix="WEFT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Run budget defaults ──────────────────────────────────────
    default_timeout_seconds: float | None = Field(
        default=None, description="Run timeout when a workflow declares none"
    )
    default_max_cost: Decimal | None = Field(
        default=None, description="Run cost ceiling when a workflow declares none"
    )

    # ── Parallel ─────────────────────────────────────────────────
    max_parallel_workers: int = Field(default=16, ge=1)

    # ── Cache ────────────────────────────────────────────────────
    cache_backend: CacheBackendKind = Field(default=CacheBackendKind.MEMORY)
    cache_default_ttl_seconds: int | None = Field(default=3600)
    cache_max_size: int = Field(default=10_000, ge=1)
    cache_namespace: str = Field(default="weft")
    redis_url: str = Field(default="redis://localhost:6379/0")

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json", description="json, console or auto")

    @field_validator("default_timeout_seconds")
    @classmethod
    def _positive_timeout(cls, value: float | None) -> float | None:
        if value is not None and value <= 0:
            raise ValueError("default_timeout_seconds must be positive")
        return value

    @field_validator("default_max_cost")
    @classmethod
    def _non_negative_cost(cls, value: Decimal | None) -> Decimal | None:
        if value is not None and value < 0:
            raise ValueError("default_max_cost must be >= 0")
        return value

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return value.upper()

    @field_validator("log_format")
    @classmethod
    def _known_format(cls, value: str) -> str:
        value = value.lower()
        if value not in ("json", "console", "auto"):
            raise ValueError("log_format must be json, console or auto")
        return value


_settings_cache: dict[str, WeftSettings] = {}


def get_settings(*, _force_reload: bool = False) -> WeftSettings:
    """Load and cache a :class:`WeftSettings` instance for application code.

    Library code takes settings as a constructor argument instead.
    """
    if not _force_reload and "default" in _settings_cache:
        return _settings_cache["default"]
    settings = WeftSettings()
    _settings_cache["default"] = settings
    return settings


def clear_settings_cache() -> None:
    """Clear the settings cache (primarily for testing)."""
    _settings_cache.clear()


__all__ = [
    "CacheBackendKind",
    "WeftSettings",
    "get_settings",
    "clear_settings_cache",
]
