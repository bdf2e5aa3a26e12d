"""
Structured error types for Weft.

Errors carry a category, a retryable flag, structured context and an
optional chained cause, so that executors can log them and attach them to
Outcomes without losing the original exception.

Architecture:
    ::

        WeftError  (category, retryable, context, cause)
          ├── ConfigError            (CONFIG)
          ├── CacheError             (CACHE)
          └── OrchestrationError     (ORCHESTRATION)
                └── see weft.orchestration.exceptions

Examples:
    >>> error = WeftError("provider returned 500", category=ErrorCategory.PROVIDER)
    >>> error.with_context(workflow="support.router", step="billing").to_dict()["context"]
    {'workflow': 'support.router', 'step': 'billing'}

Guardrails:
    ❌ DON'T: Swallow the original exception
    ✅ DO: Pass it as cause= for error chaining

Tags:
    error-handling, exception-hierarchy, weft
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and alerting."""

    PROVIDER = "PROVIDER"  # Model/provider call failed
    NETWORK = "NETWORK"  # Connection, DNS
    CACHE = "CACHE"  # Cache backend failure
    CONFIG = "CONFIG"  # Missing/invalid settings or declarations
    ORCHESTRATION = "ORCHESTRATION"  # Workflow execution control
    INTERNAL = "INTERNAL"  # Bugs, unexpected state
    UNKNOWN = "UNKNOWN"


@dataclass
class ErrorContext:
    """Structured metadata attached to an error.

    Attributes:
        workflow: Name of the workflow
        step: Step/branch/route name
        run_id: Run identifier
        capability: Capability identity
        metadata: Additional key-value pairs
    """

    workflow: str | None = None
    step: str | None = None
    run_id: str | None = None
    capability: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["workflow", "step", "run_id", "capability"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class WeftError(Exception):
    """Base exception for all Weft errors.

    Subclasses set ``default_category`` and ``default_retryable`` to give
    sensible defaults for their domain.
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> WeftError:
        """Add context to this error (fluent API)."""
        for key, value in kwargs.items():
            if key != "metadata" and hasattr(self.context, key):
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


class ConfigError(WeftError):
    """Missing or invalid configuration."""

    default_category = ErrorCategory.CONFIG


class CacheError(WeftError):
    """Cache backend failure."""

    default_category = ErrorCategory.CACHE
    default_retryable = True


class OrchestrationError(WeftError):
    """Workflow declaration or execution error."""

    default_category = ErrorCategory.ORCHESTRATION


def categorize_error(error: Exception) -> ErrorCategory:
    """Get the category of an error."""
    if isinstance(error, WeftError):
        return error.category
    if isinstance(error, (ConnectionError, OSError)):
        return ErrorCategory.NETWORK
    return ErrorCategory.UNKNOWN


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "WeftError",
    "ConfigError",
    "CacheError",
    "OrchestrationError",
    "categorize_error",
]
