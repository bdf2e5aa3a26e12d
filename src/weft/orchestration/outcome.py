"""Outcome — universal envelope for a single capability invocation.

Manifesto:
    Every step, branch, route and classifier call ends in exactly one
    ``Outcome`` so that executors can decide success/failure, thread
    content to the next step, and sum cost without caring which kind of
    capability produced it.

ARCHITECTURE
────────────
::

    Outcome (frozen)
      ├── .ok(content, cost, tokens)         → success
      ├── .failure(kind, message, cost)      → failure (partial cost kept)
      ├── .skip(name, reason)                → predicate was false
      ├── .from_value(any)                   → coerce plain capability returns
      ├── .with_error(kind) / .cancelled()   → executor relabelling
      └── .as_cache_hit()                    → zero cost, cached=True

    ErrorKind  ── STEP_FAILURE, BRANCH_FAILURE, CANCELLED, ROUTE_NOT_FOUND, ...
    TokenUsage ── input_tokens, output_tokens

Example::

    outcome = Outcome.ok("positive", cost="0.0004", tokens=TokenUsage(120, 3))
    outcome.succeeded        # True
    outcome.cost             # Decimal('0.0004')

Tags:
    weft, orchestration, outcome, envelope, cost
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from decimal import Decimal
from enum import Enum
from typing import Any

ZERO = Decimal("0")


class ErrorKind(str, Enum):
    """Why an Outcome or a run failed."""

    STEP_FAILURE = "STEP_FAILURE"  # Required pipeline step failed
    OPTIONAL_STEP_FAILURE = "OPTIONAL_STEP_FAILURE"  # Recorded, run continues
    BRANCH_FAILURE = "BRANCH_FAILURE"  # Parallel branch failed
    CANCELLED = "CANCELLED"  # Stopped by fail-fast or budget, not its own error
    ROUTE_NOT_FOUND = "ROUTE_NOT_FOUND"  # Unknown label and no default route
    TIMEOUT_EXCEEDED = "TIMEOUT_EXCEEDED"  # Run ran past its timeout
    BUDGET_EXCEEDED = "BUDGET_EXCEEDED"  # Run spent past its max cost
    CAPABILITY_ERROR = "CAPABILITY_ERROR"  # Opaque provider/model failure


def to_decimal(value: Any) -> Decimal:
    """Coerce a cost value to ``Decimal`` (floats go through ``str``)."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


@dataclass(frozen=True)
class TokenUsage:
    """Token counts for one invocation.

    Attributes:
        input_tokens: Tokens sent to the model.
        output_tokens: Tokens generated by the model.
    """

    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def __add__(self, other: TokenUsage) -> TokenUsage:
        return TokenUsage(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
        )

    def to_dict(self) -> dict[str, int]:
        return {
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "total_tokens": self.total_tokens,
        }


@dataclass(frozen=True)
class Outcome:
    """Result of one step, branch, route or classifier invocation.

    Attributes:
        name: Step/branch/route name (set by the executor)
        content: Capability output; ``None`` for failures and skips
        cost: Money spent, ``>= 0`` (partial cost is kept on failures)
        tokens: Token usage
        duration_seconds: Wall time of the invocation
        error: ErrorKind if the invocation failed
        error_message: Human-readable failure reason
        error_type: Class name of the underlying exception, if any
        skipped: The step's predicate was false; no cost, no content
        cached: Served from the capability cache
        metadata: Capability-specific extras (model, finish reason ...)
    """

    name: str = ""
    content: Any = None
    cost: Decimal = ZERO
    tokens: TokenUsage = field(default_factory=TokenUsage)
    duration_seconds: float = 0.0
    error: ErrorKind | None = None
    error_message: str | None = None
    error_type: str | None = None
    skipped: bool = False
    cached: bool = False
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        cost = to_decimal(self.cost)
        if cost < 0:
            raise ValueError(f"Outcome cost must be >= 0, got {cost}")
        object.__setattr__(self, "cost", cost)

        if isinstance(self.error, str) and not isinstance(self.error, ErrorKind):
            object.__setattr__(self, "error", ErrorKind(self.error))
        if self.error is not None and not self.error_message:
            object.__setattr__(self, "error_message", self.error.value.lower().replace("_", " "))

        if self.skipped and (cost != ZERO or self.content is not None):
            raise ValueError("Skipped outcomes carry no cost or content")

    # =========================================================================
    # Factories
    # =========================================================================

    @classmethod
    def ok(
        cls,
        content: Any = None,
        *,
        name: str = "",
        cost: Any = ZERO,
        tokens: TokenUsage | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Outcome:
        """Create a successful outcome."""
        return cls(
            name=name,
            content=content,
            cost=cost,
            tokens=tokens or TokenUsage(),
            metadata=metadata or {},
        )

    @classmethod
    def failure(
        cls,
        kind: ErrorKind | str,
        message: str | None = None,
        *,
        name: str = "",
        cost: Any = ZERO,
        tokens: TokenUsage | None = None,
        error_type: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Outcome:
        """Create a failed outcome. ``cost`` is whatever was already spent."""
        return cls(
            name=name,
            cost=cost,
            tokens=tokens or TokenUsage(),
            error=ErrorKind(kind),
            error_message=message,
            error_type=error_type,
            metadata=metadata or {},
        )

    @classmethod
    def skip(cls, name: str, reason: str = "predicate was false") -> Outcome:
        """Create a skipped outcome (conditional step not run)."""
        return cls(name=name, skipped=True, metadata={"skip_reason": reason})

    @classmethod
    def from_value(cls, value: Any) -> Outcome:
        """Coerce a capability's return value into an Outcome.

        An ``Outcome`` is returned as-is; anything else becomes the content
        of a zero-cost successful outcome, so plain functions can serve as
        capabilities.
        """
        if isinstance(value, Outcome):
            return value
        return cls.ok(value)

    # =========================================================================
    # Status
    # =========================================================================

    @property
    def succeeded(self) -> bool:
        return self.error is None and not self.skipped

    @property
    def failed(self) -> bool:
        return self.error is not None

    # =========================================================================
    # Derivation (returns new outcome)
    # =========================================================================

    def named(self, name: str) -> Outcome:
        return replace(self, name=name)

    def with_error(self, kind: ErrorKind, message: str | None = None) -> Outcome:
        """Relabel as a failure of ``kind``; content is dropped, cost is kept."""
        return replace(
            self,
            content=None,
            error=kind,
            error_message=message or self.error_message or None,
        )

    def cancelled(self, reason: str = "cancelled") -> Outcome:
        """Discard content of an invocation finished after cancellation."""
        return self.with_error(ErrorKind.CANCELLED, reason)

    def as_cache_hit(self) -> Outcome:
        return replace(
            self,
            cost=ZERO,
            tokens=TokenUsage(),
            duration_seconds=0.0,
            cached=True,
        )

    def shared(self) -> Outcome:
        """Copy handed to single-flight followers; the leader paid for it."""
        if self.succeeded:
            return self.as_cache_hit()
        return replace(self, cost=ZERO, tokens=TokenUsage(), duration_seconds=0.0)

    # =========================================================================
    # Serialization
    # =========================================================================

    def to_dict(self) -> dict[str, Any]:
        """Serialize for cache storage and execution records."""
        result: dict[str, Any] = {
            "name": self.name,
            "content": self.content,
            "cost": str(self.cost),
            "tokens": self.tokens.to_dict(),
            "duration_seconds": self.duration_seconds,
            "skipped": self.skipped,
            "cached": self.cached,
        }
        if self.error is not None:
            result["error"] = self.error.value
            result["error_message"] = self.error_message
        if self.error_type:
            result["error_type"] = self.error_type
        if self.metadata:
            result["metadata"] = self.metadata
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Outcome:
        tokens = data.get("tokens") or {}
        return cls(
            name=data.get("name", ""),
            content=data.get("content"),
            cost=Decimal(data.get("cost", "0")),
            tokens=TokenUsage(
                input_tokens=tokens.get("input_tokens", 0),
                output_tokens=tokens.get("output_tokens", 0),
            ),
            duration_seconds=data.get("duration_seconds", 0.0),
            error=data.get("error"),
            error_message=data.get("error_message"),
            error_type=data.get("error_type"),
            skipped=data.get("skipped", False),
            cached=data.get("cached", False),
            metadata=data.get("metadata", {}),
        )

    def __repr__(self) -> str:
        if self.skipped:
            status = "SKIPPED"
        elif self.error is not None:
            status = f"FAIL({self.error.value})"
        else:
            status = "OK"
        return f"Outcome({self.name!r}, {status}, cost={self.cost})"


__all__ = ["ErrorKind", "Outcome", "TokenUsage", "to_decimal"]
