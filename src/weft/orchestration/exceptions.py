"""Orchestration exceptions — structured error hierarchy.

All orchestration exceptions inherit from ``weft.core.errors.OrchestrationError``
so that callers can catch the entire family with a single ``except`` clause.
Only declaration errors reach callers: everything raised while a run is in
progress is turned into Outcomes and a ``WorkflowResult`` by the executors.

Hierarchy::

    WeftError  (from weft.core.errors)
      ├── CapabilityError             ── provider/model call failed
      └── OrchestrationError
            ├── WorkflowDeclarationError  ── invalid workflow declaration
            ├── DuplicateOutcomeError     ── a name was written twice to a Context
            ├── OperationCancelled        ── checkpoint hit after cancellation
            └── RunAborted                ── BudgetGuard stopped the run
                  ├── BudgetExceededError
                  └── RunTimeoutError
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from weft.core.errors import ErrorCategory, OrchestrationError, WeftError
from weft.orchestration.outcome import ZERO, ErrorKind, TokenUsage, to_decimal


class WorkflowDeclarationError(OrchestrationError):
    """Raised when a workflow is declared with an invalid configuration."""

    default_category = ErrorCategory.CONFIG

    def __init__(self, message: str, workflow: str | None = None):
        self.workflow = workflow
        super().__init__(message)
        if workflow:
            self.with_context(workflow=workflow)


class DuplicateOutcomeError(OrchestrationError):
    """Raised when a Context already holds an outcome for a name."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Context already holds an outcome for {name!r}")


class CapabilityError(WeftError):
    """Opaque failure from the underlying model/provider call.

    Capabilities raise this (or return a failed Outcome). ``cost`` and
    ``tokens`` carry whatever was already consumed; that accounting is
    best-effort and depends on the provider's billing granularity.
    """

    default_category = ErrorCategory.PROVIDER

    def __init__(
        self,
        message: str,
        *,
        cause: Exception | None = None,
        cost: Any = ZERO,
        tokens: TokenUsage | None = None,
        retryable: bool | None = None,
    ):
        super().__init__(message, cause=cause, retryable=retryable)
        self.cost: Decimal = to_decimal(cost)
        self.tokens = tokens or TokenUsage()


class OperationCancelled(OrchestrationError):
    """Raised at a cooperative checkpoint once the run's token is cancelled."""

    def __init__(
        self,
        reason: str = "cancelled",
        *,
        cost: Any = ZERO,
        tokens: TokenUsage | None = None,
    ):
        self.reason = reason
        self.cost: Decimal = to_decimal(cost)
        self.tokens = tokens or TokenUsage()
        super().__init__(f"Operation cancelled: {reason}")


class RunAborted(OrchestrationError):
    """Base for BudgetGuard aborts. ``kind`` is the run-level ErrorKind.

    ``started`` is False when the abort was detected before the capability
    was called; the member is then omitted rather than recorded CANCELLED.
    """

    kind: ErrorKind = ErrorKind.BUDGET_EXCEEDED
    started: bool = True


class BudgetExceededError(RunAborted):
    """Cumulative run cost went past ``max_cost``."""

    kind = ErrorKind.BUDGET_EXCEEDED

    def __init__(self, max_cost: Decimal, spent: Decimal):
        self.max_cost = max_cost
        self.spent = spent
        super().__init__(
            f"Cost budget exceeded: {spent} spent > {max_cost} max "
            f"({spent - max_cost} over)"
        )


class RunTimeoutError(RunAborted):
    """Run wall time went past ``timeout_seconds``."""

    kind = ErrorKind.TIMEOUT_EXCEEDED

    def __init__(self, timeout_seconds: float, elapsed: float):
        self.timeout_seconds = timeout_seconds
        self.elapsed = elapsed
        super().__init__(
            f"Run timed out after {timeout_seconds}s (ran for {elapsed:.2f}s)"
        )


__all__ = [
    "WorkflowDeclarationError",
    "DuplicateOutcomeError",
    "CapabilityError",
    "OperationCancelled",
    "RunAborted",
    "BudgetExceededError",
    "RunTimeoutError",
]
