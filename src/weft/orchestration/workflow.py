"""Workflow — shared run machinery for Pipeline, Parallel and Router.

Manifesto:
    A workflow is declared once, immutably, and then called many times.
Each ``call(input)`` creates a fresh run: its own Context, BudgetGuard and
CancellationToken, so concurrent calls never observe each other. The
topology-specific executors only decide *what* to invoke next; every
invocation goes through :meth:`Workflow._invoke`, which applies the budget
check, the cache and exception-to-Outcome mapping the same way for all
three.

ARCHITECTURE
────────────
::

    Workflow (base)
      ├── declaration          ── WorkflowDeclaration(name, version, topology, members, ...)
      ├── call(input)          ── RunState → _execute(run) → WorkflowResult
      │     ├── workflow.start / ExecutionRecord "created"
      │     └── workflow.complete / ExecutionRecord "updated"
      └── _invoke(run, name, capability, payload)
            ├── guard.check()                  → RunAborted(started=False) propagates
            ├── cache.fetch(...) if policy     → zero-cost hit
            ├── capability.invoke(payload, cancel=token)
            │     ├── OperationCancelled → CANCELLED outcome (partial cost)
            │     ├── CapabilityError    → CAPABILITY_ERROR outcome (partial cost)
            │     └── other Exception    → CAPABILITY_ERROR outcome
            └── guard.charge(outcome.cost)

    Pipeline(Workflow)   Parallel(Workflow)   Router(Workflow)

KEY CLASSES
───────────
- ``Workflow``             — base class (this module)
- ``WorkflowDeclaration``  — introspection surface for external tooling
- ``RunState``             — per-call mutable state, owned by one run

Tags:
    weft, orchestration, workflow, budget, cache, lifecycle
"""

from __future__ import annotations

import time
import uuid
from collections.abc import Callable, Iterable
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from weft.core.errors import categorize_error
from weft.core.logging import get_logger
from weft.core.settings import WeftSettings, get_settings
from weft.orchestration.budget import BudgetGuard
from weft.orchestration.caching import CachePolicy, CapabilityCache, build_cache
from weft.orchestration.capability import CancellationToken, capability_identity
from weft.orchestration.context import Context
from weft.orchestration.exceptions import (
    CapabilityError,
    OperationCancelled,
    RunAborted,
    WorkflowDeclarationError,
)
from weft.orchestration.outcome import ErrorKind, Outcome, to_decimal
from weft.orchestration.recorder import ExecutionRecord, ExecutionRecorder, NullRecorder
from weft.orchestration.result import Topology, WorkflowResult, WorkflowStatus

logger = get_logger(__name__)


@dataclass(frozen=True)
class WorkflowDeclaration:
    """What a workflow is, without running it.

    Attributes:
        name: Workflow name
        version: Declared version string
        topology: pipeline / parallel / router
        members: Ordered step, branch or route names
        timeout_seconds: Run timeout, or ``None``
        max_cost: Run cost ceiling, or ``None``
    """

    name: str
    version: str
    topology: Topology
    members: tuple[str, ...]
    timeout_seconds: float | None = None
    max_cost: Decimal | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "topology": self.topology.value,
            "members": list(self.members),
            "timeout_seconds": self.timeout_seconds,
            "max_cost": None if self.max_cost is None else str(self.max_cost),
        }


@dataclass
class RunState:
    """Mutable state of one run. Never shared between calls."""

    run_id: str
    context: Context
    guard: BudgetGuard
    cancel: CancellationToken
    started_at: datetime
    started_clock: float


def check_unique_names(names: Iterable[str], kind: str, workflow: str) -> tuple[str, ...]:
    """Validate member names; returns them as a tuple in declaration order."""
    ordered = tuple(names)
    if not ordered:
        raise WorkflowDeclarationError(f"Workflow declares no {kind}s", workflow=workflow)
    seen: set[str] = set()
    for name in ordered:
        if not isinstance(name, str) or not name:
            raise WorkflowDeclarationError(f"Invalid {kind} name: {name!r}", workflow=workflow)
        if name in seen:
            raise WorkflowDeclarationError(f"Duplicate {kind} name: {name!r}", workflow=workflow)
        seen.add(name)
    return ordered


class Workflow:
    """Base class for the three executors.

    Subclasses set ``topology``, validate their members in ``__init__`` and
    implement ``_execute(run)``.

    Args:
        name: Workflow name (used in logs, records and results)
        version: Version string reported in the declaration
        timeout_seconds: Run wall-time ceiling; defaults to settings
        max_cost: Run cost ceiling; defaults to settings
        cache: Shared CapabilityCache; built from settings when a member
            declares a CachePolicy and none is given
        recorder: Receives execution records (default: discard)
        settings: Explicit configuration. When omitted, the process-wide
            ``get_settings()`` instance is used (``WEFT_*`` environment and
            ``.env``, loaded once)
    """

    topology: Topology

    def __init__(
        self,
        name: str,
        *,
        version: str = "1.0",
        timeout_seconds: float | None = None,
        max_cost: Any = None,
        cache: CapabilityCache | None = None,
        recorder: ExecutionRecorder | None = None,
        settings: WeftSettings | None = None,
    ):
        if not name:
            raise WorkflowDeclarationError("Workflow name must be non-empty")
        self.name = name
        self.version = str(version)
        self.settings = settings if settings is not None else get_settings()

        if timeout_seconds is None:
            timeout_seconds = self.settings.default_timeout_seconds
        if timeout_seconds is not None and timeout_seconds <= 0:
            raise WorkflowDeclarationError(
                f"timeout_seconds must be positive, got {timeout_seconds}", workflow=name
            )
        if max_cost is None:
            max_cost = self.settings.default_max_cost
        if max_cost is not None:
            max_cost = to_decimal(max_cost)
            if max_cost < 0:
                raise WorkflowDeclarationError(
                    f"max_cost must be >= 0, got {max_cost}", workflow=name
                )

        self.timeout_seconds = timeout_seconds
        self.max_cost: Decimal | None = max_cost
        self.cache = cache
        self.recorder: ExecutionRecorder = recorder if recorder is not None else NullRecorder()

    def _ensure_cache(self, policies: Iterable[CachePolicy | None]) -> None:
        if self.cache is None and any(p is not None for p in policies):
            self.cache = build_cache(self.settings)

    # =========================================================================
    # Declaration surface
    # =========================================================================

    @property
    def members(self) -> tuple[str, ...]:
        raise NotImplementedError

    @property
    def declaration(self) -> WorkflowDeclaration:
        return WorkflowDeclaration(
            name=self.name,
            version=self.version,
            topology=self.topology,
            members=self.members,
            timeout_seconds=self.timeout_seconds,
            max_cost=self.max_cost,
        )

    # =========================================================================
    # Run lifecycle
    # =========================================================================

    def call(self, input: Any = None) -> WorkflowResult:
        """Run the workflow once. Never raises for run-time failures.

        Returns:
            WorkflowResult; inspect ``status`` and ``error``.
        """
        run = self._start_run(input)
        logger.info(
            "workflow.start",
            workflow=self.name,
            run_id=run.run_id,
            topology=self.topology.value,
            timeout_seconds=self.timeout_seconds,
            max_cost=None if self.max_cost is None else str(self.max_cost),
        )
        self._emit(
            ExecutionRecord.started(
                workflow_name=self.name,
                workflow_version=self.version,
                topology=self.topology,
                run_id=run.run_id,
                started_at=run.started_at,
            )
        )

        result = self._execute(run)

        logger.info(
            "workflow.complete",
            workflow=self.name,
            run_id=run.run_id,
            status=result.status.value,
            error=result.error.value if result.error else None,
            total_cost=str(result.total_cost),
            duration_seconds=round(result.total_duration_seconds, 4),
        )
        self._emit(ExecutionRecord.finished(result, workflow_version=self.version))
        return result

    __call__ = call

    def _start_run(self, input: Any) -> RunState:
        run_id = str(uuid.uuid4())
        guard = BudgetGuard(
            timeout_seconds=self.timeout_seconds,
            max_cost=self.max_cost,
        ).start()
        return RunState(
            run_id=run_id,
            context=Context(input, run_id=run_id, workflow_name=self.name),
            guard=guard,
            cancel=CancellationToken(guard),
            started_at=datetime.now(UTC),
            started_clock=time.perf_counter(),
        )

    def _execute(self, run: RunState) -> WorkflowResult:
        raise NotImplementedError

    def _finish(
        self,
        run: RunState,
        status: WorkflowStatus,
        *,
        error: ErrorKind | None = None,
        error_message: str | None = None,
        **fields: Any,
    ) -> WorkflowResult:
        """Build the run's WorkflowResult (cost and duration are computed here)."""
        return WorkflowResult(
            workflow_name=self.name,
            run_id=run.run_id,
            status=status,
            topology=self.topology,
            error=error,
            error_message=error_message,
            total_duration_seconds=time.perf_counter() - run.started_clock,
            started_at=run.started_at,
            completed_at=datetime.now(UTC),
            context=run.context,
            **fields,
        )

    def _emit(self, record: ExecutionRecord) -> None:
        try:
            self.recorder.record(record)
        except Exception as exc:
            logger.error(
                "recorder.failed",
                workflow=self.name,
                run_id=record.run_id,
                record_event=record.event,
                error=str(exc),
                error_type=type(exc).__name__,
            )

    # =========================================================================
    # Invocation
    # =========================================================================

    def _invoke(
        self,
        run: RunState,
        name: str,
        capability: Any,
        payload: Any,
        *,
        policy: CachePolicy | None = None,
        cancel: CancellationToken | None = None,
        call: Callable[[], Any] | None = None,
    ) -> Outcome:
        """Invoke one capability under the run's budget and cache.

        Raises:
            RunAborted: the BudgetGuard stopped the run, either before the
                call (``started`` is False) or at a checkpoint inside it.
        """
        token = cancel or run.cancel
        if call is None:

            def call() -> Any:
                return capability.invoke(payload, cancel=token)

        try:
            run.guard.check()
        except RunAborted as abort:
            abort.started = False
            raise

        def compute() -> Outcome:
            return self._call_capability(name, capability, call)

        if policy is not None and self.cache is not None:
            try:
                outcome = self.cache.fetch(capability, payload, compute, cancel=token, policy=policy)
            except OperationCancelled as exc:
                # Cancelled while waiting on another caller's computation.
                outcome = Outcome.failure(
                    ErrorKind.CANCELLED,
                    exc.reason,
                    name=name,
                    error_type=type(exc).__name__,
                )
        else:
            outcome = compute()

        outcome = outcome if outcome.name == name else outcome.named(name)
        run.guard.charge(outcome.cost)
        return outcome

    def _call_capability(
        self,
        name: str,
        capability: Any,
        call: Callable[[], Any],
    ) -> Outcome:
        started = time.perf_counter()
        try:
            outcome = Outcome.from_value(call())
        except RunAborted:
            raise
        except OperationCancelled as exc:
            outcome = Outcome.failure(
                ErrorKind.CANCELLED,
                exc.reason,
                cost=exc.cost,
                tokens=exc.tokens,
                error_type=type(exc).__name__,
            )
        except CapabilityError as exc:
            outcome = Outcome.failure(
                ErrorKind.CAPABILITY_ERROR,
                exc.message,
                cost=exc.cost,
                tokens=exc.tokens,
                error_type=type(exc.cause).__name__ if exc.cause else type(exc).__name__,
            )
        except Exception as exc:
            logger.warning(
                "capability.error",
                workflow=self.name,
                name=name,
                capability=capability_identity(capability),
                error=str(exc),
                error_type=type(exc).__name__,
                category=categorize_error(exc).value,
            )
            outcome = Outcome.failure(
                ErrorKind.CAPABILITY_ERROR,
                str(exc) or type(exc).__name__,
                error_type=type(exc).__name__,
            )
        return replace(outcome, name=name, duration_seconds=time.perf_counter() - started)

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}({self.name!r}, version={self.version!r}, "
            f"members={list(self.members)})"
        )


__all__ = ["RunState", "Workflow", "WorkflowDeclaration", "check_unique_names"]
