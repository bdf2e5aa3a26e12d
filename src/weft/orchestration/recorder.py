"""Execution records — plain snapshots of a run for external collectors.

A workflow emits exactly two records per run: ``created`` when the run
starts (status ``running``) and ``updated`` when it finishes (final
status, tokens, cost, duration and a per-step/branch summary). Storage
and transport belong to whoever implements :class:`ExecutionRecorder`;
the engine only hands over the structured record.

Architecture::

    Workflow.call(input)
    ├── ExecutionRecord.started(...)      → recorder.record(event="created")
    ├── executor runs
    └── ExecutionRecord.finished(result)  → recorder.record(event="updated")

    ExecutionRecorder (Protocol)
    ├── InMemoryRecorder   — keeps records in a list (tests, dashboards)
    └── NullRecorder       — discards everything (default)

A recorder that raises is logged (``recorder.failed``) and ignored; it
never changes the run's result.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from weft.orchestration.outcome import Outcome
from weft.orchestration.result import Topology, WorkflowResult, WorkflowStatus

CREATED = "created"
UPDATED = "updated"


@dataclass(frozen=True)
class ExecutionRecord:
    """Immutable snapshot of a run at one lifecycle event.

    Attributes:
        event: ``created`` or ``updated``.
        workflow_name: Name of the workflow.
        workflow_version: Declared version string.
        topology: pipeline / parallel / router.
        run_id: Identifier of the run.
        status: ``running`` for ``created``, final status for ``updated``.
        started_at: UTC start time.
        completed_at: UTC completion time (``updated`` only).
        duration_ms: Run wall time in milliseconds.
        input_tokens / output_tokens: Aggregate token usage.
        total_cost: Aggregate cost, as a string.
        routed_to: Router's chosen label.
        classification_cost: Router's classifier cost, as a string.
        error: Run-level ErrorKind value.
        error_message: Run-level failure reason.
        summary: Per-step/branch ``{status, cost, duration_ms}``.
    """

    event: str
    workflow_name: str
    workflow_version: str
    topology: Topology
    run_id: str
    status: WorkflowStatus
    started_at: datetime | None = None
    completed_at: datetime | None = None
    duration_ms: int | None = None
    input_tokens: int = 0
    output_tokens: int = 0
    total_cost: str = "0"
    routed_to: str | None = None
    classification_cost: str | None = None
    error: str | None = None
    error_message: str | None = None
    summary: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def started(
        cls,
        *,
        workflow_name: str,
        workflow_version: str,
        topology: Topology,
        run_id: str,
        started_at: datetime,
    ) -> ExecutionRecord:
        return cls(
            event=CREATED,
            workflow_name=workflow_name,
            workflow_version=workflow_version,
            topology=topology,
            run_id=run_id,
            status=WorkflowStatus.RUNNING,
            started_at=started_at,
        )

    @classmethod
    def finished(cls, result: WorkflowResult, *, workflow_version: str) -> ExecutionRecord:
        summary: dict[str, Any] = {}
        if result.steps:
            summary["steps"] = {n: _summarize(o) for n, o in result.steps.items()}
        if result.branches:
            summary["branches"] = {n: _summarize(o) for n, o in result.branches.items()}
        if result.errors:
            summary["errors"] = dict(result.errors)

        tokens = result.tokens
        return cls(
            event=UPDATED,
            workflow_name=result.workflow_name,
            workflow_version=workflow_version,
            topology=result.topology,
            run_id=result.run_id,
            status=result.status,
            started_at=result.started_at,
            completed_at=result.completed_at,
            duration_ms=round(result.total_duration_seconds * 1000),
            input_tokens=tokens.input_tokens,
            output_tokens=tokens.output_tokens,
            total_cost=str(result.total_cost),
            routed_to=result.routed_to,
            classification_cost=(
                str(result.classification_cost) if result.topology == Topology.ROUTER else None
            ),
            error=result.error.value if result.error else None,
            error_message=result.error_message,
            summary=summary,
        )

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a plain dictionary."""
        d: dict[str, Any] = {
            "event": self.event,
            "workflow_name": self.workflow_name,
            "workflow_version": self.workflow_version,
            "workflow_type": self.topology.value,
            "run_id": self.run_id,
            "status": self.status.value,
            "started_at": self.started_at.isoformat() if self.started_at else None,
        }
        if self.event == UPDATED:
            d.update({
                "completed_at": self.completed_at.isoformat() if self.completed_at else None,
                "duration_ms": self.duration_ms,
                "input_tokens": self.input_tokens,
                "output_tokens": self.output_tokens,
                "total_tokens": self.total_tokens,
                "total_cost": self.total_cost,
                "response": self.summary,
            })
            if self.routed_to is not None:
                d["routed_to"] = self.routed_to
                d["classification_cost"] = self.classification_cost
            if self.error:
                d["error"] = self.error
                d["error_message"] = self.error_message
        return d


def _summarize(outcome: Outcome) -> dict[str, Any]:
    if outcome.skipped:
        status = "skipped"
    elif outcome.failed:
        status = "error"
    else:
        status = "success"
    return {
        "status": status,
        "total_cost": str(outcome.cost),
        "duration_ms": round(outcome.duration_seconds * 1000),
        "cached": outcome.cached,
    }


@runtime_checkable
class ExecutionRecorder(Protocol):
    """Receives execution records. Implementations must be thread-safe."""

    def record(self, record: ExecutionRecord) -> None: ...


class NullRecorder:
    """Discards every record."""

    def record(self, record: ExecutionRecord) -> None:
        return None


class InMemoryRecorder:
    """Keeps records in memory, in emission order.

    Example:
        recorder = InMemoryRecorder()
        workflow = Pipeline("docs", steps=[...], recorder=recorder)
        workflow.call(doc)
        [r.event for r in recorder.records]   # ['created', 'updated']
    """

    def __init__(self) -> None:
        self._records: list[ExecutionRecord] = []
        self._lock = threading.Lock()

    def record(self, record: ExecutionRecord) -> None:
        with self._lock:
            self._records.append(record)

    @property
    def records(self) -> list[ExecutionRecord]:
        with self._lock:
            return list(self._records)

    def for_run(self, run_id: str) -> list[ExecutionRecord]:
        return [r for r in self.records if r.run_id == run_id]

    def latest(self, run_id: str) -> ExecutionRecord | None:
        records = self.for_run(run_id)
        return records[-1] if records else None

    def clear(self) -> None:
        with self._lock:
            self._records.clear()

    def __len__(self) -> int:
        return len(self.records)


__all__ = [
    "CREATED",
    "UPDATED",
    "ExecutionRecord",
    "ExecutionRecorder",
    "InMemoryRecorder",
    "NullRecorder",
]
