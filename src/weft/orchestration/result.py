"""WorkflowResult — the single terminal record of one workflow run.

Every topology returns the same structure: Pipelines fill ``steps``,
Parallel groups fill ``branches``, Routers fill ``branches`` with the one
chosen route plus ``routed_to``/``classifier``. ``total_cost`` is never
passed in; it is summed from the Outcomes the result holds, so it always
equals what the run actually paid for (failed and cancelled invocations
included).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any

from weft.orchestration.outcome import ZERO, ErrorKind, Outcome, TokenUsage

if TYPE_CHECKING:
    from weft.orchestration.context import Context


class WorkflowStatus(str, Enum):
    """Overall status of a workflow run."""

    RUNNING = "running"  # Execution records only
    COMPLETED = "completed"
    FAILED = "failed"
    PARTIAL = "partial"  # Some Parallel branches failed, some succeeded


class Topology(str, Enum):
    """The three supported workflow shapes."""

    PIPELINE = "pipeline"
    PARALLEL = "parallel"
    ROUTER = "router"


@dataclass(frozen=True)
class WorkflowResult:
    """Result of executing a workflow.

    Attributes:
        workflow_name: Declared workflow name
        run_id: Identifier of this run
        status: completed / failed / partial
        topology: Which executor produced the result
        steps: Pipeline outcomes in declaration order
        branches: Parallel outcomes, or the chosen Router route
        routed_to: Router's chosen label
        content: Terminal (Pipeline/Router) or aggregated (Parallel) content
        error: Run-level ErrorKind when the run failed
        error_message: Human-readable reason for ``error``
        errors: Per-name failure messages (``aggregate`` for a failed hook)
        classifier: Router's classifier Outcome, if it was invoked
        classification: ``{label, route, method, duration_seconds}``
        total_duration_seconds: Wall time of the whole run
        started_at / completed_at: UTC timestamps
        context: The run's final Context
        total_cost: Sum of all Outcome costs held by this result (computed)
    """

    workflow_name: str
    run_id: str
    status: WorkflowStatus
    topology: Topology
    steps: dict[str, Outcome] = field(default_factory=dict)
    branches: dict[str, Outcome] = field(default_factory=dict)
    routed_to: str | None = None
    content: Any = None
    error: ErrorKind | None = None
    error_message: str | None = None
    errors: dict[str, str] = field(default_factory=dict)
    classifier: Outcome | None = None
    classification: dict[str, Any] | None = None
    total_duration_seconds: float = 0.0
    started_at: datetime | None = None
    completed_at: datetime | None = None
    context: Context | None = field(default=None, repr=False, compare=False)
    total_cost: Decimal = field(default=ZERO, init=False)

    def __post_init__(self):
        total = sum(
            (o.cost for o in self._all_outcomes() if not o.skipped),
            start=ZERO,
        )
        object.__setattr__(self, "total_cost", total)

    def _all_outcomes(self) -> list[Outcome]:
        outcomes = [*self.steps.values(), *self.branches.values()]
        if self.classifier is not None:
            outcomes.append(self.classifier)
        return outcomes

    # =========================================================================
    # Status
    # =========================================================================

    @property
    def completed(self) -> bool:
        return self.status == WorkflowStatus.COMPLETED

    @property
    def failed(self) -> bool:
        return self.status == WorkflowStatus.FAILED

    @property
    def partial(self) -> bool:
        return self.status == WorkflowStatus.PARTIAL

    # =========================================================================
    # Derived accounting
    # =========================================================================

    @property
    def tokens(self) -> TokenUsage:
        """Token usage summed across every outcome."""
        total = TokenUsage()
        for outcome in self._all_outcomes():
            total = total + outcome.tokens
        return total

    @property
    def classification_cost(self) -> Decimal:
        return self.classifier.cost if self.classifier is not None else ZERO

    @property
    def failed_steps(self) -> list[str]:
        return [name for name, o in self.steps.items() if o.failed]

    @property
    def skipped_steps(self) -> list[str]:
        return [name for name, o in self.steps.items() if o.skipped]

    @property
    def successful_branches(self) -> list[str]:
        return [name for name, o in self.branches.items() if o.succeeded]

    @property
    def failed_branches(self) -> list[str]:
        return [name for name, o in self.branches.items() if o.failed]

    @property
    def cached_outcomes(self) -> list[str]:
        return [o.name for o in self._all_outcomes() if o.cached]

    # =========================================================================
    # Serialization
    # =========================================================================

    def to_dict(self) -> dict[str, Any]:
        """Serialize for logging/storage."""
        return {
            "workflow_name": self.workflow_name,
            "run_id": self.run_id,
            "status": self.status.value,
            "topology": self.topology.value,
            "steps": {name: o.to_dict() for name, o in self.steps.items()},
            "branches": {name: o.to_dict() for name, o in self.branches.items()},
            "routed_to": self.routed_to,
            "content": self.content,
            "error": self.error.value if self.error else None,
            "error_message": self.error_message,
            "errors": dict(self.errors),
            "classifier": self.classifier.to_dict() if self.classifier else None,
            "classification": self.classification,
            "total_cost": str(self.total_cost),
            "tokens": self.tokens.to_dict(),
            "total_duration_seconds": self.total_duration_seconds,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }

    def __repr__(self) -> str:
        error = f", error={self.error.value}" if self.error else ""
        return (
            f"WorkflowResult({self.workflow_name!r}, {self.status.value}"
            f"{error}, total_cost={self.total_cost})"
        )


__all__ = ["Topology", "WorkflowResult", "WorkflowStatus"]
