"""Parallel — fan a single input out to independent branches, then aggregate.

Manifesto:
    Sentiment, keywords and a summary of the same text do not depend on
each other, so there is no reason to wait for one before starting the
next. Branches run concurrently on a thread pool; the run blocks at a
single join point and ``aggregate`` runs exactly once after it.

ARCHITECTURE
────────────
::

    Parallel(branches, fail_fast, aggregate, max_concurrency)
      └── _execute(run)
            ├── ThreadPoolExecutor(max_workers = min(branches, limit))
            │     └── _run_branch(branch)            (worker thread)
            │           ├── token cancelled?  → omitted (never started)
            │           ├── guard.check()     → abort, cancel token, omitted
            │           ├── _invoke(...)      → Outcome
            │           └── _commit(...)      (under lock)
            │                 ├── success after cancellation → CANCELLED
            │                 └── failure → BRANCH_FAILURE (+ fail-fast trip)
            ├── join
            ├── status: abort kind / fail-fast / completed / partial / failed
            └── aggregate(branches) once  → content ("aggregate" error falls back)

Failure policies:
    fail_fast=True   first required-branch failure cancels the run's token;
                     in-flight branches stop at their next checkpoint and are
                     recorded as CANCELLED (partial cost kept), branches not
                     yet started are omitted. Status is ``failed``.
    fail_fast=False  every branch runs; status is ``completed`` (all ok),
                     ``partial`` (some failed) or ``failed`` (all failed).

Example::

    analysis = Parallel(
        "text.analysis",
        branches=[
            Branch("sentiment", sentiment_agent),
            Branch("keywords", keyword_agent),
            Branch("summary", summary_agent, transform=lambda text: text[:4000]),
        ],
        aggregate=lambda b: {n: o.content for n, o in b.items() if o.succeeded},
    )
    result = analysis.call("The product arrived broken ...")

Tags:
    weft, orchestration, parallel, fan-out, fail-fast, cancellation
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, replace
from threading import Lock
from typing import Any

from weft.core.logging import get_logger
from weft.orchestration.caching import CachePolicy
from weft.orchestration.exceptions import RunAborted, WorkflowDeclarationError
from weft.orchestration.outcome import ErrorKind, Outcome
from weft.orchestration.pipeline import as_capability
from weft.orchestration.result import Topology, WorkflowResult, WorkflowStatus
from weft.orchestration.workflow import RunState, Workflow, check_unique_names

logger = get_logger(__name__)


def identity_aggregate(branches: Mapping[str, Outcome]) -> dict[str, Outcome]:
    """Default aggregate: the branches map itself."""
    return dict(branches)


@dataclass(frozen=True)
class Branch:
    """One parallel branch.

    Attributes:
        name: Unique branch name within the group
        capability: Capability (or plain callable) to invoke
        transform: ``fn(input) -> input`` for this branch only
        optional: Failure never trips fail-fast
        cache: Cache this branch's invocations
    """

    name: str
    capability: Any
    transform: Callable[[Any], Any] | None = None
    optional: bool = False
    cache: CachePolicy | None = None

    def __post_init__(self):
        object.__setattr__(self, "capability", as_capability(self.capability, self.name))


class _Join:
    """Shared bookkeeping for one Parallel run (guarded by ``lock``)."""

    def __init__(self) -> None:
        self.lock = Lock()
        self.outcomes: dict[str, Outcome] = {}
        self.errors: dict[str, str] = {}
        self.abort: RunAborted | None = None
        self.tripped_by: str | None = None


class Parallel(Workflow):
    """Concurrent fan-out executor.

    Args:
        name: Workflow name
        branches: Branches; names must be unique and the list non-empty
        fail_fast: Cancel siblings on the first required-branch failure
        aggregate: ``fn(branches) -> content``; default returns the map
        max_concurrency: Worker limit (default: ``settings.max_parallel_workers``)
        **options: See :class:`~weft.orchestration.workflow.Workflow`
    """

    topology = Topology.PARALLEL

    def __init__(
        self,
        name: str,
        branches: list[Branch],
        *,
        fail_fast: bool = False,
        aggregate: Callable[[Mapping[str, Outcome]], Any] | None = None,
        max_concurrency: int | None = None,
        **options: Any,
    ):
        super().__init__(name, **options)
        self.branches: tuple[Branch, ...] = tuple(branches)
        check_unique_names((b.name for b in self.branches), "branch", name)
        if max_concurrency is not None and max_concurrency < 1:
            raise WorkflowDeclarationError(
                f"max_concurrency must be >= 1, got {max_concurrency}", workflow=name
            )
        self.fail_fast = fail_fast
        self.aggregate = aggregate or identity_aggregate
        self.max_concurrency = max_concurrency
        self._ensure_cache(b.cache for b in self.branches)

    @property
    def members(self) -> tuple[str, ...]:
        return tuple(b.name for b in self.branches)

    @property
    def max_workers(self) -> int:
        limit = self.max_concurrency or self.settings.max_parallel_workers
        return max(1, min(len(self.branches), limit))

    # =========================================================================
    # Execution
    # =========================================================================

    def _execute(self, run: RunState) -> WorkflowResult:
        join = _Join()

        with ThreadPoolExecutor(
            max_workers=self.max_workers,
            thread_name_prefix=f"weft-{self.name}",
        ) as executor:
            futures = [executor.submit(self._run_branch, run, join, b) for b in self.branches]
            for future in futures:
                future.result()

        # Declaration order; branches cancelled before starting are absent.
        branches = {b.name: join.outcomes[b.name] for b in self.branches if b.name in join.outcomes}
        for outcome in branches.values():
            run.context = run.context.with_outcome(outcome.name, outcome)

        status, error, error_message = self._status(join, branches)
        errors = dict(join.errors)
        content = self._aggregate(run, branches, errors)

        return self._finish(
            run,
            status,
            error=error,
            error_message=error_message,
            branches=branches,
            errors=errors,
            content=content,
        )

    def _run_branch(self, run: RunState, join: _Join, branch: Branch) -> None:
        token = run.cancel
        if token.cancelled:
            return

        try:
            run.guard.check()
        except RunAborted as abort:
            self._record_abort(run, join, abort)
            return

        if branch.transform is not None:
            try:
                payload = branch.transform(run.context.input)
            except Exception as exc:
                outcome = Outcome.failure(
                    ErrorKind.CAPABILITY_ERROR,
                    f"transform failed: {exc}",
                    name=branch.name,
                    error_type=type(exc).__name__,
                )
                self._commit(run, join, branch, outcome)
                return
        else:
            payload = run.context.input

        try:
            outcome = self._invoke(run, branch.name, branch.capability, payload, policy=branch.cache)
        except RunAborted as abort:
            self._record_abort(run, join, abort)
            if not abort.started:
                return
            outcome = Outcome.failure(ErrorKind.CANCELLED, str(abort), name=branch.name)
        self._commit(run, join, branch, outcome)

    def _record_abort(self, run: RunState, join: _Join, abort: RunAborted) -> None:
        with join.lock:
            if join.abort is None:
                join.abort = abort
        run.cancel.cancel(str(abort))

    def _commit(self, run: RunState, join: _Join, branch: Branch, outcome: Outcome) -> None:
        token = run.cancel
        trip = False
        with join.lock:
            if outcome.succeeded and token.cancelled:
                outcome = outcome.cancelled(token.reason or "cancelled")
            elif outcome.error == ErrorKind.CANCELLED and token.cancelled:
                pass
            elif outcome.failed:
                cause = outcome.error
                outcome = replace(
                    outcome.with_error(ErrorKind.BRANCH_FAILURE),
                    metadata={**outcome.metadata, "cause": cause.value},
                )
                join.errors[branch.name] = outcome.error_message or cause.value
                if self.fail_fast and not branch.optional and join.tripped_by is None:
                    join.tripped_by = branch.name
                    trip = True
            join.outcomes[branch.name] = outcome

        if outcome.failed:
            logger.warning(
                "step.failed",
                workflow=self.name,
                run_id=run.run_id,
                branch=branch.name,
                optional=branch.optional,
                error=outcome.error.value,
                error_message=outcome.error_message,
            )
        if trip:
            logger.warning(
                "parallel.fail_fast",
                workflow=self.name,
                run_id=run.run_id,
                branch=branch.name,
            )
            token.cancel(f"branch {branch.name!r} failed")

    def _status(
        self,
        join: _Join,
        branches: dict[str, Outcome],
    ) -> tuple[WorkflowStatus, ErrorKind | None, str | None]:
        if join.abort is not None:
            return WorkflowStatus.FAILED, join.abort.kind, str(join.abort)
        if join.tripped_by is not None:
            message = join.errors.get(join.tripped_by)
            return (
                WorkflowStatus.FAILED,
                ErrorKind.BRANCH_FAILURE,
                f"Branch {join.tripped_by!r} failed: {message}",
            )

        succeeded = [n for n, o in branches.items() if o.succeeded]
        if len(succeeded) == len(self.branches):
            return WorkflowStatus.COMPLETED, None, None
        failed = [n for n, o in branches.items() if o.failed]
        message = f"{len(failed)} of {len(self.branches)} branches failed: {', '.join(failed)}"
        if not succeeded:
            return WorkflowStatus.FAILED, ErrorKind.BRANCH_FAILURE, message
        return WorkflowStatus.PARTIAL, None, message

    def _aggregate(
        self,
        run: RunState,
        branches: dict[str, Outcome],
        errors: dict[str, str],
    ) -> Any:
        try:
            return self.aggregate(dict(branches))
        except Exception as exc:
            logger.error(
                "parallel.aggregate_failed",
                workflow=self.name,
                run_id=run.run_id,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            errors["aggregate"] = f"{type(exc).__name__}: {exc}"
            return identity_aggregate(branches)


__all__ = ["Branch", "Parallel", "identity_aggregate"]
