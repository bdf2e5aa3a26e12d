"""Pipeline — run a fixed, ordered list of steps one after another.

Each step receives the previous successful step's content (or the run
input for the first step) unless its ``transform`` builds the input from
the full Context. A step with a false ``predicate`` is recorded as skipped.
A failing required step stops the run; a failing optional step is recorded
and the run moves on.

Example::

    pipeline = Pipeline(
        "document.enrich",
        steps=[
            Step("extract", extractor),
            Step("classify", classifier_agent),
            Step(
                "format",
                formatter,
                optional=True,
                transform=lambda ctx: {
                    "text": ctx.content("extract"),
                    "label": ctx.content("classify"),
                },
            ),
        ],
        max_cost="1.00",
    )
    result = pipeline.call({"document": raw})
    result.steps["format"].error      # set if the formatter failed
    result.content                    # classify's output in that case
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, replace
from typing import Any

from weft.core.logging import get_logger
from weft.orchestration.caching import CachePolicy
from weft.orchestration.capability import FunctionCapability
from weft.orchestration.context import Context
from weft.orchestration.exceptions import RunAborted
from weft.orchestration.outcome import ErrorKind, Outcome
from weft.orchestration.result import Topology, WorkflowResult, WorkflowStatus
from weft.orchestration.workflow import RunState, Workflow, check_unique_names

logger = get_logger(__name__)


def as_capability(capability: Any, name: str) -> Any:
    """Accept either a Capability or a plain callable."""
    if hasattr(capability, "invoke"):
        return capability
    if callable(capability):
        return FunctionCapability(capability, name=name)
    raise TypeError(f"{name!r}: expected a Capability or callable, got {type(capability).__name__}")


@dataclass(frozen=True)
class Step:
    """One pipeline step.

    Attributes:
        name: Unique step name within the pipeline
        capability: Capability (or plain callable) to invoke
        optional: Failure is recorded and the run continues
        predicate: ``fn(Context) -> bool``; false records a skip
        transform: ``fn(Context) -> input``; overrides the default input
        cache: Cache this step's invocations
    """

    name: str
    capability: Any
    optional: bool = False
    predicate: Callable[[Context], bool] | None = None
    transform: Callable[[Context], Any] | None = None
    cache: CachePolicy | None = None

    def __post_init__(self):
        object.__setattr__(self, "capability", as_capability(self.capability, self.name))


class Pipeline(Workflow):
    """Sequential executor.

    Args:
        name: Workflow name
        steps: Ordered steps; names must be unique and the list non-empty
        **options: See :class:`~weft.orchestration.workflow.Workflow`
    """

    topology = Topology.PIPELINE

    def __init__(self, name: str, steps: list[Step], **options: Any):
        super().__init__(name, **options)
        self.steps: tuple[Step, ...] = tuple(steps)
        check_unique_names((s.name for s in self.steps), "step", name)
        self._ensure_cache(s.cache for s in self.steps)

    @property
    def members(self) -> tuple[str, ...]:
        return tuple(s.name for s in self.steps)

    def _execute(self, run: RunState) -> WorkflowResult:
        steps: dict[str, Outcome] = {}
        errors: dict[str, str] = {}

        for step in self.steps:
            if not self._should_run(run, step):
                outcome = Outcome.skip(step.name)
                logger.info("step.skipped", workflow=self.name, run_id=run.run_id, step=step.name)
                self._commit(run, steps, outcome)
                continue

            try:
                run.guard.check()
            except RunAborted as abort:
                return self._abort(run, steps, errors, abort)

            try:
                outcome = self._run_step(run, step)
            except RunAborted as abort:
                if abort.started:
                    # Aborted at a checkpoint inside the call.
                    self._commit(run, steps, Outcome.failure(ErrorKind.CANCELLED, str(abort), name=step.name))
                return self._abort(run, steps, errors, abort)

            if outcome.failed:
                kind = ErrorKind.OPTIONAL_STEP_FAILURE if step.optional else ErrorKind.STEP_FAILURE
                outcome = replace(
                    outcome.with_error(kind),
                    metadata={**outcome.metadata, "cause": outcome.error.value},
                )
                errors[step.name] = outcome.error_message or kind.value
                logger.warning(
                    "step.failed",
                    workflow=self.name,
                    run_id=run.run_id,
                    step=step.name,
                    optional=step.optional,
                    error=outcome.error_message,
                    error_type=outcome.error_type,
                )
            self._commit(run, steps, outcome)

            if outcome.failed and not step.optional:
                return self._finish(
                    run,
                    WorkflowStatus.FAILED,
                    error=ErrorKind.STEP_FAILURE,
                    error_message=f"Step {step.name!r} failed: {outcome.error_message}",
                    steps=steps,
                    errors=errors,
                    content=run.context.last_content(),
                )

        return self._finish(
            run,
            WorkflowStatus.COMPLETED,
            steps=steps,
            errors=errors,
            content=run.context.last_content(),
        )

    def _abort(
        self,
        run: RunState,
        steps: dict[str, Outcome],
        errors: dict[str, str],
        abort: RunAborted,
    ) -> WorkflowResult:
        return self._finish(
            run,
            WorkflowStatus.FAILED,
            error=abort.kind,
            error_message=str(abort),
            steps=steps,
            errors=errors,
            content=run.context.last_content(),
        )

    def _should_run(self, run: RunState, step: Step) -> bool:
        if step.predicate is None:
            return True
        try:
            return bool(step.predicate(run.context))
        except Exception as exc:
            logger.warning(
                "step.predicate_failed",
                workflow=self.name,
                run_id=run.run_id,
                step=step.name,
                error=str(exc),
            )
            return True

    def _run_step(self, run: RunState, step: Step) -> Outcome:
        if step.transform is not None:
            try:
                payload = step.transform(run.context)
            except Exception as exc:
                return Outcome.failure(
                    ErrorKind.CAPABILITY_ERROR,
                    f"transform failed: {exc}",
                    name=step.name,
                    error_type=type(exc).__name__,
                )
        else:
            payload = run.context.last_content(default=run.context.input)
        return self._invoke(run, step.name, step.capability, payload, policy=step.cache)

    @staticmethod
    def _commit(run: RunState, steps: dict[str, Outcome], outcome: Outcome) -> None:
        run.context = run.context.with_outcome(outcome.name, outcome)
        steps[outcome.name] = run.context[outcome.name]


__all__ = ["Pipeline", "Step", "as_capability"]
