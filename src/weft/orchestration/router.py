"""Router — classify once, dispatch to exactly one route.

Manifesto:
    A support inbox needs one specialist per message, not all of them.
The router asks a classifier for a label (or lets a cheap rule decide),
picks the matching route or the default one, and invokes only that
route's capability. Non-chosen routes are never invoked and cost nothing.

ARCHITECTURE
────────────
::

    Router(routes, classifier, default_label, before_route)
      └── _execute(run)
            ├── rules: first route whose match(input) is true → method "rule"
            ├── else classifier.classify(input, {label: description}) → method "classifier"
            │     └── label normalized: strip, lower-case, keep [a-z0-9_]
            ├── unknown label → default route, or ROUTE_NOT_FOUND
            ├── before_route(input, label) → routed input
            └── _invoke(route) → branches = {label: outcome}

    result.routed_to        chosen label
    result.classifier       classifier Outcome (its cost is part of total_cost)
    result.classification   {label, route, method, duration_seconds}

Example::

    support = Router(
        "support.triage",
        routes=[
            Route("billing", billing_agent, description="charges, refunds"),
            Route("technical", tech_agent, description="bugs, errors, outages"),
            Route("general", general_agent),
        ],
        classifier=LLMClassifier(provider, model="small-model"),
        default_label="general",
    )
    support.call({"message": "I was charged twice"}).routed_to   # 'billing'

Tags:
    weft, orchestration, router, classification, dispatch
"""

from __future__ import annotations

import re
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from weft.core.logging import get_logger
from weft.orchestration.caching import CachePolicy
from weft.orchestration.capability import FunctionClassifier, capability_identity
from weft.orchestration.exceptions import RunAborted, WorkflowDeclarationError
from weft.orchestration.outcome import ErrorKind, Outcome
from weft.orchestration.pipeline import as_capability
from weft.orchestration.result import Topology, WorkflowResult, WorkflowStatus
from weft.orchestration.workflow import RunState, Workflow, check_unique_names

logger = get_logger(__name__)

CLASSIFIER_NAME = "classifier"

_LABEL_JUNK = re.compile(r"[^a-z0-9_]")


def normalize_label(value: Any) -> str:
    """Reduce a classifier reply to a comparable label (``' Billing.\\n'`` → ``'billing'``)."""
    if value is None:
        return ""
    return _LABEL_JUNK.sub("", str(value).strip().lower())


@dataclass(frozen=True)
class Route:
    """One router destination.

    Attributes:
        label: Unique route label
        capability: Capability (or plain callable) to invoke when chosen
        description: Shown to the classifier as the meaning of ``label``
        match: ``fn(input) -> bool`` rule; a match skips the classifier
        cache: Cache this route's invocations
    """

    label: str
    capability: Any
    description: str | None = None
    match: Callable[[Any], bool] | None = None
    cache: CachePolicy | None = None

    def __post_init__(self):
        object.__setattr__(self, "capability", as_capability(self.capability, self.label))


class Router(Workflow):
    """Single-dispatch executor.

    Args:
        name: Workflow name
        routes: Routes in rule-matching order; labels must be unique
        classifier: Classifier (or ``fn(input, routes)``) used when no rule matches
        default_label: Route used for unknown labels
        before_route: ``fn(input, label) -> input`` applied before dispatch
        **options: See :class:`~weft.orchestration.workflow.Workflow`
    """

    topology = Topology.ROUTER

    def __init__(
        self,
        name: str,
        routes: list[Route],
        *,
        classifier: Any = None,
        default_label: str | None = None,
        before_route: Callable[[Any, str], Any] | None = None,
        **options: Any,
    ):
        super().__init__(name, **options)
        self.routes: tuple[Route, ...] = tuple(routes)
        check_unique_names((r.label for r in self.routes), "route", name)
        self._by_label = {normalize_label(r.label): r for r in self.routes}
        if len(self._by_label) != len(self.routes):
            raise WorkflowDeclarationError(
                "Route labels must stay distinct after normalization", workflow=name
            )
        if default_label is not None and default_label not in self.members:
            raise WorkflowDeclarationError(
                f"default_label {default_label!r} is not a declared route", workflow=name
            )
        if classifier is not None and not hasattr(classifier, "classify"):
            if not callable(classifier):
                raise WorkflowDeclarationError(
                    f"classifier must provide classify() or be callable, got {type(classifier).__name__}",
                    workflow=name,
                )
            classifier = FunctionClassifier(classifier)
        if classifier is None and not any(r.match for r in self.routes):
            raise WorkflowDeclarationError(
                "Router needs a classifier or at least one match rule", workflow=name
            )

        self.classifier = classifier
        self.default_label = default_label
        self.before_route = before_route
        self._ensure_cache(r.cache for r in self.routes)

    @property
    def members(self) -> tuple[str, ...]:
        return tuple(r.label for r in self.routes)

    @property
    def descriptions(self) -> dict[str, str | None]:
        return {r.label: r.description for r in self.routes}

    def resolve(self, label: Any) -> Route | None:
        """Declared route for a classifier label, ignoring case and punctuation."""
        return self._by_label.get(normalize_label(label))

    # =========================================================================
    # Execution
    # =========================================================================

    def _execute(self, run: RunState) -> WorkflowResult:
        input = run.context.input
        started = time.perf_counter()
        classifier_outcome: Outcome | None = None
        route = self._match_rule(run)
        method = "rule"
        raw_label: Any = route.label if route else None

        if route is None:
            if self.classifier is None:
                method = "default"
            else:
                method = CLASSIFIER_NAME
                try:
                    classifier_outcome = self._invoke(
                        run,
                        CLASSIFIER_NAME,
                        self.classifier,
                        input,
                        call=lambda: self.classifier.classify(
                            input, self.descriptions, cancel=run.cancel
                        ),
                    )
                except RunAborted as abort:
                    if not abort.started:
                        return self._aborted(run, abort)
                    classifier_outcome = Outcome.failure(
                        ErrorKind.CANCELLED, str(abort), name=CLASSIFIER_NAME
                    )
                    return self._aborted(run, abort, classifier=classifier_outcome)

                if classifier_outcome.failed:
                    logger.warning(
                        "step.failed",
                        workflow=self.name,
                        run_id=run.run_id,
                        step=CLASSIFIER_NAME,
                        error=classifier_outcome.error_message,
                    )
                    return self._finish(
                        run,
                        WorkflowStatus.FAILED,
                        error=ErrorKind.CAPABILITY_ERROR,
                        error_message=f"Classifier failed: {classifier_outcome.error_message}",
                        errors={CLASSIFIER_NAME: classifier_outcome.error_message or ""},
                        classifier=classifier_outcome,
                        classification=self._classification(None, None, method, started),
                    )
                raw_label = classifier_outcome.content
            route = self.resolve(raw_label)

        if route is None and self.default_label is not None:
            route = self.resolve(self.default_label)

        classification = self._classification(raw_label, route, method, started)
        if route is None:
            message = f"Route {raw_label!r} not found and no default route declared"
            logger.warning("router.route_not_found", workflow=self.name, run_id=run.run_id, label=raw_label)
            return self._finish(
                run,
                WorkflowStatus.FAILED,
                error=ErrorKind.ROUTE_NOT_FOUND,
                error_message=message,
                errors={"routing": message},
                classifier=classifier_outcome,
                classification=classification,
            )

        logger.info(
            "router.routed",
            workflow=self.name,
            run_id=run.run_id,
            label=route.label,
            method=method,
            classified_as=None if raw_label is None else str(raw_label),
        )

        outcome, abort = self._dispatch(run, route)
        if outcome is None:
            return self._aborted(
                run,
                abort,
                classifier=classifier_outcome,
                classification=classification,
                routed_to=route.label,
            )
        run.context = run.context.with_outcome(route.label, outcome)

        error: ErrorKind | None = None
        error_message: str | None = None
        errors: dict[str, str] = {}
        if outcome.failed:
            logger.warning(
                "step.failed",
                workflow=self.name,
                run_id=run.run_id,
                step=route.label,
                error=outcome.error_message,
                error_type=outcome.error_type,
            )
            errors[route.label] = outcome.error_message or outcome.error.value
            if abort is not None:
                error, error_message = abort.kind, str(abort)
            else:
                error = ErrorKind.CAPABILITY_ERROR
                error_message = f"Route {route.label!r} failed: {outcome.error_message}"

        return self._finish(
            run,
            WorkflowStatus.FAILED if outcome.failed else WorkflowStatus.COMPLETED,
            error=error,
            error_message=error_message,
            errors=errors,
            branches={route.label: run.context[route.label]},
            routed_to=route.label,
            content=outcome.content,
            classifier=classifier_outcome,
            classification=classification,
        )

    def _match_rule(self, run: RunState) -> Route | None:
        for route in self.routes:
            if route.match is None:
                continue
            try:
                if route.match(run.context.input):
                    return route
            except Exception as exc:
                logger.warning(
                    "router.rule_failed",
                    workflow=self.name,
                    run_id=run.run_id,
                    route=route.label,
                    error=str(exc),
                )
        return None

    def _dispatch(self, run: RunState, route: Route) -> tuple[Outcome | None, RunAborted | None]:
        """Invoke the chosen route.

        Returns ``(None, abort)`` when the budget stopped the run before the
        route started, ``(cancelled_outcome, abort)`` when it stopped inside
        the call, and ``(outcome, None)`` otherwise.
        """
        payload = run.context.input
        if self.before_route is not None:
            try:
                payload = self.before_route(payload, route.label)
            except Exception as exc:
                failure = Outcome.failure(
                    ErrorKind.CAPABILITY_ERROR,
                    f"before_route failed: {exc}",
                    name=route.label,
                    error_type=type(exc).__name__,
                )
                return failure, None
        try:
            return self._invoke(run, route.label, route.capability, payload, policy=route.cache), None
        except RunAborted as abort:
            if not abort.started:
                return None, abort
            return Outcome.failure(ErrorKind.CANCELLED, str(abort), name=route.label), abort

    def _classification(
        self,
        raw_label: Any,
        route: Route | None,
        method: str,
        started: float,
    ) -> dict[str, Any]:
        return {
            "label": None if raw_label is None else str(raw_label),
            "route": route.label if route else None,
            "method": method,
            "classifier": capability_identity(self.classifier) if method == CLASSIFIER_NAME else None,
            "duration_seconds": time.perf_counter() - started,
        }

    def _aborted(self, run: RunState, abort: RunAborted, **fields: Any) -> WorkflowResult:
        return self._finish(
            run,
            WorkflowStatus.FAILED,
            error=abort.kind,
            error_message=str(abort),
            **fields,
        )


__all__ = ["CLASSIFIER_NAME", "Route", "Router", "normalize_label"]
