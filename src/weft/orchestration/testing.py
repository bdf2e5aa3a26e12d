"""Test Harness — capability doubles and assertions for workflow tests.

Manifesto:
Testing workflows requires capabilities that succeed, fail, stall or
count on demand, without a model provider in sight. This module provides
off-the-shelf doubles so test code is concise and expressive.

ARCHITECTURE
────────────
::

    Test doubles:
      StubCapability        → always succeeds (fixed content or fn(input))
      FailingCapability     → raises CapabilityError or returns a failed Outcome
      SlowCapability        → waits at checkpoints; honours cancellation
      CountingCapability    → counts real invocations (cache tests)
      StubClassifier        → fixed label, or label per input

    Assertion helpers:
      assert_completed(result)
      assert_failed(result, error=None, message_contains=None)
      assert_partial(result)
      assert_total_cost(result, expected)

BEST PRACTICES
──────────────
- Give every double a ``cost`` so budget and total_cost paths are exercised.
- Use ``SlowCapability.started`` to sequence fail-fast tests instead of sleeps.
- Prefer ``assert_completed()`` over manual status checks.

Example::

    from weft.orchestration.testing import StubCapability, assert_completed

    def test_single_step():
        pipeline = Pipeline("p", steps=[Step("a", StubCapability("ok", cost="0.10"))])
        result = pipeline.call("input")
        assert_completed(result)

Tags:
    weft, orchestration, testing, harness, assertions, mocks
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Mapping
from decimal import Decimal
from typing import Any

from weft.orchestration.capability import CancellationToken
from weft.orchestration.exceptions import CapabilityError, OperationCancelled
from weft.orchestration.outcome import ErrorKind, Outcome, TokenUsage, to_decimal
from weft.orchestration.result import WorkflowResult, WorkflowStatus

# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------


class _Recording:
    """Thread-safe call log shared by the doubles."""

    def __init__(self) -> None:
        self.calls: list[Any] = []
        self._calls_lock = threading.Lock()

    def _record(self, input: Any) -> None:
        with self._calls_lock:
            self.calls.append(input)

    @property
    def call_count(self) -> int:
        with self._calls_lock:
            return len(self.calls)


class StubCapability(_Recording):
    """Capability that always succeeds.

    Parameters
    ----------
    content
        Content returned; ignored when ``fn`` is given.
    fn
        ``fn(input) -> content`` for input-dependent content.
    cost / tokens
        Reported on every call.

    Example::

        echo = StubCapability(fn=lambda text: text.upper(), cost="0.01")
    """

    def __init__(
        self,
        content: Any = None,
        *,
        name: str = "stub",
        fn: Callable[[Any], Any] | None = None,
        cost: Any = 0,
        tokens: TokenUsage | None = None,
        version: str = "1",
    ) -> None:
        super().__init__()
        self.name = name
        self.version = version
        self._content = content
        self._fn = fn
        self.cost = to_decimal(cost)
        self.tokens = tokens or TokenUsage()

    def invoke(self, input: Any, *, cancel: CancellationToken) -> Outcome:
        self._record(input)
        content = self._fn(input) if self._fn is not None else self._content
        return Outcome.ok(content, cost=self.cost, tokens=self.tokens)


class FailingCapability(_Recording):
    """Capability that always fails.

    Parameters
    ----------
    message
        Failure message.
    cost
        Partial cost reported with the failure.
    raise_error
        Raise ``CapabilityError`` (default) or return a failed Outcome.

    Example::

        broken = FailingCapability("rate limited", cost="0.02")
    """

    def __init__(
        self,
        message: str = "Simulated failure",
        *,
        name: str = "failing",
        cost: Any = 0,
        raise_error: bool = True,
        version: str = "1",
    ) -> None:
        super().__init__()
        self.name = name
        self.version = version
        self.message = message
        self.cost = to_decimal(cost)
        self.raise_error = raise_error

    def invoke(self, input: Any, *, cancel: CancellationToken) -> Outcome:
        self._record(input)
        if self.raise_error:
            raise CapabilityError(self.message, cost=self.cost)
        return Outcome.failure(ErrorKind.CAPABILITY_ERROR, self.message, cost=self.cost)


class SlowCapability(_Recording):
    """Capability that takes ``delay_seconds`` and checks the token as it goes.

    On cancellation it raises ``OperationCancelled`` carrying
    ``partial_cost``. ``started`` is set as soon as an invocation begins.

    Example::

        slow = SlowCapability("late", delay_seconds=2.0, partial_cost="0.05")
    """

    def __init__(
        self,
        content: Any = None,
        *,
        name: str = "slow",
        delay_seconds: float = 1.0,
        cost: Any = 0,
        partial_cost: Any = 0,
        step_seconds: float = 0.01,
        version: str = "1",
    ) -> None:
        super().__init__()
        self.name = name
        self.version = version
        self.content = content
        self.delay_seconds = delay_seconds
        self.cost = to_decimal(cost)
        self.partial_cost = to_decimal(partial_cost)
        self.step_seconds = step_seconds
        self.started = threading.Event()
        self.cancelled_calls = 0

    def invoke(self, input: Any, *, cancel: CancellationToken) -> Outcome:
        self._record(input)
        self.started.set()
        deadline = time.monotonic() + self.delay_seconds
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            cancel.wait(min(remaining, self.step_seconds))
            if cancel.cancelled:
                self.cancelled_calls += 1
                raise OperationCancelled(cancel.reason or "cancelled", cost=self.partial_cost)
            cancel.checkpoint()
        return Outcome.ok(self.content, cost=self.cost)


class CountingCapability(_Recording):
    """Capability that counts real invocations; content is ``fn(input)``.

    A ``delay_seconds`` keeps invocations in flight long enough for
    concurrent callers to overlap.
    """

    def __init__(
        self,
        fn: Callable[[Any], Any] | None = None,
        *,
        name: str = "counting",
        cost: Any = 0,
        delay_seconds: float = 0.0,
        version: str = "1",
        cache_config: dict[str, Any] | None = None,
    ) -> None:
        super().__init__()
        self.name = name
        self.version = version
        self.cache_config = dict(cache_config or {})
        self._fn = fn or (lambda value: value)
        self.cost = to_decimal(cost)
        self.delay_seconds = delay_seconds

    def invoke(self, input: Any, *, cancel: CancellationToken) -> Outcome:
        self._record(input)
        if self.delay_seconds:
            time.sleep(self.delay_seconds)
        return Outcome.ok(self._fn(input), cost=self.cost, tokens=TokenUsage(input_tokens=1))


class StubClassifier(_Recording):
    """Classifier returning a fixed label, a label per input, or ``fn(input)``.

    Example::

        classifier = StubClassifier("billing", cost="0.001")
        classifier = StubClassifier(labels={"I was charged twice": "billing"}, default="general")
    """

    def __init__(
        self,
        label: str | None = None,
        *,
        name: str = "stub_classifier",
        labels: Mapping[Any, str] | None = None,
        fn: Callable[[Any], str] | None = None,
        default: str = "unknown",
        cost: Any = 0,
        version: str = "1",
    ) -> None:
        super().__init__()
        self.name = name
        self.version = version
        self._label = label
        self._labels = dict(labels or {})
        self._fn = fn
        self._default = default
        self.cost = to_decimal(cost)
        self.seen_routes: list[dict[str, str | None]] = []

    def classify(
        self,
        input: Any,
        routes: Mapping[str, str | None],
        *,
        cancel: CancellationToken,
    ) -> Outcome:
        self._record(input)
        self.seen_routes.append(dict(routes))
        if self._fn is not None:
            label = self._fn(input)
        elif self._label is not None:
            label = self._label
        else:
            label = self._labels.get(input, self._default)
        return Outcome.ok(label, cost=self.cost, tokens=TokenUsage(input_tokens=10, output_tokens=1))


# ---------------------------------------------------------------------------
# Assertion helpers
# ---------------------------------------------------------------------------


class WorkflowAssertionError(AssertionError):
    """Raised when a workflow assertion fails.

    Provides contextual information about the workflow result.
    """

    def __init__(self, message: str, result: WorkflowResult) -> None:
        self.result = result
        super().__init__(
            f"{message}\n  Workflow: {result.workflow_name}\n  Status: {result.status.value}"
            + (f"\n  Error: {result.error.value}: {result.error_message}" if result.error else "")
        )


def assert_completed(result: WorkflowResult) -> None:
    """Assert that a workflow completed successfully.

    Raises
    ------
    WorkflowAssertionError
        If the workflow status is not ``COMPLETED``.
    """
    if result.status != WorkflowStatus.COMPLETED:
        raise WorkflowAssertionError(f"Expected COMPLETED, got {result.status.value}", result)


def assert_failed(
    result: WorkflowResult,
    error: ErrorKind | str | None = None,
    message_contains: str | None = None,
) -> None:
    """Assert that a workflow failed.

    Parameters
    ----------
    result
        The workflow result.
    error
        Expected run-level ErrorKind (optional).
    message_contains
        Substring expected in ``error_message`` (optional).
    """
    if result.status != WorkflowStatus.FAILED:
        raise WorkflowAssertionError(f"Expected FAILED, got {result.status.value}", result)
    if error is not None and result.error != ErrorKind(error):
        actual = result.error.value if result.error else None
        raise WorkflowAssertionError(f"Expected error {ErrorKind(error).value}, got {actual}", result)
    if message_contains and message_contains not in (result.error_message or ""):
        raise WorkflowAssertionError(
            f"Expected error message containing {message_contains!r}, got: {result.error_message!r}",
            result,
        )


def assert_partial(result: WorkflowResult) -> None:
    """Assert that some, but not all, Parallel branches failed."""
    if result.status != WorkflowStatus.PARTIAL:
        raise WorkflowAssertionError(f"Expected PARTIAL, got {result.status.value}", result)


def assert_total_cost(result: WorkflowResult, expected: Any) -> None:
    """Assert ``total_cost`` equals ``expected`` (compared as Decimal)."""
    expected_cost = to_decimal(expected)
    if result.total_cost != expected_cost:
        raise WorkflowAssertionError(
            f"Expected total_cost {expected_cost}, got {result.total_cost}",
            result,
        )


def outcome_costs(result: WorkflowResult) -> Decimal:
    """Independent recomputation of a result's cost, for property checks."""
    total = Decimal("0")
    for outcome in [*result.steps.values(), *result.branches.values()]:
        total += outcome.cost
    if result.classifier is not None:
        total += result.classifier.cost
    return total


__all__ = [
    "CountingCapability",
    "FailingCapability",
    "SlowCapability",
    "StubCapability",
    "StubClassifier",
    "WorkflowAssertionError",
    "assert_completed",
    "assert_failed",
    "assert_partial",
    "assert_total_cost",
    "outcome_costs",
]
