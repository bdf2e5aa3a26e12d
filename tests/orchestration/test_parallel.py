"""
Tests for the Parallel executor.

Covers:
- Tolerant fan-out: completed / partial / failed
- Fail-fast cancellation and partial cost
- Optional branches, transforms, aggregate hook
- Concurrency limits and budget aborts
"""

import threading
import time
from decimal import Decimal

import pytest

from weft.core.settings import WeftSettings
from weft.orchestration.exceptions import CapabilityError, WorkflowDeclarationError
from weft.orchestration.outcome import ErrorKind
from weft.orchestration.parallel import Branch, Parallel
from weft.orchestration.result import Topology
from weft.orchestration.testing import (
    CountingCapability,
    FailingCapability,
    SlowCapability,
    StubCapability,
    assert_completed,
    assert_failed,
    assert_partial,
    assert_total_cost,
    outcome_costs,
)


class TestTolerant:
    def test_partial_when_one_branch_fails(self):
        """sentiment, keywords, summary with keywords failing."""
        analysis = Parallel(
            "text.analysis",
            branches=[
                Branch("sentiment", StubCapability("positive", cost="0.01")),
                Branch("keywords", FailingCapability("rate limited", cost="0.002")),
                Branch("summary", StubCapability("short summary", cost="0.03")),
            ],
        )
        result = analysis.call("The product arrived broken")

        assert_partial(result)
        assert result.error is None
        assert result.branches["keywords"].error is ErrorKind.BRANCH_FAILURE
        assert result.branches["sentiment"].content == "positive"
        assert result.branches["summary"].content == "short summary"
        assert result.errors == {"keywords": "rate limited"}
        assert_total_cost(result, "0.042")
        assert result.topology == Topology.PARALLEL

    def test_completed_when_all_succeed(self):
        result = Parallel(
            "p", branches=[Branch("a", StubCapability(1)), Branch("b", StubCapability(2))]
        ).call("x")

        assert_completed(result)
        assert list(result.branches) == ["a", "b"]
        assert set(result.content) == {"a", "b"}
        assert result.content["a"].content == 1

    def test_failed_when_all_fail(self):
        result = Parallel(
            "p", branches=[Branch("a", FailingCapability()), Branch("b", FailingCapability())]
        ).call("x")

        assert_failed(result, ErrorKind.BRANCH_FAILURE, message_contains="2 of 2")
        assert result.failed_branches == ["a", "b"]

    @pytest.mark.parametrize("failing", [set(), {"a"}, {"a", "b"}, {"a", "b", "c"}])
    def test_every_branch_has_an_outcome(self, failing):
        branches = [
            Branch(name, FailingCapability() if name in failing else StubCapability(name))
            for name in ("a", "b", "c")
        ]
        result = Parallel("p", branches=branches).call("x")

        assert list(result.branches) == ["a", "b", "c"]
        assert result.total_cost == outcome_costs(result)
        if not failing:
            assert result.completed
        elif len(failing) == 3:
            assert result.failed
        else:
            assert result.partial

    def test_branches_run_concurrently(self):
        branches = [Branch(f"b{i}", CountingCapability(delay_seconds=0.2)) for i in range(4)]
        started = time.perf_counter()
        result = Parallel("p", branches=branches).call("x")

        assert_completed(result)
        assert time.perf_counter() - started < 0.7

    def test_branch_transform(self):
        summary = StubCapability(fn=lambda text: text)
        Parallel(
            "p",
            branches=[
                Branch("summary", summary, transform=lambda text: text[:5]),
                Branch("raw", StubCapability()),
            ],
        ).call("abcdefghij")
        assert summary.calls == ["abcde"]

    def test_transform_error_fails_branch(self):
        def broken(_):
            raise ValueError("bad input")

        result = Parallel(
            "p",
            branches=[Branch("a", StubCapability(1), transform=broken), Branch("b", StubCapability(2))],
        ).call("x")

        assert_partial(result)
        assert "transform failed" in result.branches["a"].error_message


class TestFailFast:
    def test_in_flight_branch_cancelled_with_partial_cost(self):
        slow = SlowCapability("late", delay_seconds=5.0, partial_cost="0.05")

        def fail_once_slow_started(_):
            slow.started.wait(2.0)
            raise CapabilityError("moderation failed", cost="0.01")

        group = Parallel(
            "p",
            branches=[Branch("slow", slow), Branch("fails", fail_once_slow_started)],
            fail_fast=True,
        )
        started = time.perf_counter()
        result = group.call("x")

        assert_failed(result, ErrorKind.BRANCH_FAILURE, message_contains="'fails'")
        assert time.perf_counter() - started < 2.0
        assert result.branches["fails"].error is ErrorKind.BRANCH_FAILURE
        assert result.branches["slow"].error is ErrorKind.CANCELLED
        assert result.branches["slow"].content is None
        assert slow.cancelled_calls == 1
        assert_total_cost(result, "0.06")

    def test_unstarted_branches_are_omitted(self):
        pending = CountingCapability()
        result = Parallel(
            "p",
            branches=[Branch("fails", FailingCapability()), Branch("pending", pending)],
            fail_fast=True,
            max_concurrency=1,
        ).call("x")

        assert_failed(result, ErrorKind.BRANCH_FAILURE)
        assert list(result.branches) == ["fails"]
        assert pending.call_count == 0

    def test_optional_branch_does_not_trip(self):
        result = Parallel(
            "p",
            branches=[
                Branch("extra", FailingCapability(), optional=True),
                Branch("main", StubCapability("ok")),
            ],
            fail_fast=True,
            max_concurrency=1,
        ).call("x")

        assert_partial(result)
        assert result.branches["main"].content == "ok"

    def test_no_completed_content_after_cancellation(self):
        slow_ok = [SlowCapability(f"late-{i}", delay_seconds=3.0) for i in range(3)]

        def fail_when_all_started(_):
            for cap in slow_ok:
                cap.started.wait(2.0)
            raise CapabilityError("boom")

        branches = [Branch(f"s{i}", cap) for i, cap in enumerate(slow_ok)]
        branches.append(Branch("fails", fail_when_all_started))
        result = Parallel("p", branches=branches, fail_fast=True).call("x")

        assert result.failed
        for name in ("s0", "s1", "s2"):
            assert result.branches[name].error is ErrorKind.CANCELLED
            assert result.branches[name].content is None


class TestAggregate:
    def test_custom_aggregate(self):
        group = Parallel(
            "p",
            branches=[Branch("a", StubCapability(1)), Branch("b", FailingCapability())],
            aggregate=lambda b: {n: o.content for n, o in b.items() if o.succeeded},
        )
        assert group.call("x").content == {"a": 1}

    def test_aggregate_runs_once_after_join(self):
        calls = []
        slow = CountingCapability(delay_seconds=0.1)

        def aggregate(branches):
            calls.append(dict(branches))
            return len(branches)

        result = Parallel(
            "p",
            branches=[Branch("fast", StubCapability(1)), Branch("slow", slow)],
            aggregate=aggregate,
        ).call("x")

        assert len(calls) == 1
        assert set(calls[0]) == {"fast", "slow"}
        assert result.content == 2

    def test_aggregate_error_falls_back(self):
        def broken(branches):
            raise ZeroDivisionError("oops")

        result = Parallel("p", branches=[Branch("a", StubCapability(1))], aggregate=broken).call("x")

        assert_completed(result)
        assert set(result.content) == {"a"}
        assert result.errors["aggregate"].startswith("ZeroDivisionError")


class TestLimits:
    def test_max_concurrency_respected(self):
        active = 0
        peak = 0
        lock = threading.Lock()

        def work(_):
            nonlocal active, peak
            with lock:
                active += 1
                peak = max(peak, active)
            time.sleep(0.05)
            with lock:
                active -= 1
            return "done"

        group = Parallel(
            "p",
            branches=[Branch(f"b{i}", work) for i in range(6)],
            max_concurrency=2,
        )
        result = group.call("x")

        assert_completed(result)
        assert group.max_workers == 2
        assert peak <= 2

    def test_workers_default_from_settings(self):
        group = Parallel(
            "p",
            branches=[Branch(f"b{i}", StubCapability()) for i in range(10)],
            settings=WeftSettings(max_parallel_workers=3),
        )
        assert group.max_workers == 3

    def test_invalid_concurrency(self):
        with pytest.raises(WorkflowDeclarationError):
            Parallel("p", branches=[Branch("a", StubCapability())], max_concurrency=0)

    def test_budget_abort_omits_remaining_branches(self):
        third = CountingCapability()
        result = Parallel(
            "p",
            branches=[
                Branch("a", StubCapability(cost="0.08")),
                Branch("b", StubCapability(cost="0.08")),
                Branch("c", third),
            ],
            max_cost="0.10",
            max_concurrency=1,
        ).call("x")

        assert_failed(result, ErrorKind.BUDGET_EXCEEDED)
        assert list(result.branches) == ["a", "b"]
        assert third.call_count == 0
        assert result.total_cost == Decimal("0.16")

    def test_abort_during_transform_omits_branch(self):
        def slow_transform(value):
            time.sleep(0.1)
            return value

        late = CountingCapability()
        result = Parallel(
            "p",
            branches=[Branch("a", late, transform=slow_transform)],
            timeout_seconds=0.05,
        ).call("x")

        assert_failed(result, ErrorKind.TIMEOUT_EXCEEDED)
        assert result.branches == {}
        assert late.call_count == 0

    def test_declaration(self):
        group = Parallel("fan", branches=[Branch("a", StubCapability()), Branch("b", StubCapability())])
        assert group.declaration.members == ("a", "b")
        assert group.declaration.topology == Topology.PARALLEL
