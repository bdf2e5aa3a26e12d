"""
Tests for the Outcome envelope and TokenUsage.

Covers:
- Factories (ok / failure / skip / from_value)
- Cost coercion and validation
- Relabelling (with_error / cancelled / as_cache_hit / shared)
- Serialization to and from dicts
"""

from decimal import Decimal

import pytest

from weft.orchestration.outcome import ErrorKind, Outcome, TokenUsage, to_decimal


class TestTokenUsage:
    def test_total_and_add(self):
        usage = TokenUsage(10, 5) + TokenUsage(1, 2)
        assert usage == TokenUsage(11, 7)
        assert usage.total_tokens == 18
        assert usage.to_dict() == {"input_tokens": 11, "output_tokens": 7, "total_tokens": 18}


class TestToDecimal:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            (None, Decimal("0")),
            (0.1, Decimal("0.1")),
            ("0.25", Decimal("0.25")),
            (2, Decimal("2")),
            (Decimal("1.5"), Decimal("1.5")),
        ],
    )
    def test_coercion(self, value, expected):
        assert to_decimal(value) == expected


class TestFactories:
    def test_ok(self):
        outcome = Outcome.ok("positive", cost="0.0004", tokens=TokenUsage(120, 3))
        assert outcome.succeeded
        assert not outcome.failed
        assert outcome.content == "positive"
        assert outcome.cost == Decimal("0.0004")

    def test_float_cost_goes_through_str(self):
        assert Outcome.ok(cost=0.1).cost == Decimal("0.1")

    def test_negative_cost_rejected(self):
        with pytest.raises(ValueError, match=">= 0"):
            Outcome.ok(cost="-0.01")

    def test_failure_keeps_partial_cost(self):
        outcome = Outcome.failure(ErrorKind.CAPABILITY_ERROR, "provider 500", cost="0.02")
        assert outcome.failed
        assert not outcome.succeeded
        assert outcome.content is None
        assert outcome.cost == Decimal("0.02")
        assert outcome.error_message == "provider 500"

    def test_failure_accepts_string_kind(self):
        assert Outcome.failure("CANCELLED").error is ErrorKind.CANCELLED

    def test_failure_default_message(self):
        assert Outcome.failure(ErrorKind.ROUTE_NOT_FOUND).error_message == "route not found"

    def test_skip(self):
        outcome = Outcome.skip("classify", "no text")
        assert outcome.skipped
        assert not outcome.succeeded
        assert not outcome.failed
        assert outcome.cost == Decimal("0")
        assert outcome.metadata == {"skip_reason": "no text"}

    def test_skip_cannot_carry_cost(self):
        with pytest.raises(ValueError):
            Outcome(name="x", skipped=True, cost="0.1")

    def test_from_value(self):
        existing = Outcome.ok("x")
        assert Outcome.from_value(existing) is existing
        coerced = Outcome.from_value({"k": 1})
        assert coerced.content == {"k": 1}
        assert coerced.cost == Decimal("0")


class TestDerivation:
    def test_named(self):
        assert Outcome.ok(1).named("step").name == "step"

    def test_with_error_drops_content_keeps_cost(self):
        relabelled = Outcome.ok("text", cost="0.3").with_error(ErrorKind.BRANCH_FAILURE, "boom")
        assert relabelled.content is None
        assert relabelled.cost == Decimal("0.3")
        assert relabelled.error is ErrorKind.BRANCH_FAILURE
        assert relabelled.error_message == "boom"

    def test_with_error_keeps_previous_message(self):
        failed = Outcome.failure(ErrorKind.CAPABILITY_ERROR, "timeout from provider")
        relabelled = failed.with_error(ErrorKind.STEP_FAILURE)
        assert relabelled.error_message == "timeout from provider"

    def test_cancelled(self):
        outcome = Outcome.ok("late", cost="0.05").cancelled("fail-fast")
        assert outcome.error is ErrorKind.CANCELLED
        assert outcome.content is None
        assert outcome.cost == Decimal("0.05")

    def test_as_cache_hit(self):
        hit = Outcome.ok([0.1], cost="0.01", tokens=TokenUsage(3, 0)).as_cache_hit()
        assert hit.cached
        assert hit.cost == Decimal("0")
        assert hit.tokens == TokenUsage()
        assert hit.content == [0.1]

    def test_shared_failure_is_free_but_not_cached(self):
        failed = Outcome.failure(ErrorKind.CAPABILITY_ERROR, "503", cost="0.10", tokens=TokenUsage(5, 0))
        shared = failed.shared()
        assert shared.failed
        assert shared.error_message == "503"
        assert shared.cost == Decimal("0")
        assert shared.tokens == TokenUsage()
        assert not shared.cached

    def test_shared_success_is_a_cache_hit(self):
        assert Outcome.ok("v", cost="0.2").shared().cached

    def test_frozen(self):
        with pytest.raises(AttributeError):
            Outcome.ok(1).content = 2


class TestSerialization:
    def test_round_trip_failure(self):
        original = Outcome.failure(
            ErrorKind.CAPABILITY_ERROR,
            "boom",
            name="summary",
            cost="0.02",
            tokens=TokenUsage(4, 1),
            error_type="TimeoutError",
            metadata={"model": "m"},
        )
        restored = Outcome.from_dict(original.to_dict())
        assert restored == original

    def test_to_dict_success_omits_error(self):
        data = Outcome.ok("x", name="a").to_dict()
        assert "error" not in data
        assert data["cost"] == "0"

    def test_repr(self):
        assert repr(Outcome.skip("s")) == "Outcome('s', SKIPPED, cost=0)"
        assert "FAIL(CANCELLED)" in repr(Outcome.failure(ErrorKind.CANCELLED))
