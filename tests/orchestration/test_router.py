"""
Tests for the Router executor.

Covers:
- Classifier dispatch to exactly one route
- Default route, ROUTE_NOT_FOUND, label normalization
- Rule matching ahead of the classifier
- before_route hook and failure handling
- Declaration validation
"""

import time
from decimal import Decimal

import pytest

from weft.orchestration.exceptions import WorkflowDeclarationError
from weft.orchestration.outcome import ErrorKind
from weft.orchestration.result import Topology
from weft.orchestration.router import CLASSIFIER_NAME, Route, Router, normalize_label
from weft.orchestration.testing import (
    CountingCapability,
    FailingCapability,
    StubCapability,
    StubClassifier,
    assert_completed,
    assert_failed,
    assert_total_cost,
)


@pytest.fixture
def specialists():
    return {
        "billing": StubCapability("refund issued", name="billing", cost="0.02"),
        "technical": StubCapability("restart the router", name="technical", cost="0.05"),
        "general": StubCapability("thanks for writing", name="general", cost="0.01"),
    }


def _support(specialists, classifier, **options) -> Router:
    return Router(
        "support.triage",
        routes=[
            Route("billing", specialists["billing"], description="charges, refunds"),
            Route("technical", specialists["technical"]),
            Route("general", specialists["general"]),
        ],
        classifier=classifier,
        default_label=options.pop("default_label", "general"),
        **options,
    )


class TestDispatch:
    def test_routes_to_classified_label(self, specialists):
        classifier = StubClassifier(
            labels={"I was charged twice": "billing"}, default="general", cost="0.001"
        )
        result = _support(specialists, classifier).call("I was charged twice")

        assert_completed(result)
        assert result.routed_to == "billing"
        assert result.content == "refund issued"
        assert specialists["technical"].call_count == 0
        assert specialists["general"].call_count == 0
        assert list(result.branches) == ["billing"]
        assert_total_cost(result, "0.021")
        assert result.classification_cost == Decimal("0.001")
        assert result.topology == Topology.ROUTER

    def test_classifier_sees_every_description(self, specialists):
        classifier = StubClassifier("billing")
        _support(specialists, classifier).call("x")
        assert classifier.seen_routes == [
            {"billing": "charges, refunds", "technical": None, "general": None}
        ]

    def test_classification_details(self, specialists):
        result = _support(specialists, StubClassifier("technical")).call("it crashes")
        assert result.classification["label"] == "technical"
        assert result.classification["route"] == "technical"
        assert result.classification["method"] == CLASSIFIER_NAME
        assert result.classification["classifier"] == "stub_classifier"
        assert result.classifier.name == CLASSIFIER_NAME

    def test_classifier_output_not_in_context(self, specialists):
        result = _support(specialists, StubClassifier("billing")).call("x")
        assert result.context.names() == ["billing"]

    def test_plain_function_classifier(self, specialists):
        result = _support(specialists, lambda message, routes: "technical").call("x")
        assert result.routed_to == "technical"
        assert result.classifier.cost == Decimal("0")

    def test_label_is_normalized(self, specialists):
        result = _support(specialists, StubClassifier(" Technical.\n")).call("x")
        assert result.routed_to == "technical"
        assert result.classification["label"] == " Technical.\n"


class TestDefaultRoute:
    def test_unknown_label_goes_to_default(self, specialists):
        result = _support(specialists, StubClassifier("shipping")).call("where is my parcel")

        assert_completed(result)
        assert result.routed_to == "general"
        assert specialists["billing"].call_count == 0

    def test_unknown_label_without_default_fails(self, specialists):
        router = _support(specialists, StubClassifier("shipping", cost="0.001"), default_label=None)
        result = router.call("x")

        assert_failed(result, ErrorKind.ROUTE_NOT_FOUND, message_contains="shipping")
        assert result.routed_to is None
        assert result.branches == {}
        assert "routing" in result.errors
        assert_total_cost(result, "0.001")
        assert all(cap.call_count == 0 for cap in specialists.values())


class TestRules:
    def test_rule_match_skips_classifier(self, specialists):
        classifier = StubClassifier("general")
        router = Router(
            "support",
            routes=[
                Route("billing", specialists["billing"], match=lambda m: "refund" in m),
                Route("general", specialists["general"]),
            ],
            classifier=classifier,
        )
        result = router.call("I want a refund")

        assert result.routed_to == "billing"
        assert result.classification["method"] == "rule"
        assert result.classifier is None
        assert classifier.call_count == 0

    def test_rule_errors_fall_through(self, specialists):
        def broken(_):
            raise AttributeError("no lower")

        router = Router(
            "support",
            routes=[
                Route("billing", specialists["billing"], match=broken),
                Route("general", specialists["general"]),
            ],
            classifier=StubClassifier("general"),
        )
        assert router.call(42).routed_to == "general"

    def test_rules_only_router_uses_default(self, specialists):
        router = Router(
            "support",
            routes=[
                Route("billing", specialists["billing"], match=lambda m: "refund" in m),
                Route("general", specialists["general"]),
            ],
            default_label="general",
        )
        result = router.call("hello")

        assert result.routed_to == "general"
        assert result.classification["method"] == "default"


class TestHooksAndFailures:
    def test_before_route_transforms_input(self, specialists):
        router = _support(
            specialists,
            StubClassifier("billing"),
            before_route=lambda message, label: {"message": message, "queue": label},
        )
        router.call("charged twice")
        assert specialists["billing"].calls == [{"message": "charged twice", "queue": "billing"}]

    def test_before_route_error_fails_run(self, specialists):
        def broken(message, label):
            raise ValueError("no account id")

        result = _support(specialists, StubClassifier("billing"), before_route=broken).call("x")

        assert_failed(result, ErrorKind.CAPABILITY_ERROR)
        assert "before_route failed" in result.branches["billing"].error_message
        assert specialists["billing"].call_count == 0

    def test_classifier_failure_fails_run(self, specialists):
        def broken(message, routes):
            raise TimeoutError("classifier timed out")

        result = _support(specialists, broken).call("x")

        assert_failed(result, ErrorKind.CAPABILITY_ERROR, message_contains="Classifier failed")
        assert result.routed_to is None
        assert result.classifier.failed
        assert "classifier" in result.errors
        assert all(cap.call_count == 0 for cap in specialists.values())

    def test_route_failure_fails_run(self, specialists):
        router = Router(
            "support",
            routes=[Route("billing", FailingCapability("billing API down", cost="0.004"))],
            classifier=StubClassifier("billing", cost="0.001"),
        )
        result = router.call("x")

        assert_failed(result, ErrorKind.CAPABILITY_ERROR, message_contains="billing API down")
        assert result.routed_to == "billing"
        assert result.branches["billing"].failed
        assert_total_cost(result, "0.005")

    def test_budget_exhausted_by_classifier(self):
        route = CountingCapability()
        router = Router(
            "support",
            routes=[Route("billing", route)],
            classifier=StubClassifier("billing", cost="0.50"),
            max_cost="0.10",
        )
        result = router.call("x")

        assert_failed(result, ErrorKind.BUDGET_EXCEEDED)
        assert result.routed_to == "billing"
        assert result.branches == {}
        assert route.call_count == 0
        assert_total_cost(result, "0.50")

    def test_timeout_in_before_route_omits_route(self):
        def slow_hook(message, label):
            time.sleep(0.1)
            return message

        route = CountingCapability()
        router = Router(
            "support",
            routes=[Route("billing", route)],
            classifier=StubClassifier("billing"),
            before_route=slow_hook,
            timeout_seconds=0.05,
        )
        result = router.call("x")

        assert_failed(result, ErrorKind.TIMEOUT_EXCEEDED)
        assert result.branches == {}
        assert route.call_count == 0


class TestDeclaration:
    def test_requires_classifier_or_rule(self):
        with pytest.raises(WorkflowDeclarationError, match="classifier"):
            Router("r", routes=[Route("a", StubCapability())])

    def test_default_label_must_exist(self):
        with pytest.raises(WorkflowDeclarationError, match="default_label"):
            Router("r", routes=[Route("a", StubCapability())], classifier=StubClassifier("a"), default_label="b")

    def test_duplicate_labels(self):
        with pytest.raises(WorkflowDeclarationError):
            Router(
                "r",
                routes=[Route("a", StubCapability()), Route("a", StubCapability())],
                classifier=StubClassifier("a"),
            )

    def test_labels_distinct_after_normalization(self):
        with pytest.raises(WorkflowDeclarationError, match="normalization"):
            Router(
                "r",
                routes=[Route("Billing", StubCapability()), Route("billing", StubCapability())],
                classifier=StubClassifier("billing"),
            )

    def test_invalid_classifier(self):
        with pytest.raises(WorkflowDeclarationError):
            Router("r", routes=[Route("a", StubCapability())], classifier=42)

    def test_declaration_surface(self, specialists):
        router = _support(specialists, StubClassifier("billing"))
        assert router.declaration.members == ("billing", "technical", "general")
        assert router.resolve("BILLING").label == "billing"
        assert router.resolve("unknown") is None


class TestNormalizeLabel:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [(" Billing.\n", "billing"), ("tech_support", "tech_support"), ("'General'", "general"), (None, "")],
    )
    def test_normalize(self, raw, expected):
        assert normalize_label(raw) == expected
