"""
Tests for the LLM capability adapters and mock providers.

Covers:
- MockLLMProvider response modes and call tracking
- MockEmbeddingProvider determinism
- ModelPricing
- LLMCapability / EmbedderCapability / LLMClassifier
"""

from decimal import Decimal

import pytest

from weft.orchestration.capability import CancellationToken
from weft.orchestration.exceptions import CapabilityError, OperationCancelled
from weft.orchestration.llm import (
    EmbedderCapability,
    LLMCapability,
    LLMClassifier,
    Message,
    MockEmbeddingProvider,
    MockLLMProvider,
    ModelPricing,
    Role,
    extract_text,
)
from weft.orchestration.outcome import TokenUsage
from weft.orchestration.pipeline import Pipeline, Step
from weft.orchestration.router import Route, Router
from weft.orchestration.testing import StubCapability


class TestMockLLMProvider:
    def test_default_response(self):
        provider = MockLLMProvider(default_response="42")
        assert provider.complete([Message.user("What is 6*7?")]).content == "42"

    def test_responses_match_last_user_message(self):
        provider = MockLLMProvider(responses={"refund": "billing"}, default_response="general")
        assert provider.complete([Message.user("I want a refund")]).content == "billing"
        assert provider.complete([Message.user("hello")]).content == "general"

    def test_sequence(self):
        provider = MockLLMProvider(sequence=["first", "second"], default_response="done")
        contents = [provider.complete([Message.user(str(i))]).content for i in range(3)]
        assert contents == ["first", "second", "done"]

    def test_tracks_calls_and_resets(self):
        provider = MockLLMProvider()
        provider.complete([Message.system("sys"), Message.user("hi")], "m", temperature=0.0)
        assert provider.call_count == 1
        assert provider.calls[0]["model"] == "m"
        assert provider.calls[0]["messages"][0] == {"role": "system", "content": "sys"}
        provider.reset()
        assert provider.call_count == 0

    def test_error_raised_after_tracking(self):
        provider = MockLLMProvider(error=TimeoutError("upstream"))
        with pytest.raises(TimeoutError):
            provider.complete([Message.user("x")])
        assert provider.call_count == 1

    def test_usage_estimate(self):
        response = MockLLMProvider(default_response="abcd").complete([Message.user("12345678")])
        assert response.usage == TokenUsage(input_tokens=2, output_tokens=1)


class TestMockEmbeddingProvider:
    def test_deterministic(self):
        provider = MockEmbeddingProvider()
        first = provider.embed(["hello"]).vectors[0]
        second = provider.embed(["hello"]).vectors[0]
        assert first == second
        assert len(first) == 8
        assert all(-1.0 <= v <= 1.0 for v in first)

    def test_dimensions(self):
        response = MockEmbeddingProvider().embed(["a", "b"], dimensions=40)
        assert response.dimensions == 40
        assert response.vectors[0] != response.vectors[1]


class TestModelPricing:
    def test_cost(self):
        pricing = ModelPricing(input_per_million="0.15", output_per_million="0.60")
        assert pricing.cost(TokenUsage(1200, 300)) == Decimal("0.00036")

    def test_free(self):
        assert ModelPricing.free().cost(TokenUsage(10**6, 10**6)) == Decimal("0")

    def test_negative_rejected(self):
        with pytest.raises(ValueError):
            ModelPricing(input_per_million="-1")


class TestExtractText:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("plain", "plain"),
            ({"message": "hi", "text": "other"}, "hi"),
            ({"document": "body"}, "body"),
            ({"n": 1}, '{"n": 1}'),
            (42, "42"),
        ],
    )
    def test_extract(self, value, expected):
        assert extract_text(value) == expected


class TestLLMCapability:
    def test_invoke_prices_usage(self):
        provider = MockLLMProvider(default_response="summary")
        agent = LLMCapability(
            provider,
            name="summarize",
            model="small",
            system_prompt="Summarize.",
            pricing=ModelPricing(input_per_million="1000000", output_per_million="0"),
        )

        outcome = agent.invoke("long text", cancel=CancellationToken())

        assert outcome.content == "summary"
        assert outcome.cost == Decimal(outcome.tokens.input_tokens)
        assert outcome.metadata["model"] == "small"
        messages = provider.calls[0]["messages"]
        assert messages[0] == {"role": Role.SYSTEM.value, "content": "Summarize."}
        assert messages[1]["content"] == "long text"

    def test_prompt_template(self):
        agent = LLMCapability(MockLLMProvider(), prompt_template="Label {text} as {kind}")
        messages = agent.build_messages({"text": "x", "kind": "y"})
        assert messages[-1].content == "Label x as y"
        assert LLMCapability(MockLLMProvider()).build_messages("z")[-1].content == "z"

    def test_provider_error_becomes_capability_error(self):
        agent = LLMCapability(MockLLMProvider(error=ConnectionError("reset")), name="agent")
        with pytest.raises(CapabilityError) as exc_info:
            agent.invoke("x", cancel=CancellationToken())
        assert isinstance(exc_info.value.cause, ConnectionError)

    def test_cancelled_before_call(self):
        provider = MockLLMProvider()
        token = CancellationToken()
        token.cancel("stop")
        with pytest.raises(OperationCancelled):
            LLMCapability(provider).invoke("x", cancel=token)
        assert provider.call_count == 0

    def test_in_pipeline(self):
        agent = LLMCapability(
            MockLLMProvider(default_response="positive"),
            name="sentiment",
            pricing=ModelPricing(input_per_million="1", output_per_million="1"),
        )
        result = Pipeline("p", steps=[Step("sentiment", agent)]).call("great product")
        assert result.completed
        assert result.content == "positive"
        assert result.total_cost > 0
        assert result.tokens.total_tokens > 0

    def test_provider_failure_in_pipeline(self):
        agent = LLMCapability(MockLLMProvider(error=TimeoutError("slow")))
        result = Pipeline("p", steps=[Step("a", agent)]).call("x")
        assert result.failed
        assert result.steps["a"].error_type == "TimeoutError"


class TestEmbedderCapability:
    def test_single_and_batch(self):
        embedder = EmbedderCapability(MockEmbeddingProvider(), dimensions=4)
        single = embedder.invoke("hello", cancel=CancellationToken())
        batch = embedder.invoke(["hello", "world"], cancel=CancellationToken())

        assert len(single.content) == 4
        assert batch.content[0] == single.content
        assert len(batch.content) == 2
        assert single.metadata["dimensions"] == 4

    def test_cache_config(self):
        embedder = EmbedderCapability(MockEmbeddingProvider(), model="emb", dimensions=256)
        assert embedder.cache_config == {"model": "emb", "dimensions": 256}

    def test_invalid_dimensions(self):
        with pytest.raises(ValueError):
            EmbedderCapability(MockEmbeddingProvider(), dimensions=0)


class TestLLMClassifier:
    def test_prompt_lists_routes(self):
        classifier = LLMClassifier(MockLLMProvider())
        prompt = classifier.build_prompt(
            {"message": "charged twice"}, {"billing": "refunds", "general": None}
        )
        assert "- billing: refunds" in prompt
        assert "- general\n" in prompt
        assert "Input: charged twice" in prompt
        assert "exactly one of: billing, general" in prompt

    def test_normalizes_label(self):
        provider = MockLLMProvider(default_response=" Billing.\n")
        outcome = LLMClassifier(provider).classify("x", {"billing": None}, cancel=CancellationToken())
        assert outcome.content == "billing"
        assert outcome.metadata["raw_label"] == " Billing.\n"
        assert provider.calls[0]["temperature"] == 0.0

    def test_routes_support_ticket(self):
        billing = StubCapability("refund issued", name="billing")
        technical = StubCapability("restart it", name="technical")
        router = Router(
            "support",
            routes=[
                Route("billing", billing, description="charges and refunds"),
                Route("technical", technical, description="bugs and outages"),
            ],
            classifier=LLMClassifier(
                MockLLMProvider(responses={"charged": "BILLING"}),
                pricing=ModelPricing(input_per_million="1", output_per_million="1"),
            ),
        )

        result = router.call({"message": "I was charged twice"})

        assert result.routed_to == "billing"
        assert result.content == "refund issued"
        assert technical.call_count == 0
        assert result.classification_cost > 0
