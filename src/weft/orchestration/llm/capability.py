"""LLM capabilities — agents, embedders and classifiers over providers.

These adapters are the bridge between a provider (anything implementing
``LLMProvider`` / ``EmbeddingProvider``) and the orchestration engine:
they build messages, price the usage, observe the cancellation token and
turn provider errors into ``CapabilityError``.

ARCHITECTURE
────────────
::

    LLMCapability(provider, model, system_prompt, prompt_template, pricing)
      └── invoke(input, cancel) → Outcome(content=text, cost, tokens)

    EmbedderCapability(provider, model, dimensions, pricing)
      ├── cache_config → {"model", "dimensions"}   (part of the fingerprint)
      └── invoke(text | [texts], cancel) → Outcome(content=vector | [vectors])

    LLMClassifier(provider, model, pricing)
      └── classify(input, routes, cancel) → Outcome(content=label)

Cancellation: the token is checked before the provider call. If it was
cancelled while the call was in flight, the (already paid) cost is
reported through ``OperationCancelled`` and the content is dropped.

Example::

    summarize = LLMCapability(
        provider,
        name="summarize",
        model="gpt-4o-mini",
        system_prompt="Summarize in one sentence.",
        pricing=ModelPricing(input_per_million="0.15", output_per_million="0.60"),
    )

Tags:
    weft, orchestration, llm, capability, embeddings, classifier
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from decimal import Decimal
from typing import Any

from weft.core.logging import get_logger
from weft.orchestration.capability import CancellationToken
from weft.orchestration.exceptions import CapabilityError, OperationCancelled
from weft.orchestration.llm.pricing import ModelPricing
from weft.orchestration.llm.protocol import (
    EmbeddingProvider,
    LLMProvider,
    Message,
)
from weft.orchestration.outcome import Outcome, TokenUsage
from weft.orchestration.router import normalize_label

logger = get_logger(__name__)

TEXT_KEYS = ("message", "text", "content", "query", "input", "prompt")


def extract_text(input: Any) -> str:
    """Pick the text a model should see from structured input.

    Strings pass through; mappings use the first non-empty well-known key
    (``message``, ``text``, ``content`` ...), then the first non-empty string
    value, then their JSON form.
    """
    if isinstance(input, str):
        return input
    if isinstance(input, Mapping):
        for key in TEXT_KEYS:
            value = input.get(key)
            if value:
                return str(value)
        for value in input.values():
            if isinstance(value, str) and value:
                return value
        return json.dumps(input, sort_keys=True, default=str)
    return str(input)


def _stop_if_cancelled(cancel: CancellationToken, cost: Decimal, tokens: TokenUsage) -> None:
    if cancel.cancelled:
        raise OperationCancelled(cancel.reason or "cancelled", cost=cost, tokens=tokens)


class LLMCapability:
    """Chat-completion capability ("agent").

    Args:
        provider: LLMProvider backend
        name: Capability identity (logs and cache fingerprints)
        model: Model identifier passed to the provider
        system_prompt: Optional system message
        prompt_template: ``str.format`` template; mapping inputs are passed
            as keyword arguments, anything else as ``{input}``
        temperature / max_tokens: Generation parameters
        pricing: Prices used to compute Outcome cost
        version: Bump to invalidate cached outcomes
    """

    def __init__(
        self,
        provider: LLMProvider,
        *,
        name: str = "llm",
        model: str | None = None,
        system_prompt: str | None = None,
        prompt_template: str | None = None,
        temperature: float = 0.7,
        max_tokens: int = 1024,
        pricing: ModelPricing | None = None,
        version: str = "1",
    ):
        self.provider = provider
        self.name = name
        self.model = model
        self.system_prompt = system_prompt
        self.prompt_template = prompt_template
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.pricing = pricing or ModelPricing.free()
        self.version = version

    @property
    def cache_config(self) -> dict[str, Any]:
        return {
            "model": self.model,
            "system_prompt": self.system_prompt,
            "prompt_template": self.prompt_template,
            "temperature": self.temperature,
        }

    def build_messages(self, input: Any) -> list[Message]:
        messages = []
        if self.system_prompt:
            messages.append(Message.system(self.system_prompt))
        if self.prompt_template is None:
            prompt = extract_text(input)
        elif isinstance(input, Mapping):
            prompt = self.prompt_template.format(**input)
        else:
            prompt = self.prompt_template.format(input=input)
        messages.append(Message.user(prompt))
        return messages

    def invoke(self, input: Any, *, cancel: CancellationToken) -> Outcome:
        cancel.checkpoint()
        messages = self.build_messages(input)
        try:
            response = self.provider.complete(
                messages,
                self.model,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
        except Exception as exc:
            raise CapabilityError(f"{self.name}: provider call failed: {exc}", cause=exc) from exc

        cost = self.pricing.cost(response.usage)
        _stop_if_cancelled(cancel, cost, response.usage)
        return Outcome.ok(
            response.content,
            cost=cost,
            tokens=response.usage,
            metadata={"model": response.model, "finish_reason": response.finish_reason},
        )

    def __repr__(self) -> str:
        return f"LLMCapability({self.name!r}, model={self.model!r})"


class EmbedderCapability:
    """Embedding capability; deterministic, so a natural cache candidate.

    A single string returns one vector; a list of strings returns a list
    of vectors in the same order.
    """

    def __init__(
        self,
        provider: EmbeddingProvider,
        *,
        name: str = "embedder",
        model: str | None = None,
        dimensions: int | None = None,
        pricing: ModelPricing | None = None,
        version: str = "1",
    ):
        if dimensions is not None and dimensions < 1:
            raise ValueError(f"dimensions must be >= 1, got {dimensions}")
        self.provider = provider
        self.name = name
        self.model = model
        self.dimensions = dimensions
        self.pricing = pricing or ModelPricing.free()
        self.version = version

    @property
    def cache_config(self) -> dict[str, Any]:
        return {"model": self.model, "dimensions": self.dimensions}

    def invoke(self, input: Any, *, cancel: CancellationToken) -> Outcome:
        cancel.checkpoint()
        single = not isinstance(input, (list, tuple))
        texts = [extract_text(input)] if single else [extract_text(t) for t in input]
        try:
            response = self.provider.embed(texts, self.model, dimensions=self.dimensions)
        except Exception as exc:
            raise CapabilityError(f"{self.name}: embedding failed: {exc}", cause=exc) from exc

        cost = self.pricing.cost(response.usage)
        _stop_if_cancelled(cancel, cost, response.usage)
        content = response.vectors[0] if single else response.vectors
        return Outcome.ok(
            content,
            cost=cost,
            tokens=response.usage,
            metadata={"model": response.model, "dimensions": response.dimensions},
        )

    def __repr__(self) -> str:
        return f"EmbedderCapability({self.name!r}, model={self.model!r}, dimensions={self.dimensions})"


class LLMClassifier:
    """Router classifier backed by a chat model.

    The prompt lists every route label with its description and asks for
    exactly one label. Temperature is fixed at 0; the reply is normalized
    before the router matches it.
    """

    def __init__(
        self,
        provider: LLMProvider,
        *,
        name: str = "llm_classifier",
        model: str | None = None,
        max_tokens: int = 16,
        pricing: ModelPricing | None = None,
        version: str = "1",
    ):
        self.provider = provider
        self.name = name
        self.model = model
        self.max_tokens = max_tokens
        self.pricing = pricing or ModelPricing.free()
        self.version = version

    def build_prompt(self, input: Any, routes: Mapping[str, str | None]) -> str:
        categories = "\n".join(
            f"- {label}: {description}" if description else f"- {label}"
            for label, description in routes.items()
        )
        return (
            "Classify the following input into exactly one category.\n\n"
            f"Categories:\n{categories}\n\n"
            f"Input: {extract_text(input)}\n\n"
            "Respond with ONLY the category name, nothing else. "
            f"The response must be exactly one of: {', '.join(routes)}"
        )

    def classify(
        self,
        input: Any,
        routes: Mapping[str, str | None],
        *,
        cancel: CancellationToken,
    ) -> Outcome:
        cancel.checkpoint()
        prompt = self.build_prompt(input, routes)
        try:
            response = self.provider.complete(
                [Message.user(prompt)],
                self.model,
                temperature=0.0,
                max_tokens=self.max_tokens,
            )
        except Exception as exc:
            raise CapabilityError(f"{self.name}: classification failed: {exc}", cause=exc) from exc

        cost = self.pricing.cost(response.usage)
        _stop_if_cancelled(cancel, cost, response.usage)
        label = normalize_label(response.content)
        logger.debug("router.classified", classifier=self.name, raw=response.content, label=label)
        return Outcome.ok(
            label,
            cost=cost,
            tokens=response.usage,
            metadata={"model": response.model, "raw_label": response.content},
        )

    def __repr__(self) -> str:
        return f"LLMClassifier({self.name!r}, model={self.model!r})"


__all__ = [
    "EmbedderCapability",
    "LLMCapability",
    "LLMClassifier",
    "extract_text",
]
