"""Mock providers — deterministic LLM and embedding backends for testing.

Manifesto:
Testing LLM-powered workflows requires providers that return predictable
results without network calls. ``MockLLMProvider`` supports canned
responses, response scripting, failures and call tracking;
``MockEmbeddingProvider`` derives stable vectors from a hash of the text.

ARCHITECTURE
────────────
::

    MockLLMProvider
      ├── .complete(messages) → LLMResponse (canned or scripted)
      ├── .models()           → list of fake model names
      ├── .calls              → list of all calls made
      └── .call_count         → total calls

    Configuration:
      default_response   — text returned for all calls
      responses          — mapping of prompt substrings → responses
      sequence           — list of responses returned in order
      error              — exception raised on every call

    MockEmbeddingProvider
      └── .embed(texts, dimensions) → EmbeddingResponse (sha256-derived)

Example::

    provider = MockLLMProvider(default_response="42")
    resp = provider.complete([Message.user("What is 6*7?")])
    assert resp.content == "42"

    provider = MockLLMProvider(sequence=["first", "second"])
    assert provider.complete([Message.user("1")]).content == "first"
    assert provider.complete([Message.user("2")]).content == "second"

Tags:
    weft, orchestration, llm, mock, testing, deterministic
"""

from __future__ import annotations

import hashlib
import threading
from dataclasses import dataclass, field
from typing import Any

from weft.orchestration.llm.protocol import (
    EmbeddingResponse,
    LLMResponse,
    Message,
)
from weft.orchestration.outcome import TokenUsage


def _estimate_tokens(text: str, tokens_per_char: float) -> int:
    return max(1, int(len(text) * tokens_per_char))


@dataclass
class MockLLMProvider:
    """Deterministic LLM provider for testing.

    Supports three response modes (checked in order):
    1. ``responses``: match against the last user message content
    2. ``sequence``: return responses in order
    3. ``default_response``: fallback for all calls

    Attributes:
        default_response: Text returned when no match/sequence entry.
        responses: Map of substring matches → response text.
        sequence: Ordered list of responses (consumed on each call).
        model_name: Fake model name for responses.
        tokens_per_char: Approximate tokens per character (for usage).
        error: Raised on every call when set (after the call is tracked).
    """

    default_response: str = "Mock LLM response"
    responses: dict[str, str] = field(default_factory=dict)
    sequence: list[str] = field(default_factory=list)
    model_name: str = "mock-model-v1"
    tokens_per_char: float = 0.25
    error: Exception | None = None

    # Tracking
    calls: list[dict[str, Any]] = field(default_factory=list, repr=False)
    _sequence_index: int = field(default=0, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def complete(
        self,
        messages: list[Message],
        model: str | None = None,
        *,
        temperature: float = 0.7,
        max_tokens: int = 1024,
        **kwargs: Any,
    ) -> LLMResponse:
        """Return a mock completion."""
        effective_model = model or self.model_name

        with self._lock:
            self.calls.append({
                "messages": [m.to_dict() for m in messages],
                "model": effective_model,
                "temperature": temperature,
                "max_tokens": max_tokens,
                "kwargs": kwargs,
            })
            if self.error is not None:
                raise self.error
            content = self._resolve_content(messages)

        prompt_text = " ".join(m.content for m in messages)
        return LLMResponse(
            content=content,
            model=effective_model,
            usage=TokenUsage(
                input_tokens=_estimate_tokens(prompt_text, self.tokens_per_char),
                output_tokens=_estimate_tokens(content, self.tokens_per_char),
            ),
            metadata={"provider": "mock"},
        )

    def models(self) -> list[str]:
        """Return a list of fake model names."""
        return [self.model_name]

    @property
    def call_count(self) -> int:
        """Total number of calls made."""
        return len(self.calls)

    def reset(self) -> None:
        """Reset call tracking and sequence index."""
        with self._lock:
            self.calls.clear()
            self._sequence_index = 0

    def _resolve_content(self, messages: list[Message]) -> str:
        """Determine response content from configured sources (lock held)."""
        if self.responses and messages:
            last_user = next(
                (m.content for m in reversed(messages) if m.role.value == "user"),
                "",
            )
            for key, response in self.responses.items():
                if key in last_user:
                    return response

        if self.sequence and self._sequence_index < len(self.sequence):
            content = self.sequence[self._sequence_index]
            self._sequence_index += 1
            return content

        return self.default_response


@dataclass
class MockEmbeddingProvider:
    """Deterministic embedding provider.

    The same text always yields the same vector; different texts (almost
    surely) differ. Values lie in ``[-1, 1]``.

    Attributes:
        model_name: Fake model name for responses.
        default_dimensions: Vector size when ``dimensions`` is not requested.
        tokens_per_char: Approximate tokens per character (for usage).
    """

    model_name: str = "mock-embedding-v1"
    default_dimensions: int = 8
    tokens_per_char: float = 0.25

    calls: list[dict[str, Any]] = field(default_factory=list, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def embed(
        self,
        texts: list[str],
        model: str | None = None,
        *,
        dimensions: int | None = None,
    ) -> EmbeddingResponse:
        size = dimensions or self.default_dimensions
        with self._lock:
            self.calls.append({"texts": list(texts), "model": model, "dimensions": size})
        return EmbeddingResponse(
            vectors=[self._vector(text, size) for text in texts],
            model=model or self.model_name,
            usage=TokenUsage(
                input_tokens=sum(_estimate_tokens(t, self.tokens_per_char) for t in texts)
            ),
        )

    @property
    def call_count(self) -> int:
        return len(self.calls)

    @staticmethod
    def _vector(text: str, size: int) -> list[float]:
        values: list[float] = []
        counter = 0
        while len(values) < size:
            digest = hashlib.sha256(f"{counter}:{text}".encode()).digest()
            values.extend(round(b / 127.5 - 1.0, 6) for b in digest)
            counter += 1
        return values[:size]


__all__ = ["MockEmbeddingProvider", "MockLLMProvider"]
