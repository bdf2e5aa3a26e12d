"""LLM Provider Protocol — unified interface for model backends.

Manifesto:
Capabilities that call a language model or an embedding model need a
backend-agnostic interface. This module defines the ``LLMProvider`` and
``EmbeddingProvider`` protocols plus their message and response types, so
any backend (OpenAI, Bedrock, Ollama, mock) can be swapped transparently.
Retries, model selection and transport stay inside the provider.

ARCHITECTURE
────────────
::

    LLMProvider (Protocol)
      ├── .complete(messages, model, **kwargs) → LLMResponse
      └── .models() → list[str]

    EmbeddingProvider (Protocol)
      └── .embed(texts, model, dimensions) → EmbeddingResponse

    Message(role, content)        — chat message
    Role                          — system | user | assistant
    LLMResponse(content, model, usage, metadata, finish_reason)
    EmbeddingResponse(vectors, model, usage)

Usage is reported as :class:`weft.orchestration.outcome.TokenUsage` so it
flows straight into Outcomes.

Example::

    class BedrockProvider:
        def complete(self, messages, model="anthropic.claude-v2", **kw):
            # call Bedrock API
            return LLMResponse(content="...", model=model, usage=...)

        def models(self):
            return ["anthropic.claude-v2", "amazon.titan-text"]

Tags:
    weft, orchestration, llm, protocol, provider-interface, messages
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from weft.orchestration.outcome import TokenUsage


class Role(str, Enum):
    """Message role in a conversation."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class Message:
    """A single message in a conversation.

    Attributes:
        role: Who sent the message (system, user, assistant).
        content: The message text.
    """

    role: Role
    content: str

    @classmethod
    def system(cls, content: str) -> Message:
        return cls(role=Role.SYSTEM, content=content)

    @classmethod
    def user(cls, content: str) -> Message:
        return cls(role=Role.USER, content=content)

    @classmethod
    def assistant(cls, content: str) -> Message:
        return cls(role=Role.ASSISTANT, content=content)

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role.value, "content": self.content}


@dataclass(frozen=True)
class LLMResponse:
    """Response from an LLM provider.

    Attributes:
        content: Generated text.
        model: Model identifier used.
        usage: Token usage statistics.
        metadata: Provider-specific metadata.
        finish_reason: Why generation stopped.
    """

    content: str
    model: str
    usage: TokenUsage = field(default_factory=TokenUsage)
    metadata: dict[str, Any] = field(default_factory=dict)
    finish_reason: str = "stop"

    def to_dict(self) -> dict[str, Any]:
        """Serialize the response."""
        return {
            "content": self.content,
            "model": self.model,
            "usage": self.usage.to_dict(),
            "finish_reason": self.finish_reason,
            "metadata": self.metadata,
        }


@dataclass(frozen=True)
class EmbeddingResponse:
    """Response from an embedding provider.

    Attributes:
        vectors: One vector per input text, in input order.
        model: Model identifier used.
        usage: Token usage (embeddings only consume input tokens).
    """

    vectors: list[list[float]]
    model: str
    usage: TokenUsage = field(default_factory=TokenUsage)

    @property
    def dimensions(self) -> int:
        return len(self.vectors[0]) if self.vectors else 0


@runtime_checkable
class LLMProvider(Protocol):
    """Protocol for chat/completion backends.

    Implementors
    ------------
    * ``MockLLMProvider``  — for testing
    * User-defined backends (OpenAI, Bedrock, Ollama, etc.)
    """

    def complete(
        self,
        messages: list[Message],
        model: str | None = None,
        *,
        temperature: float = 0.7,
        max_tokens: int = 1024,
        **kwargs: Any,
    ) -> LLMResponse:
        """Generate a completion from messages.

        Parameters
        ----------
        messages
            Conversation history.
        model
            Model identifier (provider-specific).
        temperature
            Sampling temperature.
        max_tokens
            Maximum tokens to generate.
        **kwargs
            Provider-specific parameters.
        """
        ...

    def models(self) -> list[str]:
        """List available model identifiers."""
        ...


@runtime_checkable
class EmbeddingProvider(Protocol):
    """Protocol for embedding backends."""

    def embed(
        self,
        texts: list[str],
        model: str | None = None,
        *,
        dimensions: int | None = None,
    ) -> EmbeddingResponse:
        """Embed ``texts``; ``dimensions`` requests reduced vectors if supported."""
        ...


__all__ = [
    "EmbeddingProvider",
    "EmbeddingResponse",
    "LLMProvider",
    "LLMResponse",
    "Message",
    "Role",
]
