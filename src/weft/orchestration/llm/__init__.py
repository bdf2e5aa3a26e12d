"""Weft LLM — provider protocols and capability adapters.

Defines the ``LLMProvider`` / ``EmbeddingProvider`` protocols, pricing,
the capabilities that wrap providers for workflows, and mock providers
for testing.

Manifesto:
    LLM providers differ wildly in API shape and billing. The LLM
    subpackage defines one protocol per kind of model so workflows can
    call any backend through the same Capability interface, with costs
    priced in ``Decimal`` and mocks for safe development.

Tags:
    weft, orchestration, llm, provider-protocol, embeddings, mock
"""

from weft.orchestration.llm.capability import (
    EmbedderCapability,
    LLMCapability,
    LLMClassifier,
    extract_text,
)
from weft.orchestration.llm.mock import MockEmbeddingProvider, MockLLMProvider
from weft.orchestration.llm.pricing import ModelPricing
from weft.orchestration.llm.protocol import (
    EmbeddingProvider,
    EmbeddingResponse,
    LLMProvider,
    LLMResponse,
    Message,
    Role,
)

__all__ = [
    # Protocol
    "EmbeddingProvider",
    "EmbeddingResponse",
    "LLMProvider",
    "LLMResponse",
    "Message",
    "Role",
    # Pricing
    "ModelPricing",
    # Capabilities
    "EmbedderCapability",
    "LLMCapability",
    "LLMClassifier",
    "extract_text",
    # Mock
    "MockEmbeddingProvider",
    "MockLLMProvider",
]
