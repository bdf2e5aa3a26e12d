"""Model pricing — turn token usage into money.

Prices are per million tokens, held as ``Decimal`` so that summing many
tiny invocation costs never drifts.

Example::

    pricing = ModelPricing(input_per_million="0.15", output_per_million="0.60")
    pricing.cost(TokenUsage(input_tokens=1200, output_tokens=300))
    # Decimal('0.00036')
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from weft.orchestration.outcome import ZERO, TokenUsage, to_decimal

_MILLION = Decimal(1_000_000)


@dataclass(frozen=True)
class ModelPricing:
    """Per-million-token prices for one model."""

    input_per_million: Decimal = ZERO
    output_per_million: Decimal = ZERO

    def __post_init__(self):
        for attr in ("input_per_million", "output_per_million"):
            value = to_decimal(getattr(self, attr))
            if value < 0:
                raise ValueError(f"{attr} must be >= 0, got {value}")
            object.__setattr__(self, attr, value)

    def cost(self, usage: TokenUsage) -> Decimal:
        return (
            Decimal(usage.input_tokens) * self.input_per_million
            + Decimal(usage.output_tokens) * self.output_per_million
        ) / _MILLION

    @classmethod
    def free(cls) -> ModelPricing:
        return cls()

    def to_dict(self) -> dict[str, Any]:
        return {
            "input_per_million": str(self.input_per_million),
            "output_per_million": str(self.output_per_million),
        }


__all__ = ["ModelPricing"]
