"""Cost estimation from token usage and model pricing.

Model names are normalized before lookup: a ``provider/`` prefix and a
trailing release date (``-20250929`` or ``-2024-08-06``) are dropped,
so dated snapshots price like their base model. Unknown models have no
estimate; the run records cost as unavailable.
"""

from __future__ import annotations

import re
from dataclasses import dataclass


@dataclass(frozen=True)
class ModelPricing:
    """Pricing per million tokens for a single model."""

    input_per_million: float
    output_per_million: float


# USD per million tokens
PRICING_TABLE: dict[str, ModelPricing] = {
    "gpt-4o": ModelPricing(input_per_million=2.50, output_per_million=10.00),
    "gpt-4o-mini": ModelPricing(input_per_million=0.15, output_per_million=0.60),
    "gpt-4.1": ModelPricing(input_per_million=2.00, output_per_million=8.00),
    "gpt-4.1-mini": ModelPricing(input_per_million=0.40, output_per_million=1.60),
    "o3-mini": ModelPricing(input_per_million=1.10, output_per_million=4.40),
    "claude-sonnet-4-5": ModelPricing(input_per_million=3.00, output_per_million=15.00),
    "claude-haiku-4-5": ModelPricing(input_per_million=1.00, output_per_million=5.00),
    "claude-opus-4-1": ModelPricing(input_per_million=15.00, output_per_million=75.00),
}

_DATE_SUFFIX = re.compile(r"-(\d{8}|\d{4}-\d{2}-\d{2})$")


def normalize_model(model: str) -> str:
    """Strip a provider prefix and a release-date suffix from *model*."""
    name = model.strip().lower().rsplit("/", 1)[-1]
    return _DATE_SUFFIX.sub("", name)


def pricing_for(model: str) -> ModelPricing | None:
    return PRICING_TABLE.get(model) or PRICING_TABLE.get(normalize_model(model))


def estimate_cost(
    model: str,
    input_tokens: int,
    output_tokens: int,
) -> float | None:
    """Estimate the USD cost based on token usage.

    Returns:
        Estimated cost in USD rounded to 6 decimal places,
        or None if the model has no known pricing.
    """
    pricing = pricing_for(model)
    if pricing is None:
        return None

    cost = (
        (input_tokens / 1_000_000) * pricing.input_per_million
        + (output_tokens / 1_000_000) * pricing.output_per_million
    )
    return round(cost, 6)
