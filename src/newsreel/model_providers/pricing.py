"""Per-model pricing: token rates (USD per 1M tokens) and flat per-image rates."""

from __future__ import annotations

from typing import NamedTuple

from newsreel.core.protocols import TokenUsage


class ModelRate(NamedTuple):
    input_per_million: float
    output_per_million: float


MODEL_RATES: dict[str, ModelRate] = {
    "gemini-3-flash-preview": ModelRate(0.50, 3.00),
    "gemini-3-pro-preview": ModelRate(2.00, 12.00),
    "gemini-2.5-flash-preview-tts": ModelRate(0.50, 10.00),
}

IMAGE_RATES: dict[str, float] = {
    "gemini-3-pro-image-preview": 0.24,
    "gemini-2.5-flash-image": 0.039,
}


def calculate_cost(usage: TokenUsage, model: str) -> float:
    """Cost of one call. Unknown models are priced at zero."""
    rate = MODEL_RATES.get(model)
    if rate is None:
        return 0.0
    return (
        usage.input_tokens / 1_000_000 * rate.input_per_million
        + usage.output_tokens / 1_000_000 * rate.output_per_million
    )


def calculate_image_cost(model: str, images: int = 1) -> float:
    """Image models bill per generated image, not per token."""
    return IMAGE_RATES.get(model, 0.0) * images
