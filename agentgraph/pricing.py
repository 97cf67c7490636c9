"""Model aliases, token estimates and per-call cost.

Prices are USD per million tokens.
"""

import logging
from typing import Optional

_log = logging.getLogger(__name__)

MODEL_ALIASES: dict[str, str] = {
    # OpenAI
    "gpt-4o": "openai/gpt-4o",
    "gpt-4o-mini": "openai/gpt-4o-mini",
    "gpt-4-turbo": "openai/gpt-4-turbo",
    "gpt-3.5-turbo": "openai/gpt-3.5-turbo",
    # Anthropic
    "claude-sonnet": "anthropic/claude-3.5-sonnet",
    "claude-3.5-sonnet": "anthropic/claude-3.5-sonnet",
    "claude-opus": "anthropic/claude-3-opus",
    "claude-haiku": "anthropic/claude-3-haiku",
    # Google
    "gemini-flash": "google/gemini-2.0-flash-exp",
    "gemini-pro": "google/gemini-pro",
    "gemini-1.5-pro": "google/gemini-1.5-pro",
    # Meta
    "llama-70b": "meta-llama/llama-3.1-70b-instruct",
    "llama-8b": "meta-llama/llama-3.1-8b-instruct",
    # Mistral
    "mistral-large": "mistralai/mistral-large",
    "mixtral": "mistralai/mixtral-8x7b-instruct",
}

MODEL_PRICING: dict[str, tuple[float, float]] = {
    "openai/gpt-4o": (2.50, 10.00),
    "openai/gpt-4o-mini": (0.15, 0.60),
    "openai/gpt-4-turbo": (10.00, 30.00),
    "openai/gpt-3.5-turbo": (0.50, 1.50),
    "anthropic/claude-3.5-sonnet": (3.00, 15.00),
    "anthropic/claude-3-opus": (15.00, 75.00),
    "anthropic/claude-3-sonnet": (3.00, 15.00),
    "anthropic/claude-3-haiku": (0.25, 1.25),
    "google/gemini-2.0-flash-exp": (0.00, 0.00),
    "google/gemini-pro": (0.125, 0.375),
    "google/gemini-1.5-pro": (1.25, 5.00),
    "meta-llama/llama-3.1-70b-instruct": (0.52, 0.75),
    "meta-llama/llama-3.1-8b-instruct": (0.06, 0.06),
    "mistralai/mistral-large": (2.00, 6.00),
    "mistralai/mistral-medium": (2.70, 8.10),
    "mistralai/mixtral-8x7b-instruct": (0.24, 0.24),
}

# GPT-4o rates: conservative for anything we don't recognise.
DEFAULT_PRICING: tuple[float, float] = (2.50, 10.00)

CHARS_PER_TOKEN = 4


def resolve_model(model: str) -> str:
    """Map a friendly alias to a ``vendor/model`` id.

    Ids that already contain a vendor prefix pass through; bare names are
    assumed to be OpenAI models.
    """
    if model in MODEL_ALIASES:
        return MODEL_ALIASES[model]
    if "/" in model:
        return model
    return f"openai/{model}"


def estimate_tokens(text: Optional[str]) -> int:
    """Rough token count (~4 characters per token)."""
    if not text:
        return 0
    return -(-len(text) // CHARS_PER_TOKEN)


def get_pricing(model: str) -> tuple[float, float]:
    """Return (input, output) price per million tokens for ``model``."""
    model_id = resolve_model(model)
    if model_id in MODEL_PRICING:
        return MODEL_PRICING[model_id]
    for key, pricing in MODEL_PRICING.items():
        if key.split("/", 1)[1] in model_id:
            return pricing
    _log.warning("unknown model pricing for %s, using default", model_id)
    return DEFAULT_PRICING


def calculate_cost(model: str, input_tokens: int, output_tokens: int) -> float:
    input_price, output_price = get_pricing(model)
    return (input_tokens / 1_000_000) * input_price + (output_tokens / 1_000_000) * output_price
