"""Model pricing tables and token cost calculation."""
import math
from typing import Dict, Optional

from pydantic import BaseModel, Field

from utils.logging_utils import get_logger

logger = get_logger()

TOKENS_PER_MILLION = 1_000_000


class ModelPricing(BaseModel):
    """USD per million tokens for one model."""
    input_price_per_million: float = Field(ge=0)
    output_price_per_million: float = Field(ge=0)
    cached_input_price_per_million: Optional[float] = Field(default=None, ge=0)


ProviderPricing = Dict[str, ModelPricing]


class PricingConfig(BaseModel):
    """Per-provider pricing overrides, keyed by provider then model."""
    provider_pricing: Dict[str, ProviderPricing] = Field(default_factory=dict)


def _p(input_price: float, output_price: float, cached: Optional[float] = None) -> ModelPricing:
    return ModelPricing(
        input_price_per_million=input_price,
        output_price_per_million=output_price,
        cached_input_price_per_million=cached
    )


# Approximate list prices, USD per 1M tokens (input / output / cached input)
DEFAULT_PRICING: Dict[str, ProviderPricing] = {
    "openai": {
        "gpt-4o": _p(2.50, 10.00),
        "gpt-4o-mini": _p(0.15, 0.60),
        "gpt-4-turbo": _p(10.00, 30.00),
        "gpt-4": _p(30.00, 60.00),
        "gpt-3.5-turbo": _p(0.50, 1.50),
        "o1": _p(15.00, 60.00),
        "o1-mini": _p(3.00, 12.00),
        "o3": _p(20.00, 80.00),
        "o3-mini": _p(4.00, 16.00),
    },
    "google": {
        "gemini-2.5-flash": _p(0.15, 0.60, 0.0375),
        "gemini-2.5-flash-lite": _p(0.075, 0.30, 0.01875),
        "gemini-2.5-pro": _p(1.25, 10.00, 0.3125),
        "gemini-2.0-flash": _p(0.10, 0.40, 0.025),
        "gemini-1.5-pro": _p(1.25, 5.00, 0.3125),
        "gemini-1.5-flash": _p(0.075, 0.30, 0.01875),
    },
    "anthropic": {
        "claude-3-5-sonnet-20241022": _p(3.00, 15.00, 0.30),
        "claude-3-5-haiku-20241022": _p(0.80, 4.00, 0.08),
        "claude-3-opus-20240229": _p(15.00, 75.00, 1.50),
        "claude-sonnet-4-20250514": _p(3.00, 15.00, 0.30),
    },
}

# Conservative default for unknown models
FALLBACK_PRICING = _p(1.00, 3.00)

# Provider aliases accepted in component metadata
PROVIDER_ALIASES = {
    "gemini": "google",
    "google": "google",
    "openai": "openai",
    "anthropic": "anthropic",
}


def detect_provider(model: Optional[str], default: str = "google") -> str:
    """Guess the provider from a model name."""
    if not model:
        return default
    if model.startswith(("gpt-", "o1", "o3")):
        return "openai"
    if model.startswith("gemini-"):
        return "google"
    if model.startswith("claude-"):
        return "anthropic"
    return default


def normalize_provider(provider: Optional[str], default: str = "google") -> str:
    if not provider:
        return default
    return PROVIDER_ALIASES.get(provider, provider)


def get_model_pricing(
    model: str,
    provider: str,
    provider_pricing: Optional[ProviderPricing] = None
) -> ModelPricing:
    """
    Resolve pricing for a model.

    Resolution order: explicit override, built-in table, fallback.
    """
    if provider_pricing and model in provider_pricing:
        return provider_pricing[model]

    defaults = DEFAULT_PRICING.get(provider, {})
    if model in defaults:
        return defaults[model]

    logger.debug("Unknown model pricing, using fallback", model=model, provider=provider)
    return FALLBACK_PRICING


def calculate_cost(
    input_tokens: int,
    output_tokens: int,
    model: str,
    provider: str,
    cached_input_tokens: int = 0,
    provider_pricing: Optional[ProviderPricing] = None
) -> float:
    """
    Calculate the USD cost of a model call.

    Raises:
        ValueError: token counts negative, non-finite, or more cached than input tokens
    """
    counts = (input_tokens, output_tokens, cached_input_tokens)
    if any(not math.isfinite(c) for c in counts):
        raise ValueError("Token counts must be finite numbers")
    if any(c < 0 for c in counts):
        raise ValueError("Token counts must be non-negative")
    if cached_input_tokens > input_tokens:
        raise ValueError("cached_input_tokens cannot exceed input_tokens")

    pricing = get_model_pricing(model, provider, provider_pricing)

    non_cached = input_tokens - cached_input_tokens
    cached_price = pricing.cached_input_price_per_million
    if cached_price is None:
        cached_price = pricing.input_price_per_million

    input_cost = non_cached / TOKENS_PER_MILLION * pricing.input_price_per_million
    output_cost = output_tokens / TOKENS_PER_MILLION * pricing.output_price_per_million
    cached_cost = cached_input_tokens / TOKENS_PER_MILLION * cached_price
    return input_cost + output_cost + cached_cost
