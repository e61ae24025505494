"""
Generation Adapters - Unified interface for multiple AI providers
"""

from typing import Optional

import httpx

from .base import (
    BaseGenerationAdapter,
    GenerationContext,
    GenerationRequest,
    GenerationResult,
    GenerationSettings,
    GenerationType,
    GenerationUsage,
    PreviousContent,
    ProviderConfig,
    StyleGuideContext,
    build_prompt_with_context,
    split_usage,
)
from .openai_adapter import OpenAIAdapter
from .anthropic_adapter import AnthropicAdapter
from .google_adapter import GoogleAdapter
from .perplexity_adapter import PerplexityAdapter

ADAPTERS = {
    "openai": OpenAIAdapter,
    "anthropic": AnthropicAdapter,
    "google": GoogleAdapter,
    "perplexity": PerplexityAdapter,
}


def get_adapter(
    config: ProviderConfig,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> BaseGenerationAdapter:
    """
    Factory function to get the appropriate generation adapter.

    Args:
        config: Provider configuration resolved by the selector
        transport: Optional httpx transport (tests inject a MockTransport)

    Returns:
        Adapter instance bound to this request's configuration

    Raises:
        ValueError: If provider is not supported
    """
    if config.provider not in ADAPTERS:
        raise ValueError(f"Unsupported provider: {config.provider}. Must be one of {list(ADAPTERS.keys())}")

    return ADAPTERS[config.provider](config, transport=transport)


__all__ = [
    # Factory
    "get_adapter",
    "ADAPTERS",
    # Base classes
    "BaseGenerationAdapter",
    "GenerationContext",
    "GenerationRequest",
    "GenerationResult",
    "GenerationSettings",
    "GenerationType",
    "GenerationUsage",
    "PreviousContent",
    "ProviderConfig",
    "StyleGuideContext",
    "build_prompt_with_context",
    "split_usage",
    # Adapters
    "OpenAIAdapter",
    "AnthropicAdapter",
    "GoogleAdapter",
    "PerplexityAdapter",
]
