"""Provider-facing layer: response cache, provider adapters and feature routing.

The orchestrator only talks to this package through the names exported here.
"""

from __future__ import annotations

from .cache import ResponseCache, make_cache_key
from .providers import (
    AnthropicAdapter,
    GeminiAdapter,
    GrokAdapter,
    OpenAIAdapter,
    OpenAIImageAdapter,
    PerplexityAdapter,
    ProviderAdapter,
    create_adapter,
)
from .router import ChainConfig, FeatureRouter, get_router

__all__ = [
    "ResponseCache",
    "make_cache_key",
    "ProviderAdapter",
    "OpenAIAdapter",
    "GrokAdapter",
    "PerplexityAdapter",
    "AnthropicAdapter",
    "GeminiAdapter",
    "OpenAIImageAdapter",
    "create_adapter",
    "ChainConfig",
    "FeatureRouter",
    "get_router",
]
