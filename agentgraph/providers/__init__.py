"""Provider system for multi-model support."""

from .base import BaseProvider, LLMRequest, ProviderConfig
from .response import ProviderResponse
from .openrouter import OpenRouterProvider
from .openai_provider import OpenAIProvider
from .claude import ClaudeProvider

__all__ = [
    "BaseProvider",
    "LLMRequest",
    "ProviderConfig",
    "ProviderResponse",
    "OpenRouterProvider",
    "OpenAIProvider",
    "ClaudeProvider",
]
