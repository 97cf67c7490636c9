"""OpenRouter provider for multi-model access (Claude, GPT, Llama, etc)."""

import httpx

from ..pricing import resolve_model
from .base import BaseProvider, LLMRequest, ProviderConfig
from .registry import register_provider
from .response import ProviderResponse
from ._openai_chat import openai_chat_complete


@register_provider("openrouter")
class OpenRouterProvider(BaseProvider):
    """Provider for OpenRouter API - OpenAI-compatible endpoint.

    Friendly model aliases (``claude-sonnet``, ``gpt-4o``) are resolved to
    OpenRouter ``vendor/model`` ids before the call.
    """

    def __init__(self, config: ProviderConfig):
        super().__init__(config)
        self.base_url = config.base_url or "https://openrouter.ai/api/v1"
        self.client = httpx.Client(timeout=config.timeout)

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.config.api_key}",
            "Content-Type": "application/json",
            "HTTP-Referer": "https://github.com/agentgraph",
            "X-Title": "agentgraph",
        }

    def model_for(self, request: LLMRequest) -> str:
        return resolve_model(super().model_for(request))

    def complete(self, request: LLMRequest) -> ProviderResponse:
        """Get a complete response from OpenRouter."""
        return openai_chat_complete(
            client=self.client,
            url=f"{self.base_url}/chat/completions",
            headers=self._headers(),
            model=self.model_for(request),
            temperature=self.temperature_for(request),
            max_tokens=self.max_tokens_for(request),
            messages=request.build_messages(),
            json_mode=request.json_mode,
            provider="openrouter",
        )
