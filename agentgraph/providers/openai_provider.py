"""OpenAI provider for GPT-4o and friends."""

import httpx

from .base import BaseProvider, LLMRequest, ProviderConfig
from .registry import register_provider
from .response import ProviderResponse
from ._openai_chat import openai_chat_complete


@register_provider("openai")
class OpenAIProvider(BaseProvider):
    """OpenAI API provider - supports custom base_url for Azure/proxies."""

    def __init__(self, config: ProviderConfig):
        super().__init__(config)
        self.base_url = config.base_url or "https://api.openai.com/v1"
        self.client = httpx.Client(timeout=config.timeout)

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.config.api_key}",
            "Content-Type": "application/json",
        }

    def model_for(self, request: LLMRequest) -> str:
        # Accept OpenRouter-style "openai/gpt-4o" ids as well.
        model = super().model_for(request)
        if model.startswith("openai/"):
            return model[len("openai/"):]
        return model

    def complete(self, request: LLMRequest) -> ProviderResponse:
        """Get a complete response from OpenAI."""
        return openai_chat_complete(
            client=self.client,
            url=f"{self.base_url}/chat/completions",
            headers=self._headers(),
            model=self.model_for(request),
            temperature=self.temperature_for(request),
            max_tokens=self.max_tokens_for(request),
            messages=request.build_messages(),
            json_mode=request.json_mode,
            provider="openai",
        )
