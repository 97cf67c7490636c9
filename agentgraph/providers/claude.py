"""Anthropic Claude provider implementation."""

import time

import httpx

from ..pricing import MODEL_ALIASES
from .base import BaseProvider, LLMRequest, ProviderConfig
from .registry import register_provider
from .response import ProviderResponse

_JSON_INSTRUCTION = "Respond with a single JSON value and nothing else."

# OpenRouter spells versions with dots; the Messages API wants its own ids.
_API_MODEL_IDS = {
    "claude-3.5-sonnet": "claude-3-5-sonnet-latest",
    "claude-3-opus": "claude-3-opus-latest",
    "claude-3-sonnet": "claude-3-sonnet-20240229",
    "claude-3-haiku": "claude-3-haiku-20240307",
}


@register_provider("claude")
class ClaudeProvider(BaseProvider):
    """Anthropic Claude API provider (Messages API).

    The Messages API has no JSON response mode, so ``json_mode`` requests
    get an extra system instruction instead.
    """

    def __init__(self, config: ProviderConfig):
        super().__init__(config)
        self.base_url = config.base_url or "https://api.anthropic.com/v1"
        self.client = httpx.Client(timeout=config.timeout)

    def _headers(self) -> dict:
        return {
            "x-api-key": self.config.api_key,
            "anthropic-version": "2023-06-01",
            "content-type": "application/json",
        }

    def model_for(self, request: LLMRequest) -> str:
        model = super().model_for(request)
        model = MODEL_ALIASES.get(model, model)
        if model.startswith("anthropic/"):
            model = model[len("anthropic/"):]
        return _API_MODEL_IDS.get(model, model)

    def _system_for(self, request: LLMRequest):
        parts = [request.system] if request.system else []
        if request.messages:
            parts.extend(m["content"] for m in request.messages if m.get("role") == "system")
        if request.json_mode:
            parts.append(_JSON_INSTRUCTION)
        return "\n\n".join(parts) or None

    def complete(self, request: LLMRequest) -> ProviderResponse:
        """Get a complete response from Claude."""
        model = self.model_for(request)
        messages = [
            m for m in request.build_messages(include_system=False)
            if m.get("role") != "system"
        ]
        payload = {
            "model": model,
            "max_tokens": self.max_tokens_for(request) or 2048,
            "temperature": self.temperature_for(request),
            "messages": messages,
        }
        system = self._system_for(request)
        if system:
            payload["system"] = system

        started = time.monotonic()
        response = self.client.post(
            f"{self.base_url}/messages", json=payload, headers=self._headers(),
        )
        response.raise_for_status()
        data = response.json()
        latency_ms = (time.monotonic() - started) * 1000

        text_parts = [
            block.get("text", "")
            for block in data.get("content", [])
            if block.get("type") == "text"
        ]
        usage = data.get("usage", {})
        return ProviderResponse(
            text="".join(text_parts),
            input_tokens=usage.get("input_tokens", 0),
            output_tokens=usage.get("output_tokens", 0),
            model=data.get("model") or model,
            provider="claude",
            latency_ms=latency_ms,
            finish_reason=data.get("stop_reason"),
        )
