"""Shared OpenAI-compatible chat completion logic.

Used by both OpenAIProvider and OpenRouterProvider since they share
the same chat completions request and response format.
"""

import time
from typing import Optional

import httpx

from .response import ProviderResponse


def openai_chat_complete(
    client: httpx.Client,
    url: str,
    headers: dict,
    model: str,
    temperature: float,
    max_tokens: Optional[int],
    messages: list[dict],
    json_mode: bool = False,
    provider: str = "",
) -> ProviderResponse:
    """POST one chat completion and normalize the response.

    Args:
        client: httpx.Client instance.
        url: Chat completions endpoint URL.
        headers: Request headers with auth.
        model: Model identifier.
        temperature: Sampling temperature.
        max_tokens: Max response tokens.
        messages: Chat messages (system + user, or a full history).
        json_mode: Ask the endpoint for a JSON object response.
        provider: Provider name recorded on the response.

    Raises:
        httpx.HTTPStatusError: on a non-2xx response.
        httpx.TransportError: on network failures and timeouts.
    """
    payload = {
        "model": model,
        "messages": messages,
        "temperature": temperature,
    }
    if max_tokens:
        payload["max_tokens"] = max_tokens
    if json_mode:
        payload["response_format"] = {"type": "json_object"}

    started = time.monotonic()
    response = client.post(url, json=payload, headers=headers)
    response.raise_for_status()
    data = response.json()
    latency_ms = (time.monotonic() - started) * 1000

    choices = data.get("choices") or [{}]
    message = choices[0].get("message") or {}
    usage = data.get("usage") or {}

    return ProviderResponse(
        text=message.get("content") or "",
        input_tokens=usage.get("prompt_tokens", 0) or 0,
        output_tokens=usage.get("completion_tokens", 0) or 0,
        model=data.get("model") or model,
        provider=provider,
        latency_ms=latency_ms,
        finish_reason=choices[0].get("finish_reason"),
        reported_cost=usage.get("cost", usage.get("total_cost")),
    )
