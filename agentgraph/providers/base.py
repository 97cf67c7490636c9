"""Base provider interface for all LLM vendors."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from .response import ProviderResponse


@dataclass
class ProviderConfig:
    """Configuration for a provider."""
    api_key: str
    model: str
    base_url: Optional[str] = None
    temperature: float = 0.7
    max_tokens: Optional[int] = None
    timeout: float = 60.0


@dataclass(frozen=True)
class LLMRequest:
    """A single chat-completion request.

    Either ``prompt`` (with an optional ``system``) or a full ``messages``
    list is used.  ``model`` and ``temperature`` fall back to the
    provider's configuration when left unset.
    """

    prompt: str = ""
    system: Optional[str] = None
    messages: Optional[tuple[dict, ...]] = None
    model: Optional[str] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    json_mode: bool = False
    trace_id: Optional[str] = None
    operation: str = "query"

    def build_messages(self, include_system: bool = True) -> list[dict]:
        """Return the chat message list for this request."""
        if self.messages:
            return [dict(m) for m in self.messages]
        messages = []
        if include_system and self.system:
            messages.append({"role": "system", "content": self.system})
        messages.append({"role": "user", "content": self.prompt})
        return messages


class BaseProvider(ABC):
    """Abstract base class for all LLM providers.

    Providers only speak HTTP: errors from the transport (``httpx``
    exceptions, non-2xx responses) propagate to the caller, which is
    responsible for classifying them.
    """

    def __init__(self, config: ProviderConfig):
        self.config = config
        self.name = self.__class__.__name__

    @abstractmethod
    def complete(self, request: LLMRequest) -> ProviderResponse:
        """Send one request and return the complete response."""
        pass

    def model_for(self, request: LLMRequest) -> str:
        return request.model or self.config.model

    def temperature_for(self, request: LLMRequest) -> float:
        if request.temperature is not None:
            return request.temperature
        return self.config.temperature

    def max_tokens_for(self, request: LLMRequest) -> Optional[int]:
        return request.max_tokens or self.config.max_tokens

    def validate(self) -> bool:
        """Validate provider configuration."""
        return bool(self.config.api_key and self.config.model)

    def close(self) -> None:
        """Release any underlying HTTP resources."""
        client = getattr(self, "client", None)
        if client is not None:
            client.close()
