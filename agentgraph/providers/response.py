"""Response metadata from provider API calls."""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class ProviderResponse:
    """Immutable container for provider response with usage metadata.

    Wraps the text response along with token counts, model info,
    and latency from the API call.  ``reported_cost`` is set when the
    vendor returns its own cost figure (OpenRouter does).
    """

    text: str
    input_tokens: int = 0
    output_tokens: int = 0
    model: str = ""
    provider: str = ""
    latency_ms: float = 0.0
    finish_reason: Optional[str] = None
    reported_cost: Optional[float] = None

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens
