"""LLM client: one provider call with retry, classification and cost."""

import logging
import random
import time
from dataclasses import dataclass, replace
from typing import Any, Callable, Optional

from ..pricing import calculate_cost, estimate_tokens
from ..providers.base import BaseProvider, LLMRequest
from ..retry import RetryPolicy, with_retry
from ..usage import TokenUsage
from .failures import classify_failure
from .parsing import extract_json

_log = logging.getLogger(__name__)


@dataclass(frozen=True)
class LLMResult:
    """Normalized result of one LLM call."""

    content: str
    model: str
    tokens: TokenUsage
    cost_usd: float
    latency_ms: float = 0.0
    finish_reason: Optional[str] = None
    provider: str = ""


class LLMClient:
    """Wraps a provider with failure classification, retries and costing.

    ``query`` performs exactly one call.  ``query_with_retry`` retries only
    classified-transient failures (rate limits, 408/5xx, timeouts,
    connection errors) and raises ``ExhaustedRetries`` past the cap.
    """

    def __init__(
        self,
        provider: BaseProvider,
        retry_policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], None] = time.sleep,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.provider = provider
        self.retry_policy = retry_policy or RetryPolicy()
        self._sleep = sleep
        self._rng = rng

    @property
    def provider_name(self) -> str:
        return self.provider.name

    def query(self, request: LLMRequest) -> LLMResult:
        """Single call; provider errors are re-raised as typed agent errors."""
        _log.debug(
            "llm request provider=%s model=%s trace=%s",
            self.provider_name, request.model, request.trace_id,
        )
        try:
            response = self.provider.complete(request)
        except Exception as exc:
            raise classify_failure(exc, self.provider_name) from exc

        input_tokens = response.input_tokens or estimate_tokens(
            "".join(str(m.get("content", "")) for m in request.build_messages())
        )
        output_tokens = response.output_tokens or estimate_tokens(response.text)
        model = response.model or request.model or self.provider.config.model
        if response.reported_cost is not None:
            cost = float(response.reported_cost)
        else:
            cost = calculate_cost(model, input_tokens, output_tokens)

        _log.debug(
            "llm response model=%s tokens=%d/%d cost=%.6f latency=%.0fms trace=%s",
            model, input_tokens, output_tokens, cost, response.latency_ms, request.trace_id,
        )
        return LLMResult(
            content=response.text,
            model=model,
            tokens=TokenUsage(input_tokens, output_tokens),
            cost_usd=cost,
            latency_ms=response.latency_ms,
            finish_reason=response.finish_reason,
            provider=response.provider or self.provider_name,
        )

    def query_with_retry(self, request: LLMRequest) -> LLMResult:
        """``query`` under the client's retry policy."""
        def _on_retry(attempt: int, error: BaseException, delay: float) -> None:
            _log.info(
                "%s attempt %d failed (%s); retrying in %.2fs",
                request.operation, attempt, error, delay,
            )

        return with_retry(
            self.retry_policy,
            lambda: self.query(request),
            sleep=self._sleep,
            on_retry=_on_retry,
            rng=self._rng,
        )

    def query_json(self, request: LLMRequest) -> tuple[Any, LLMResult]:
        """Query in JSON mode and return ``(parsed, result)``.

        Raises ``ParseError`` when the response holds no valid JSON.
        """
        if not request.json_mode:
            request = replace(request, json_mode=True)
        result = self.query_with_retry(request)
        return extract_json(result.content), result
