"""Deterministic classification of LLM transport failures.

HTTP status codes decide first; the error text is pattern-matched only
when no status is available (network errors, SDK-style exceptions).
"""

from typing import Optional

import httpx

from ..errors import (
    AgentError,
    AgentTimeout,
    AuthenticationFailed,
    FailureClass,
    PermanentAgentError,
    RateLimited,
    UpstreamUnavailable,
)

_BILLING_OR_QUOTA_PATTERNS: tuple[str, ...] = (
    "quota",
    "resource_exhausted",
    "insufficient",
    "billing",
    "payment",
    "credits",
)
_ACCESS_OR_AUTH_PATTERNS: tuple[str, ...] = (
    "unauthorized",
    "forbidden",
    "permission denied",
    "invalid api key",
    "authentication",
)
_MODEL_NOT_AVAILABLE_PATTERNS: tuple[str, ...] = (
    "model not found",
    "unknown model",
    "unsupported model",
    "invalid model",
    "model is not available",
)
_RATE_LIMIT_PATTERNS: tuple[str, ...] = (
    "too many requests",
    "rate limit",
    "please retry",
    "try again later",
)
_GENERIC_TRANSIENT_PATTERNS: tuple[str, ...] = (
    "timed out",
    "timeout",
    "temporarily unavailable",
    "temporary failure",
    "connection reset",
    "connection refused",
    "network error",
    "could not resolve host",
)


def classify_failure(error: BaseException, provider: str = "llm") -> AgentError:
    """Map any exception raised by a provider call onto the agent taxonomy.

    Already-classified ``AgentError`` instances are returned untouched.
    """
    if isinstance(error, AgentError):
        return error
    if isinstance(error, httpx.HTTPStatusError):
        return _classify_status(error.response, provider)
    if isinstance(error, httpx.TimeoutException):
        return AgentTimeout(f"{provider} request timed out: {error}")
    if isinstance(error, httpx.TransportError):
        return UpstreamUnavailable(f"{provider} network error: {error}")
    return _classify_text(str(error), provider)


def _classify_status(response: httpx.Response, provider: str) -> AgentError:
    status = response.status_code
    body = _safe_text(response)
    message = f"{provider} returned HTTP {status}: {body[:300]}".rstrip(": ")

    if status == 429:
        return RateLimited(message, retry_after=_retry_after(response), status_code=status)
    if status == 408 or status >= 500:
        return UpstreamUnavailable(message, status_code=status)
    if status in (401, 403):
        return AuthenticationFailed(message, status_code=status)

    lowered = body.lower()
    if _first_match(lowered, _BILLING_OR_QUOTA_PATTERNS) or status == 402:
        return PermanentAgentError(message, FailureClass.BILLING_OR_QUOTA, status)
    if _first_match(lowered, _MODEL_NOT_AVAILABLE_PATTERNS):
        return PermanentAgentError(message, FailureClass.MODEL_NOT_AVAILABLE, status)
    return PermanentAgentError(message, status_code=status)


def _classify_text(text: str, provider: str) -> AgentError:
    lowered = text.lower()
    message = f"{provider} error: {text}"
    if _first_match(lowered, _BILLING_OR_QUOTA_PATTERNS):
        return PermanentAgentError(message, FailureClass.BILLING_OR_QUOTA)
    if _first_match(lowered, _ACCESS_OR_AUTH_PATTERNS):
        return AuthenticationFailed(message)
    if _first_match(lowered, _MODEL_NOT_AVAILABLE_PATTERNS):
        return PermanentAgentError(message, FailureClass.MODEL_NOT_AVAILABLE)
    if _first_match(lowered, _RATE_LIMIT_PATTERNS):
        return RateLimited(message, status_code=None)
    if _first_match(lowered, _GENERIC_TRANSIENT_PATTERNS):
        return UpstreamUnavailable(message)
    return PermanentAgentError(message)


def _retry_after(response: httpx.Response) -> Optional[float]:
    value = response.headers.get("retry-after")
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


def _safe_text(response: httpx.Response) -> str:
    try:
        return response.text or ""
    except Exception:
        return ""


def _first_match(haystack: str, patterns: tuple[str, ...]) -> Optional[str]:
    for pattern in patterns:
        if pattern in haystack:
            return pattern
    return None
