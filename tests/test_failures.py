"""Tests for LLM failure classification."""

import httpx
import pytest

from agentgraph.errors import (
    AgentTimeout,
    AuthenticationFailed,
    FailureClass,
    PermanentAgentError,
    RateLimited,
    TransientAgentError,
    UpstreamUnavailable,
)
from agentgraph.llm.failures import classify_failure

URL = "https://api.example.test/v1/chat/completions"


def _status_error(status, body="", headers=None):
    request = httpx.Request("POST", URL)
    response = httpx.Response(status, text=body, headers=headers or {}, request=request)
    return httpx.HTTPStatusError(f"HTTP {status}", request=request, response=response)


class TestHttpStatus:
    def test_429_rate_limited_with_retry_after(self):
        err = classify_failure(_status_error(429, "slow down", {"Retry-After": "12"}), "openrouter")
        assert isinstance(err, RateLimited)
        assert err.retry_after == 12.0
        assert err.status_code == 429
        assert err.failure_class is FailureClass.RATE_LIMIT
        assert err.retryable

    def test_429_bad_retry_after_ignored(self):
        err = classify_failure(_status_error(429, headers={"Retry-After": "soon"}))
        assert isinstance(err, RateLimited)
        assert err.retry_after is None

    @pytest.mark.parametrize("status", [408, 500, 502, 503, 504])
    def test_transient_statuses(self, status):
        err = classify_failure(_status_error(status, "upstream"))
        assert isinstance(err, UpstreamUnavailable)
        assert err.status_code == status

    @pytest.mark.parametrize("status", [401, 403])
    def test_auth_statuses(self, status):
        err = classify_failure(_status_error(status, "nope"))
        assert isinstance(err, AuthenticationFailed)
        assert err.failure_class is FailureClass.ACCESS_OR_AUTH
        assert not err.retryable

    def test_400_is_permanent(self):
        err = classify_failure(_status_error(400, "bad request"))
        assert isinstance(err, PermanentAgentError)
        assert not isinstance(err, TransientAgentError)
        assert err.failure_class is FailureClass.AGENT_ERROR

    def test_402_billing(self):
        err = classify_failure(_status_error(402, "payment required"))
        assert err.failure_class is FailureClass.BILLING_OR_QUOTA

    def test_404_unknown_model(self):
        err = classify_failure(_status_error(404, '{"error": "model not found"}'))
        assert err.failure_class is FailureClass.MODEL_NOT_AVAILABLE

    def test_message_includes_provider_and_body(self):
        err = classify_failure(_status_error(500, "overloaded"), "claude")
        assert "claude" in str(err)
        assert "500" in str(err)
        assert "overloaded" in str(err)


class TestTransport:
    def test_timeout(self):
        err = classify_failure(httpx.ReadTimeout("read timed out"))
        assert isinstance(err, AgentTimeout)
        assert err.failure_class is FailureClass.TIMEOUT

    def test_connect_error(self):
        err = classify_failure(httpx.ConnectError("connection refused"))
        assert isinstance(err, UpstreamUnavailable)


class TestTextPatterns:
    @pytest.mark.parametrize("text, expected", [
        ("You exceeded your current quota", FailureClass.BILLING_OR_QUOTA),
        ("Invalid API key provided", FailureClass.ACCESS_OR_AUTH),
        ("Unknown model: gpt-99", FailureClass.MODEL_NOT_AVAILABLE),
        ("Too many requests, please slow down", FailureClass.RATE_LIMIT),
        ("Service temporarily unavailable", FailureClass.UPSTREAM_TRANSIENT),
        ("Something odd happened", FailureClass.AGENT_ERROR),
    ])
    def test_classification(self, text, expected):
        assert classify_failure(RuntimeError(text)).failure_class is expected

    def test_transient_text_is_retryable(self):
        assert classify_failure(RuntimeError("connection reset by peer")).retryable
        assert not classify_failure(RuntimeError("weird")).retryable


def test_already_classified_passes_through():
    original = RateLimited("x")
    assert classify_failure(original) is original
