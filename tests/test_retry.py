"""Tests for RetryPolicy and with_retry."""

import random

import pytest

from agentgraph.errors import (
    AuthenticationFailed,
    ExhaustedRetries,
    PermanentAgentError,
    RateLimited,
    UpstreamUnavailable,
)
from agentgraph.retry import NO_RETRY, RetryPolicy, is_transient, with_retry


class Flaky:
    """Raises the queued errors in order, then returns ``value``."""

    def __init__(self, errors, value="ok"):
        self.errors = list(errors)
        self.value = value
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.value


class TestRetryPolicy:
    def test_defaults(self):
        policy = RetryPolicy()
        assert policy.max_attempts == 3
        assert policy.base_delay == 1.0
        assert policy.max_delay == 30.0

    def test_frozen(self):
        with pytest.raises(AttributeError):
            RetryPolicy().max_attempts = 5

    @pytest.mark.parametrize("kwargs", [
        {"max_attempts": 0},
        {"base_delay": -1},
        {"jitter": 1.0},
        {"jitter": -0.1},
    ])
    def test_rejects_invalid(self, kwargs):
        with pytest.raises(ValueError):
            RetryPolicy(**kwargs)

    def test_delay_doubles_without_jitter(self):
        policy = RetryPolicy(base_delay=0.5, max_delay=100, jitter=0)
        assert [policy.delay_for(n) for n in (1, 2, 3, 4)] == [0.5, 1.0, 2.0, 4.0]

    def test_delay_capped(self):
        policy = RetryPolicy(base_delay=10, max_delay=15, jitter=0)
        assert policy.delay_for(1) == 10
        assert policy.delay_for(2) == 15
        assert policy.delay_for(5) == 15

    def test_jittered_delays_strictly_increase_below_cap(self):
        policy = RetryPolicy(base_delay=1, max_delay=1000, jitter=0.9)
        rng = random.Random(7)
        for _ in range(50):
            delays = [policy.delay_for(n, rng) for n in range(1, 6)]
            assert all(a < b for a, b in zip(delays, delays[1:]))

    def test_from_dict_fills_defaults(self):
        policy = RetryPolicy.from_dict({"max_attempts": "5", "base_delay": 0.2})
        assert policy.max_attempts == 5
        assert policy.base_delay == 0.2
        assert policy.max_delay == 30.0


class TestWithRetry:
    def test_returns_first_success(self, sleep):
        op = Flaky([])
        assert with_retry(RetryPolicy(), op, sleep=sleep) == "ok"
        assert op.calls == 1
        assert sleep.delays == []

    def test_retries_transient_then_succeeds(self, sleep):
        op = Flaky([UpstreamUnavailable("503"), UpstreamUnavailable("503")])
        policy = RetryPolicy(max_attempts=3, base_delay=1, jitter=0)
        assert with_retry(policy, op, sleep=sleep) == "ok"
        assert op.calls == 3
        assert sleep.delays == [1, 2]

    def test_permanent_error_not_retried(self, sleep):
        op = Flaky([AuthenticationFailed("401")])
        with pytest.raises(AuthenticationFailed):
            with_retry(RetryPolicy(), op, sleep=sleep)
        assert op.calls == 1
        assert sleep.delays == []

    def test_exhausted_retries_chains_last_error(self, sleep):
        last = UpstreamUnavailable("still down")
        op = Flaky([UpstreamUnavailable("down"), UpstreamUnavailable("down"), last])
        with pytest.raises(ExhaustedRetries) as excinfo:
            with_retry(RetryPolicy(max_attempts=3, jitter=0), op, sleep=sleep)
        assert excinfo.value.attempts == 3
        assert excinfo.value.last_error is last
        assert excinfo.value.__cause__ is last
        assert isinstance(excinfo.value, PermanentAgentError)
        assert len(sleep.delays) == 2

    def test_no_retry_policy_single_attempt(self, sleep):
        op = Flaky([UpstreamUnavailable("down")])
        with pytest.raises(ExhaustedRetries):
            with_retry(NO_RETRY, op, sleep=sleep)
        assert op.calls == 1

    def test_retry_after_extends_delay(self, sleep):
        op = Flaky([RateLimited("slow down", retry_after=7)])
        with_retry(RetryPolicy(base_delay=1, max_delay=30, jitter=0), op, sleep=sleep)
        assert sleep.delays == [7]

    def test_retry_after_respects_cap(self, sleep):
        op = Flaky([RateLimited("slow down", retry_after=120)])
        with_retry(RetryPolicy(base_delay=1, max_delay=10, jitter=0), op, sleep=sleep)
        assert sleep.delays == [10]

    def test_on_retry_called_before_each_sleep(self, sleep):
        seen = []
        op = Flaky([UpstreamUnavailable("a"), UpstreamUnavailable("b")])
        with_retry(
            RetryPolicy(jitter=0),
            op,
            sleep=sleep,
            on_retry=lambda attempt, exc, delay: seen.append((attempt, str(exc), delay)),
        )
        assert seen == [(1, "a", 1.0), (2, "b", 2.0)]

    def test_custom_predicate(self, sleep):
        op = Flaky([KeyError("x")])
        result = with_retry(
            RetryPolicy(jitter=0), op, sleep=sleep,
            should_retry=lambda e: isinstance(e, KeyError),
        )
        assert result == "ok"

    def test_unclassified_exception_propagates(self, sleep):
        op = Flaky([RuntimeError("boom")])
        with pytest.raises(RuntimeError):
            with_retry(RetryPolicy(), op, sleep=sleep)


def test_is_transient():
    assert is_transient(RateLimited("x"))
    assert is_transient(UpstreamUnavailable("x"))
    assert not is_transient(AuthenticationFailed("x"))
    assert not is_transient(ValueError("x"))
