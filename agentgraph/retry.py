"""Retry policy and the generic retry loop.

Shared by the LLM client (per HTTP call) and the executor (per node).
"""

import logging
import random
import time
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

from .errors import ExhaustedRetries, TransientAgentError

_log = logging.getLogger(__name__)

T = TypeVar("T")


def is_transient(error: BaseException) -> bool:
    """Default retry predicate: only classified-transient agent errors."""
    return isinstance(error, TransientAgentError)


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential backoff.

    The delay before attempt ``n + 1`` is ``base_delay * 2 ** (n - 1)``,
    stretched by up to ``jitter`` (a fraction of the delay) and capped at
    ``max_delay``.  Because jitter stays below 1, uncapped delays strictly
    increase from one attempt to the next.
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    jitter: float = 0.1

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("delays must be non-negative")
        if not 0 <= self.jitter < 1:
            raise ValueError("jitter must be in [0, 1)")

    def delay_for(self, attempt: int, rng: Optional[random.Random] = None) -> float:
        """Seconds to wait after the given (1-based) failed attempt."""
        raw = self.base_delay * (2 ** (attempt - 1))
        if self.jitter:
            uniform = (rng or random).uniform
            raw *= 1 + uniform(0, self.jitter)
        return min(self.max_delay, raw)

    @classmethod
    def from_dict(cls, data: dict) -> "RetryPolicy":
        defaults = cls()
        return cls(
            max_attempts=int(data.get("max_attempts", defaults.max_attempts)),
            base_delay=float(data.get("base_delay", defaults.base_delay)),
            max_delay=float(data.get("max_delay", defaults.max_delay)),
            jitter=float(data.get("jitter", defaults.jitter)),
        )


NO_RETRY = RetryPolicy(max_attempts=1, base_delay=0.0, max_delay=0.0, jitter=0.0)


def with_retry(
    policy: RetryPolicy,
    operation: Callable[[], T],
    *,
    should_retry: Callable[[BaseException], bool] = is_transient,
    sleep: Callable[[float], None] = time.sleep,
    on_retry: Optional[Callable[[int, BaseException, float], None]] = None,
    rng: Optional[random.Random] = None,
) -> T:
    """Call ``operation`` until it succeeds or the policy gives up.

    Errors rejected by ``should_retry`` propagate unchanged.  When a
    retryable error survives the last attempt, ``ExhaustedRetries`` is
    raised with the original error chained.

    ``on_retry(attempt, error, delay)`` is called before each sleep.
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            return operation()
        except Exception as exc:
            if not should_retry(exc):
                raise
            if attempt >= policy.max_attempts:
                raise ExhaustedRetries(attempt, exc) from exc
            delay = policy.delay_for(attempt, rng)
            if isinstance(exc, TransientAgentError):
                retry_after = getattr(exc, "retry_after", None)
                if retry_after:
                    delay = min(policy.max_delay, max(delay, float(retry_after)))
            _log.debug("attempt %d failed (%s); retrying in %.2fs", attempt, exc, delay)
            if on_retry is not None:
                on_retry(attempt, exc, delay)
            sleep(delay)
