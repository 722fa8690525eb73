# core/retry.py
"""
Shared retry policy for outbound provider calls.

Only transient rate limiting is retried; authentication failures, timeouts and
malformed responses surface on the first attempt. Waits grow exponentially and
honour a provider's Retry-After hint, both capped at `max_wait`.
"""

from dataclasses import dataclass
from typing import Awaitable, Callable, Tuple, Type, TypeVar
import logging
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)
from config.settings import settings
from util.errors import RateLimited

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    initial_wait: float = 1.0
    max_wait: float = 8.0
    retry_on: Tuple[Type[BaseException], ...] = (RateLimited,)

    @classmethod
    def from_settings(cls) -> "RetryPolicy":
        return cls(
            max_attempts=max(1, settings.RETRY_MAX_ATTEMPTS),
            initial_wait=settings.RETRY_INITIAL_WAIT,
            max_wait=settings.RETRY_MAX_WAIT,
        )


class _BackoffWait:
    def __init__(self, policy: RetryPolicy) -> None:
        self._policy = policy
        self._exp = wait_exponential(multiplier=policy.initial_wait, max=policy.max_wait)

    def __call__(self, state: RetryCallState) -> float:
        exc = state.outcome.exception() if state.outcome else None
        hint = getattr(exc, "retry_after", None)
        if hint is not None:
            return min(float(hint), self._policy.max_wait)
        return self._exp(state)


def _log_before_sleep(state: RetryCallState) -> None:
    exc = state.outcome.exception() if state.outcome else None
    wait = state.next_action.sleep if state.next_action else 0.0
    logger.warning(
        "retry.sleep attempt=%d wait=%.2fs err=%s",
        state.attempt_number,
        wait,
        exc,
    )


async def call_with_retry(
    policy: RetryPolicy, fn: Callable[..., Awaitable[T]], *args, **kwargs
) -> T:
    """
    Await `fn(*args, **kwargs)` under `policy`. The last exception is re-raised
    once attempts are exhausted.
    """
    async for attempt in AsyncRetrying(
        stop=stop_after_attempt(policy.max_attempts),
        wait=_BackoffWait(policy),
        retry=retry_if_exception_type(policy.retry_on),
        before_sleep=_log_before_sleep,
        reraise=True,
    ):
        with attempt:
            return await fn(*args, **kwargs)
    raise RuntimeError("unreachable: retry loop exited without an outcome")
