"""Bounded retry helper for network calls."""

import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_fixed,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _log_retry(label: str) -> Callable[[RetryCallState], None]:
    def before_sleep(state: RetryCallState) -> None:
        error = state.outcome.exception() if state.outcome else None
        logger.warning(
            "Retrying %s after attempt %d failed: %s: %s",
            label,
            state.attempt_number,
            type(error).__name__,
            error,
        )

    return before_sleep


async def with_retry(
    fn: Callable[[], Awaitable[T]],
    *,
    attempts: int = 3,
    delay: float = 1.0,
    backoff: float = 2.0,
    max_delay: float = 30.0,
    retry_on: type[BaseException] | tuple[type[BaseException], ...] = Exception,
    label: str = "call",
) -> T:
    """
    Await `fn()` up to `attempts` times.

    Waits `delay * backoff ** (n - 1)` seconds after the n-th failure, capped
    at `max_delay`. A `backoff` of 1 gives a fixed delay. Exceptions not
    matching `retry_on` propagate immediately; the last matching error is
    re-raised once attempts run out.
    """
    if backoff <= 1:
        wait = wait_fixed(delay)
    else:
        wait = wait_exponential(multiplier=delay, exp_base=backoff, max=max_delay)

    retrying = AsyncRetrying(
        stop=stop_after_attempt(attempts),
        wait=wait,
        retry=retry_if_exception_type(retry_on),
        before_sleep=_log_retry(label),
        reraise=True,
    )
    async for attempt in retrying:
        with attempt:
            result = await fn()
    return result
