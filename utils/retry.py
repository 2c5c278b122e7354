"""
Retry executor for upstream API calls.

Wraps an async operation with bounded retries and deterministic exponential
backoff (no jitter) using tenacity. Only transient upstream failures are
retried by default: 5xx responses, 429 rate limiting and timeouts.

Example:
    >>> policy = RetryPolicy(max_attempts=3, initial_delay=1.0)
    >>> data = await retry_async(lambda: client._get("/board/42/sprint"), policy)
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    before_sleep_log,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.retry import retry_base

from utils.exceptions import ApiError, ErrorCode


logger = logging.getLogger(__name__)

T = TypeVar("T")


def is_transient_error(error: BaseException, attempt: int) -> bool:
    """
    Default retry predicate.

    Retries ApiErrors with status >= 500, status 429, or a timeout code.
    Client errors (4xx other than 429), validation and not-found errors
    are never retried.
    """
    if isinstance(error, ApiError):
        status = error.status_code or 0
        return status >= 500 or status == 429 or error.code == ErrorCode.API_TIMEOUT
    return False


@dataclass
class RetryPolicy:
    """
    Retry settings.

    Attributes:
        max_attempts: Total attempts including the first one
        initial_delay: Seconds to wait after the first failure
        max_delay: Upper bound for any single wait, in seconds
        factor: Multiplier applied to the delay after each failure
        should_retry: Predicate (error, attempt) deciding whether to retry
    """
    max_attempts: int = 3
    initial_delay: float = 1.0
    max_delay: float = 10.0
    factor: float = 2.0
    should_retry: Callable[[BaseException, int], bool] = field(default=is_transient_error)


class retry_if_predicate(retry_base):
    """tenacity retry strategy delegating to a (error, attempt) predicate."""

    def __init__(self, predicate: Callable[[BaseException, int], bool]):
        self.predicate = predicate

    def __call__(self, retry_state: RetryCallState) -> bool:
        outcome = retry_state.outcome
        if outcome is None or not outcome.failed:
            return False
        return self.predicate(outcome.exception(), retry_state.attempt_number)


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    policy: Optional[RetryPolicy] = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
) -> T:
    """
    Run ``operation`` with retries.

    The wait before attempt n+1 is ``min(initial_delay * factor**(n-1), max_delay)``.
    When the attempt budget is exhausted, or the predicate declines to retry,
    the last error propagates unchanged.

    Args:
        operation: Zero-argument coroutine function to run
        policy: Retry settings (defaults to RetryPolicy())
        sleep: Awaitable sleep function (injectable for tests)

    Returns:
        The operation's result
    """
    policy = policy or RetryPolicy()

    retrying = AsyncRetrying(
        sleep=sleep,
        stop=stop_after_attempt(policy.max_attempts),
        wait=wait_exponential(
            multiplier=policy.initial_delay,
            exp_base=policy.factor,
            max=policy.max_delay
        ),
        retry=retry_if_predicate(policy.should_retry),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    return await retrying(operation)
