"""Bounded retry combinator shared by balance reads and gas estimation."""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_fixed,
)

logger = logging.getLogger(__name__)


def bounded_retry(
    attempts: int,
    delay: float,
    retry_on: Callable[[BaseException], bool],
) -> AsyncRetrying:
    """
    Build a retrying controller.

    Args:
        attempts: Total number of attempts, including the first one
        delay: Fixed pause between attempts, in seconds
        retry_on: Predicate deciding whether an error is worth another attempt.
            Errors it rejects stop the loop immediately.
    """
    return AsyncRetrying(
        stop=stop_after_attempt(attempts),
        wait=wait_fixed(delay),
        retry=retry_if_exception(retry_on),
        reraise=True,
        before_sleep=before_sleep_log(logger, logging.WARNING),
    )


async def call_with_retry(
    fn: Callable[[], Awaitable[Any]],
    *,
    attempts: int,
    delay: float,
    retry_on: Callable[[BaseException], bool],
    timeout: Optional[float] = None,
) -> Any:
    """
    Await `fn()` up to `attempts` times.

    Each attempt is raced against `timeout` when one is given, so a hung node
    call surfaces as `asyncio.TimeoutError` and counts as a failed attempt.
    The last error is re-raised once attempts are exhausted.
    """
    result = None
    async for attempt in bounded_retry(attempts, delay, retry_on):
        with attempt:
            if timeout is None:
                result = await fn()
            else:
                result = await asyncio.wait_for(fn(), timeout)
    return result
