# src/api/retry.py
#
# Retry with exponential backoff for outbound API calls (Graph token requests).
# Schedule storage writes are never retried.

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar('T')


async def retry_with_backoff(
    func: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    initial_delay: float = 1.0,
    max_delay: float = 30.0,
    exponential_base: float = 2.0,
    exceptions: tuple = (Exception,),
    on_retry: Optional[Callable] = None
) -> T:
    """
    Await func() until it succeeds or max_retries retries have failed.

    Args:
        func: Zero-argument coroutine function
        max_retries: Maximum number of retry attempts (default: 3)
        initial_delay: Delay before the first retry in seconds (default: 1.0)
        max_delay: Cap on the delay between attempts (default: 30.0)
        exponential_base: Delay multiplier per attempt (default: 2.0)
        exceptions: Exceptions that trigger a retry; anything else propagates at once
        on_retry: Optional callback(attempt, exception, delay) called before each retry

    Raises:
        The last exception once every attempt has failed
    """
    delay = initial_delay
    attempt = 0

    while True:
        try:
            return await func()
        except exceptions as e:
            if attempt >= max_retries:
                logger.error(f"All {max_retries + 1} attempts failed. Last error: {e}")
                raise

            attempt += 1
            logger.warning(
                f"Attempt {attempt}/{max_retries + 1} failed: {e}. "
                f"Retrying in {delay:.2f}s..."
            )
            if on_retry:
                on_retry(attempt, e, delay)

            await asyncio.sleep(delay)
            delay = min(delay * exponential_base, max_delay)
