"""
Retry utilities with linear backoff.

Provides bounded retry for provider calls that signal transient
overload (rate limiting). Only errors the caller marks as retryable are
retried; anything else surfaces on the first attempt.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar('T')


class RetryExhaustedError(Exception):
    """All attempts failed with retryable errors."""

    def __init__(self, operation_name: str, attempts: int, last_exception: BaseException):
        super().__init__(
            f"{operation_name} failed after {attempts} attempts. Last error: {last_exception}"
        )
        self.operation_name = operation_name
        self.attempts = attempts
        self.last_exception = last_exception


async def with_retry(
    func: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    base_delay: float = 2.0,
    max_delay: float = 30.0,
    should_retry: Callable[[BaseException], bool] = lambda e: True,
    operation_name: Optional[str] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Retry an async operation with linearly increasing delays.

    The delay before attempt n+1 is ``base_delay * n`` (capped at max_delay),
    so three attempts with a 2s base wait 2s then 4s.

    Args:
        func: Zero-argument coroutine factory
        max_attempts: Total attempts including the first (default: 3)
        base_delay: Delay unit in seconds (default: 2.0)
        max_delay: Maximum delay between attempts in seconds (default: 30.0)
        should_retry: Predicate selecting retryable errors
        operation_name: Name for logging purposes
        sleep: Awaitable sleep, injectable for tests

    Returns:
        Result from the first successful call

    Raises:
        RetryExhaustedError: If every attempt failed with a retryable error
        Exception: The original error, if it was not retryable

    Example:
        >>> result = await with_retry(
        ...     lambda: client.chat.completions.create(**params),
        ...     should_retry=lambda e: isinstance(e, RateLimitError),
        ...     operation_name="LLM completion"
        ... )
    """
    name = operation_name or getattr(func, "__name__", "operation")
    last_exception: Optional[BaseException] = None

    for attempt in range(1, max_attempts + 1):
        try:
            logger.debug(f"Attempt {attempt}/{max_attempts}: {name}")
            result = await func()

            if attempt > 1:
                logger.info(f"✅ {name} succeeded on attempt {attempt}/{max_attempts}")

            return result

        except Exception as e:
            if not should_retry(e):
                logger.error(f"❌ {name} failed with non-retryable error: {e}")
                raise

            last_exception = e

            if attempt < max_attempts:
                delay = min(base_delay * attempt, max_delay)
                logger.warning(
                    f"⚠️  {name} failed (attempt {attempt}/{max_attempts}): {e}"
                )
                logger.info(f"Retrying in {delay:.1f}s...")
                await sleep(delay)
            else:
                logger.error(f"❌ {name} failed after {max_attempts} attempts: {e}")

    raise RetryExhaustedError(name, max_attempts, last_exception) from last_exception
