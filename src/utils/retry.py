"""
Retry logic with exponential backoff.

Used for optimistic-concurrency conflicts on record writes and for transient
record store connection failures on reads.
"""

import logging
import asyncio
import functools
import inspect
import random
from typing import Callable, Type, Tuple, Any

logger = logging.getLogger(__name__)


class RetryExhausted(Exception):
    """Raised when all retry attempts are exhausted."""

    def __init__(self, message: str, attempts: int = 0):
        super().__init__(message)
        self.attempts = attempts


async def retry_with_backoff(
    func: Callable,
    *args,
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    jitter: bool = True,
    retry_on: Tuple[Type[Exception], ...] = (Exception,),
    skip_on: Tuple[Type[Exception], ...] = (),
    **kwargs
) -> Any:
    """
    Execute a function with exponential backoff retry logic.

    Args:
        func: Async function to execute
        *args: Positional arguments for func
        max_retries: Maximum number of retry attempts (default: 3)
        base_delay: Initial delay in seconds (default: 1.0)
        max_delay: Maximum delay in seconds (default: 60.0)
        exponential_base: Base for exponential calculation (default: 2.0)
        jitter: Add random jitter to delays to prevent thundering herd (default: True)
        retry_on: Tuple of exception types to retry on (default: all exceptions)
        skip_on: Tuple of exception types to never retry (raises immediately)
        **kwargs: Keyword arguments for func

    Returns:
        Result of func execution

    Raises:
        RetryExhausted: If all retries are exhausted
        Exception: If exception is in skip_on list

    Example:
        snapshot = await retry_with_backoff(
            apply_change,
            record_id,
            max_retries=2,
            base_delay=0.1,
            retry_on=(RecordConflictError,),
            skip_on=(EntityNotFoundError,)
        )
    """
    last_exception = None
    name = getattr(func, "__name__", repr(func))

    for attempt in range(max_retries + 1):
        try:
            if inspect.iscoroutinefunction(func):
                result = await func(*args, **kwargs)
            else:
                result = func(*args, **kwargs)

            if attempt > 0:
                logger.info(
                    f"✅ Retry successful on attempt {attempt + 1}/{max_retries + 1} "
                    f"for {name}"
                )

            return result

        except skip_on:
            raise

        except retry_on as e:
            last_exception = e

            if attempt == max_retries:
                logger.warning(
                    f"❌ All {max_retries + 1} retry attempts exhausted for {name}"
                )
                raise RetryExhausted(
                    f"Failed after {max_retries + 1} attempts: {e}",
                    attempts=max_retries + 1,
                ) from e

            delay = min(base_delay * (exponential_base ** attempt), max_delay)

            if jitter:
                delay = delay * (0.5 + random.random())

            logger.warning(
                f"⚠️  Retry attempt {attempt + 1}/{max_retries + 1} for {name} "
                f"after {type(e).__name__}: {e}. Retrying in {delay:.2f}s..."
            )

            await asyncio.sleep(delay)

    # Should never reach here, but just in case
    raise RetryExhausted(f"Failed after {max_retries + 1} attempts", attempts=max_retries + 1) from last_exception


def with_retry(
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    jitter: bool = True,
    retry_on: Tuple[Type[Exception], ...] = (Exception,),
    skip_on: Tuple[Type[Exception], ...] = ()
):
    """
    Decorator to add retry logic with exponential backoff to async functions.

    Usage:
        @with_retry(max_retries=2, base_delay=0.2, retry_on=(DatabaseConnectionError,))
        async def get_many(self, record_type, record_ids):
            ...

    Args:
        Same as retry_with_backoff()

    Returns:
        Decorated function with retry logic
    """
    def decorator(func: Callable):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            return await retry_with_backoff(
                func,
                *args,
                max_retries=max_retries,
                base_delay=base_delay,
                max_delay=max_delay,
                exponential_base=exponential_base,
                jitter=jitter,
                retry_on=retry_on,
                skip_on=skip_on,
                **kwargs
            )
        return wrapper
    return decorator
