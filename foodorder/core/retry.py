"""
Retry Executor

Exponential backoff with jitter around any fallible async operation.

An operation can fail through either channel:
    - it raises, or
    - it returns a failed ``Result`` (``success`` is False)

Both are retried while ``should_retry`` agrees. When attempts run out a
raised exception is re-raised and a failed Result is returned unchanged,
so callers must still check ``.success``.

Usage:
    result = await retry_operation(
        lambda: orders.update_status(order_id, OrderStatus.COOKING, restaurant_id),
        max_retries=3,
    )
"""

import asyncio
import functools
import logging
import random
from typing import Any, Awaitable, Callable, Optional

from foodorder.core.errors import classify
from foodorder.core.result import Result

logger = logging.getLogger(__name__)

JITTER_RATIO = 0.3


def default_should_retry(failure: Any) -> bool:
    """Honour the ``retryable`` flag of a Result, or classify an exception."""
    if isinstance(failure, Result):
        return failure.retryable is not False
    if isinstance(failure, BaseException):
        return classify(failure).retryable
    return getattr(failure, "retryable", None) is not False


def backoff_delay(delay: float, max_delay: float) -> float:
    """Add up to 30% jitter to ``delay``, capped at ``max_delay``."""
    jitter = random.random() * JITTER_RATIO * delay
    return min(delay + jitter, max_delay)


async def retry_operation(
    operation: Callable[[], Awaitable[Any]],
    max_retries: int = 3,
    initial_delay: float = 1.0,
    max_delay: float = 10.0,
    should_retry: Optional[Callable[[Any], bool]] = None,
    on_retry: Optional[Callable[[int, Any], None]] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> Any:
    """
    Run ``operation`` up to ``max_retries`` times in total.

    Args:
        operation: Zero-argument coroutine function
        max_retries: Total number of attempts (1 = no retry)
        initial_delay: First backoff delay in seconds
        max_delay: Ceiling for any single delay in seconds
        should_retry: Predicate on the failure (exception or failed Result)
        on_retry: Called as ``on_retry(attempt, failure)`` before sleeping
        sleep: Sleep coroutine (injectable for tests)

    Returns:
        The first successful result, or the last failed Result

    Raises:
        The last exception when the final attempt raised
    """
    if max_retries < 1:
        raise ValueError("max_retries must be at least 1")

    should_retry = should_retry or default_should_retry
    delay = initial_delay

    for attempt in range(1, max_retries + 1):
        try:
            result = await operation()
        except Exception as e:
            if attempt == max_retries or not should_retry(e):
                raise
            failure: Any = e
        else:
            if not isinstance(result, Result) or result.success:
                return result
            if attempt == max_retries or not should_retry(result):
                return result
            failure = result

        logger.warning(
            f"Attempt {attempt}/{max_retries} failed "
            f"({getattr(failure, 'error_code', None) or type(failure).__name__}), retrying"
        )
        if on_retry:
            on_retry(attempt, failure)

        await sleep(backoff_delay(delay, max_delay))
        delay = min(delay * 2, max_delay)

    # Unreachable: the final attempt always returns or raises
    raise RuntimeError("Operation failed after retries")


def with_retry(**options: Any) -> Callable:
    """
    Decorator form of ``retry_operation``.

    Example:
        >>> @with_retry(max_retries=5)
        ... async def load(order_id):
        ...     return await orders.get_order(order_id)
    """
    def decorator(func: Callable[..., Awaitable[Any]]) -> Callable[..., Awaitable[Any]]:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            return await retry_operation(lambda: func(*args, **kwargs), **options)
        return wrapper
    return decorator
