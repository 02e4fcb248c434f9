"""
Retry mechanism for resilient origin calls.
"""

import functools
from typing import Any, Awaitable, Callable, Optional, Tuple, Type, TypeVar

from shared.clock import Clock, system_clock
from shared.logging import get_logger
from shared.metrics import MetricsCollector

T = TypeVar("T")

logger = get_logger("content.retry")


async def retry_with_backoff(
    fn: Callable[[], Awaitable[T]],
    retries: int = 3,
    initial_delay: float = 1.0,
    *,
    exceptions: Tuple[Type[BaseException], ...] = (Exception,),
    clock: Optional[Clock] = None,
    metrics: Optional[MetricsCollector] = None,
    name: Optional[str] = None,
) -> T:
    """Call ``fn`` and retry failures with exponential backoff.

    The first retry waits ``initial_delay`` seconds and every subsequent wait
    doubles. Once ``retries`` are used up the last error propagates unchanged.
    Exceptions outside ``exceptions`` are never retried.
    """
    clock = clock or system_clock
    function_name = name or getattr(fn, "__name__", "anonymous")
    delay = initial_delay
    remaining = retries

    while True:
        try:
            return await fn()
        except exceptions as e:
            if remaining <= 0:
                logger.error(
                    "All retry attempts exhausted",
                    function=function_name,
                    retries=retries,
                    error=str(e)
                )
                raise

            attempt = retries - remaining + 1
            logger.warning(
                "Retry attempt failed, waiting before next attempt",
                attempt=attempt,
                max_retries=retries,
                delay=delay,
                function=function_name,
                error=str(e)
            )
            if metrics is not None:
                metrics.increment_counter("retry_attempts_total", function=function_name)

            await clock.sleep(delay)
            delay *= 2
            remaining -= 1


def retry_on_exception(
    exceptions: Tuple[Type[BaseException], ...] = (Exception,),
    retries: int = 3,
    initial_delay: float = 1.0,
) -> Callable:
    """Decorator for retrying async functions on exceptions."""

    def decorator(func: Callable[..., Awaitable[Any]]) -> Callable[..., Awaitable[Any]]:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> Any:
            return await retry_with_backoff(
                lambda: func(*args, **kwargs),
                retries=retries,
                initial_delay=initial_delay,
                exceptions=exceptions,
                name=func.__name__,
            )

        return wrapper

    return decorator
