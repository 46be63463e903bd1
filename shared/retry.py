"""
Bounded retries with backoff for async calls.

Only retry operations that are safe to repeat: a retried call may run
after an earlier attempt already took effect.
"""

import asyncio
import functools
import random
from typing import Any, Awaitable, Callable, Optional, Tuple, Type

from shared.logging import get_logger

logger = get_logger("restaurants.retry")


class RetryConfig:
    """Attempt budget and backoff schedule."""

    def __init__(self,
                 max_attempts: int = 3,
                 base_delay: float = 0.1,
                 max_delay: float = 5.0,
                 exponential_base: float = 2.0,
                 jitter: bool = True,
                 backoff_strategy: str = "exponential"):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter
        self.backoff_strategy = backoff_strategy

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after failed attempt number ``attempt`` (1-based)."""
        if self.backoff_strategy == "exponential":
            delay = self.base_delay * (self.exponential_base ** (attempt - 1))
        elif self.backoff_strategy == "linear":
            delay = self.base_delay * attempt
        else:
            delay = self.base_delay

        delay = min(delay, self.max_delay)
        if self.jitter:
            spread = delay * 0.1
            delay += random.uniform(-spread, spread)
        return max(0.0, delay)


class RetryError(Exception):
    """Raised when every attempt failed."""

    def __init__(self, message: str, last_exception: Exception, attempts: int):
        super().__init__(message)
        self.last_exception = last_exception
        self.attempts = attempts


async def call_with_retry(func: Callable[..., Awaitable[Any]],
                          *args,
                          retry_on: Tuple[Type[BaseException], ...] = (Exception,),
                          config: Optional[RetryConfig] = None,
                          operation: Optional[str] = None,
                          **kwargs) -> Any:
    """Await ``func(*args, **kwargs)``, retrying on ``retry_on``.

    Raises ``RetryError`` wrapping the last failure once the budget is spent.
    Exceptions outside ``retry_on`` propagate immediately.
    """
    config = config or RetryConfig()
    operation = operation or getattr(func, "__name__", "call")
    log = logger.bind(operation=operation)

    attempt = 1
    while True:
        try:
            result = await func(*args, **kwargs)
        except retry_on as e:
            if attempt >= config.max_attempts:
                log.error("Giving up", attempts=attempt, error=str(e))
                raise RetryError(
                    f"{operation} failed after {attempt} attempts",
                    last_exception=e,
                    attempts=attempt
                ) from e

            delay = config.delay_for(attempt)
            log.warning("Attempt failed, backing off", attempt=attempt, delay=round(delay, 3), error=str(e))
            await asyncio.sleep(delay)
            attempt += 1
        else:
            if attempt > 1:
                log.info("Succeeded after retry", attempt=attempt)
            return result


def retry_on_exception(exceptions: Tuple[Type[BaseException], ...] = (Exception,),
                       config: Optional[RetryConfig] = None) -> Callable:
    """Decorator form of ``call_with_retry``."""

    def decorator(func: Callable[..., Awaitable[Any]]) -> Callable[..., Awaitable[Any]]:
        operation = getattr(func, "__name__", "call")

        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> Any:
            return await call_with_retry(
                func, *args, retry_on=exceptions, config=config, operation=operation, **kwargs
            )

        return wrapper

    return decorator
