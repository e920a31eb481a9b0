"""
Retry helpers for repository and other I/O boundaries.

Evaluators never retry; only awaitable calls against backing stores are
wrapped with these helpers. Cancellation is never retried:
``asyncio.CancelledError`` derives from ``BaseException`` and passes
straight through.
"""

import asyncio
import functools
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Tuple, Type, TypeVar

from shared.logging import get_logger

T = TypeVar("T")

TRANSIENT_ERRORS: Tuple[Type[BaseException], ...] = (asyncio.TimeoutError, ConnectionError, OSError)


@dataclass(frozen=True)
class RetryConfig:
    """Configuration for retry behavior."""
    max_attempts: int = 3
    base_delay: float = 0.05
    max_delay: float = 1.0
    exponential_base: float = 2.0
    jitter: bool = True
    backoff_strategy: str = "exponential"

    @classmethod
    def from_settings(cls, settings: Any) -> "RetryConfig":
        """Build from a settings object carrying ``repository_retry_*`` fields."""
        return cls(
            max_attempts=settings.repository_retry_attempts,
            base_delay=settings.repository_retry_base_delay,
        )


class RetryError(Exception):
    """Exception raised when all retry attempts are exhausted."""
    def __init__(self, message: str, last_exception: BaseException, attempts: int):
        super().__init__(message)
        self.last_exception = last_exception
        self.attempts = attempts


def calculate_delay(attempt: int, config: RetryConfig) -> float:
    """Calculate delay between retry attempts."""
    if config.backoff_strategy == "exponential":
        delay = config.base_delay * (config.exponential_base ** (attempt - 1))
    elif config.backoff_strategy == "linear":
        delay = config.base_delay * attempt
    else:
        delay = config.base_delay

    delay = min(delay, config.max_delay)

    if config.jitter:
        jitter_amount = delay * 0.1
        delay += random.uniform(-jitter_amount, jitter_amount)

    return max(0.0, delay)


async def call_with_retry(operation: str, call: Callable[[], Awaitable[T]],
                          config: Optional[RetryConfig] = None,
                          exceptions: Tuple[Type[BaseException], ...] = TRANSIENT_ERRORS,
                          timeout: Optional[float] = None) -> T:
    """Await ``call()`` until it succeeds, bounding each attempt by ``timeout``.

    ``call`` is invoked once per attempt so every attempt gets a fresh
    awaitable. Raises ``RetryError`` after the last failed attempt.
    """
    config = config or RetryConfig()
    logger = get_logger(f"retry.{operation}")

    for attempt in range(1, config.max_attempts + 1):
        try:
            if timeout is None:
                result = await call()
            else:
                result = await asyncio.wait_for(call(), timeout=timeout)
        except exceptions as e:
            if attempt == config.max_attempts:
                logger.error(
                    "All retry attempts exhausted",
                    operation=operation,
                    attempts=attempt,
                    error=repr(e)
                )
                raise RetryError(
                    f"{operation} failed after {attempt} attempts",
                    last_exception=e,
                    attempts=attempt
                ) from e

            delay = calculate_delay(attempt, config)
            logger.warning(
                "Retry attempt failed, waiting before next attempt",
                operation=operation,
                attempt=attempt,
                delay=round(delay, 4),
                error=repr(e)
            )
            await asyncio.sleep(delay)
        else:
            if attempt > 1:
                logger.info("Retry succeeded", operation=operation, attempt=attempt)
            return result

    raise RetryError(f"{operation} was not attempted", last_exception=RuntimeError("max_attempts < 1"), attempts=0)


def retry_on_exception(exceptions: Tuple[Type[BaseException], ...] = TRANSIENT_ERRORS,
                       config: Optional[RetryConfig] = None) -> Callable:
    """Decorator form of ``call_with_retry`` for async functions."""

    def decorator(func: Callable[..., Awaitable[Any]]) -> Callable[..., Awaitable[Any]]:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> Any:
            return await call_with_retry(
                func.__name__, lambda: func(*args, **kwargs), config, exceptions
            )

        return wrapper

    return decorator
