"""Retry helper with exponential backoff and jitter for storage calls."""

import random
import time
from typing import Any, Callable, Optional, TypeVar

import structlog

from utils.logging import get_logger

T = TypeVar("T")


class RetryConfig:
    """Configuration for retry behavior."""

    def __init__(
        self,
        max_attempts: int = 3,
        initial_delay: float = 1.0,
        max_delay: float = 30.0,
        exponential_base: float = 2.0,
        jitter: bool = True,
        retryable_exceptions: tuple[type[Exception], ...] = (Exception,),
    ) -> None:
        """Initialize retry configuration.

        Args:
            max_attempts: Total number of attempts, including the first one
            initial_delay: Delay before the second attempt, in seconds
            max_delay: Upper bound for any single delay, in seconds
            exponential_base: Growth factor between consecutive delays
            jitter: Whether to add up to 10% random jitter to each delay
            retryable_exceptions: Exception types that trigger another attempt
        """
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")

        self.max_attempts = max_attempts
        self.initial_delay = initial_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter
        self.retryable_exceptions = retryable_exceptions


def calculate_backoff_delay(
    attempt: int,
    initial_delay: float = 1.0,
    max_delay: float = 30.0,
    exponential_base: float = 2.0,
    jitter: bool = True,
) -> float:
    """Calculate delay for exponential backoff with optional jitter.

    Args:
        attempt: Current attempt number (0-indexed)
        initial_delay: Initial delay in seconds
        max_delay: Maximum delay in seconds
        exponential_base: Base for exponential backoff
        jitter: Whether to add random jitter

    Returns:
        Delay in seconds
    """
    delay = min(initial_delay * (exponential_base**attempt), max_delay)

    if jitter:
        delay += delay * 0.1 * random.random()

    return delay


def retry_sync(
    func: Callable[..., T],
    *args: Any,
    config: Optional[RetryConfig] = None,
    logger: Optional[structlog.BoundLogger] = None,
    sleep: Callable[[float], None] = time.sleep,
    **kwargs: Any,
) -> T:
    """Call ``func`` until it succeeds or the attempts run out.

    Exceptions outside ``config.retryable_exceptions`` propagate immediately.
    When every attempt fails, the last exception is re-raised unchanged.
    """
    if config is None:
        config = RetryConfig()

    logger = logger or get_logger("retry")

    for attempt in range(config.max_attempts):
        try:
            return func(*args, **kwargs)
        except config.retryable_exceptions as e:
            if attempt == config.max_attempts - 1:
                logger.error(
                    "All retry attempts exhausted",
                    max_attempts=config.max_attempts,
                    error=str(e),
                )
                raise

            delay = calculate_backoff_delay(
                attempt=attempt,
                initial_delay=config.initial_delay,
                max_delay=config.max_delay,
                exponential_base=config.exponential_base,
                jitter=config.jitter,
            )
            logger.warning(
                "Retry attempt failed, retrying",
                attempt=attempt + 1,
                max_attempts=config.max_attempts,
                delay=round(delay, 2),
                error=str(e),
            )
            sleep(delay)

    raise RuntimeError("Retry logic error")
