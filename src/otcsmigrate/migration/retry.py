"""Bounded retry with exponential backoff.

Only the wrapped call is retried. The sleep function is injectable so that
tests can observe the backoff schedule without waiting.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

from otcsmigrate.client.api import AuthenticationError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Default retry configuration
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_INITIAL_BACKOFF = 1.0  # seconds
DEFAULT_BACKOFF_MULTIPLIER = 2.0
DEFAULT_MAX_BACKOFF = 60.0  # seconds

# A lost session will not come back by waiting
NON_RETRYABLE_EXCEPTIONS: tuple[type[BaseException], ...] = (AuthenticationError,)


def backoff_delays(
    max_attempts: int,
    initial_backoff: float = DEFAULT_INITIAL_BACKOFF,
    backoff_multiplier: float = DEFAULT_BACKOFF_MULTIPLIER,
    max_backoff: float = DEFAULT_MAX_BACKOFF,
) -> list[float]:
    """Delays between attempts: 1s, 2s, 4s, ... (one fewer than attempts)."""
    delays = []
    backoff = initial_backoff
    for _ in range(max(max_attempts, 1) - 1):
        delays.append(backoff)
        backoff = min(backoff * backoff_multiplier, max_backoff)
    return delays


@dataclass
class RetryOutcome(Generic[T]):
    """Result of a retried call."""

    value: T
    attempts: int


def retry_with_backoff(
    func: Callable[[], T],
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    initial_backoff: float = DEFAULT_INITIAL_BACKOFF,
    backoff_multiplier: float = DEFAULT_BACKOFF_MULTIPLIER,
    max_backoff: float = DEFAULT_MAX_BACKOFF,
    retryable_exceptions: tuple[type[Exception], ...] = (Exception,),
    non_retryable_exceptions: tuple[type[BaseException], ...] = NON_RETRYABLE_EXCEPTIONS,
    sleep: Callable[[float], None] = time.sleep,
    description: str = "operation",
) -> RetryOutcome[T]:
    """Execute a function with exponential backoff retry.

    Args:
        func: Function to execute.
        max_attempts: Total attempts (values below 1 mean a single attempt).
        initial_backoff: Delay before the second attempt, in seconds.
        backoff_multiplier: Multiplier applied after each failed attempt.
        max_backoff: Upper bound for a single delay.
        retryable_exceptions: Exception types that trigger another attempt.
        non_retryable_exceptions: Exception types raised immediately.
        sleep: Sleep function (injectable for tests).
        description: Label used in log messages.

    Returns:
        The function's result and the number of attempts used.

    Raises:
        The last exception if all attempts fail, or any non-retryable one.
    """
    delays = backoff_delays(max_attempts, initial_backoff, backoff_multiplier, max_backoff)
    total = len(delays) + 1

    for attempt in range(1, total + 1):
        try:
            return RetryOutcome(value=func(), attempts=attempt)
        except non_retryable_exceptions:
            raise
        except retryable_exceptions as e:
            if attempt == total:
                logger.error(f"{description}: all {total} attempts failed: {e}")
                raise
            delay = delays[attempt - 1]
            logger.warning(
                f"{description}: attempt {attempt}/{total} failed: {e}. "
                f"Retrying in {delay:.1f}s..."
            )
            sleep(delay)

    raise RuntimeError("Unexpected retry loop exit")
