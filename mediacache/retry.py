"""
Retry - Exponential backoff around fallible storage and tool operations.
"""

import logging
from typing import Callable, Optional, TypeVar

from retrying import Retrying

from .errors import is_retryable

T = TypeVar('T')

DEFAULT_ATTEMPTS = 3
DEFAULT_BASE_DELAY = 0.75
DEFAULT_MAX_DELAY = 10.0

logger = logging.getLogger(__name__)


def backoff_delay(attempt: int, base_delay: float, max_delay: float) -> float:
    """Delay in seconds after the given (1-based) failed attempt."""
    return min(max_delay, base_delay * (2 ** (attempt - 1)))


def with_retries(
    fn: Callable[[], T],
    label: str = 'operation',
    attempts: int = DEFAULT_ATTEMPTS,
    base_delay: float = DEFAULT_BASE_DELAY,
    max_delay: float = DEFAULT_MAX_DELAY,
    log: Optional[logging.Logger] = None
) -> T:
    """
    Call fn, retrying transient failures with exponential backoff.

    Non-retryable errors and the error from the final attempt are raised
    unchanged.

    Args:
        fn: Zero-argument callable to run
        label: Name used in retry log messages
        attempts: Maximum number of attempts
        base_delay: Delay before the second attempt, in seconds
        max_delay: Upper bound on any single delay, in seconds
        log: Optional logger instance

    Returns:
        Whatever fn returns
    """
    log = log or logger

    def wait(previous_attempt_number: int, delay_since_first_attempt_ms: int) -> float:
        delay = backoff_delay(previous_attempt_number, base_delay, max_delay)
        log.warning(
            f"{label} failed (attempt {previous_attempt_number}/{attempts}), "
            f"retrying in {delay * 1000:.0f}ms"
        )
        return delay * 1000

    retrier = Retrying(
        stop_max_attempt_number=attempts,
        retry_on_exception=is_retryable,
        wait_func=wait,
    )
    return retrier.call(fn)
