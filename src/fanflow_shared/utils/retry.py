"""Retry with exponential backoff for store-bound operations."""

import logging
import time
from typing import Callable, TypeVar

from tenacity import RetryCallState, Retrying, stop_after_attempt, wait_exponential

T = TypeVar("T")

logger = logging.getLogger(__name__)

DEFAULT_ATTEMPTS = 3
DEFAULT_INITIAL_DELAY_SECONDS = 1.0


def _log_before_sleep(attempts: int) -> Callable[[RetryCallState], None]:
    def log(retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        logger.warning(
            "Operation failed (attempt %d/%d): %s | next_retry_in=%.0fms",
            retry_state.attempt_number,
            attempts,
            error,
            delay * 1000,
        )

    return log


def with_retry(
    operation: Callable[[], T],
    *,
    attempts: int = DEFAULT_ATTEMPTS,
    initial_delay: float = DEFAULT_INITIAL_DELAY_SECONDS,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Run an operation, retrying on any exception.

    The delay starts at ``initial_delay`` and doubles after each failed
    attempt (1s, 2s, 4s, ...). No delay follows the final attempt.

    Args:
        operation: Zero-argument callable to run
        attempts: Maximum number of attempts (at least 1)
        initial_delay: Delay in seconds after the first failure
        sleep: Sleep function, injectable for tests

    Returns:
        The operation's return value from the first successful attempt

    Raises:
        Exception: The last error raised once all attempts are exhausted
    """
    attempts = max(1, attempts)
    retrying = Retrying(
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=initial_delay, exp_base=2),
        sleep=sleep,
        before_sleep=_log_before_sleep(attempts),
        reraise=True,
    )
    try:
        return retrying(operation)
    except Exception as e:
        logger.warning(
            "Operation failed (attempt %d/%d): %s | next_retry_in=no more retries",
            attempts,
            attempts,
            e,
        )
        raise
