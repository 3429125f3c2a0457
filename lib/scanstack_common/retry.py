"""
Fixed-interval retry helper.

Used by the lease broker to wrap enqueue calls. Retries are blind: every
exception counts as a failed attempt, with no retryable/fatal distinction.
"""

import logging
import time
from collections.abc import Callable
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def execute_with_retries(
    action: Callable[[], T],
    on_failure: Callable[[Exception], None] | None = None,
    max_attempts: int = 3,
    retry_interval_ms: int = 1000,
) -> T:
    """
    Run action until it succeeds or max_attempts is reached.

    Args:
        action: Zero-argument callable to run.
        on_failure: Optional callback invoked with the error before each retry.
        max_attempts: Total number of attempts (including the first).
        retry_interval_ms: Fixed delay between attempts in milliseconds.

    Returns:
        Whatever action returns on its first successful attempt.

    Raises:
        Exception: The error from the final attempt when all attempts fail.
        ValueError: If max_attempts is less than 1.
    """
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")

    for attempt in range(max_attempts):
        try:
            return action()
        except Exception as e:
            if attempt >= max_attempts - 1:
                raise

            logger.warning(
                f"Attempt {attempt + 1}/{max_attempts} failed, "
                f"retrying in {retry_interval_ms}ms: {e}"
            )
            if on_failure is not None:
                on_failure(e)
            time.sleep(retry_interval_ms / 1000.0)

    # Unreachable: the loop either returns or raises
    raise RuntimeError("Retry loop exited without a result")
