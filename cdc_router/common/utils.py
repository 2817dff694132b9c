"""Common utility functions."""

import time
from typing import Any, Callable, Optional, Tuple, Type

from cdc_router.observability.logging_config import get_logger

logger = get_logger(__name__)


def retry_with_backoff(
    func: Callable[[], Any],
    max_retries: int = 3,
    initial_delay: float = 1.0,
    backoff_factor: float = 2.0,
    max_delay: Optional[float] = None,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    sleep: Callable[[float], None] = time.sleep,
) -> Any:
    """
    Retry function with exponential backoff.

    Args:
        func: Function to retry
        max_retries: Maximum number of retries after the first attempt
        initial_delay: Initial delay in seconds
        backoff_factor: Backoff multiplier
        max_delay: Upper bound for a single delay (unbounded if None)
        retry_on: Exception types that trigger another attempt
        sleep: Sleep function, replaceable in tests

    Returns:
        Function result

    Raises:
        Last exception if all retries fail
    """
    delay = initial_delay

    for attempt in range(max_retries + 1):
        try:
            return func()
        except retry_on as e:
            if attempt >= max_retries:
                raise
            logger.warning(
                f"Attempt {attempt + 1}/{max_retries + 1} failed: {e}; "
                f"retrying in {delay:.2f}s"
            )
            sleep(delay)
            delay *= backoff_factor
            if max_delay is not None:
                delay = min(delay, max_delay)

    raise RuntimeError("retry_with_backoff exhausted without result")  # pragma: no cover
