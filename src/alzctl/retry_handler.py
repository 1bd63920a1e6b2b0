"""Retry logic with exponential backoff for transient failures.

Azure CLI calls fail transiently (throttling, ARM eventual consistency right
after a resource group is created) and Graph answers 429 under load. This
module provides one decorator for all of them.

Usage:
    @retry_with_exponential_backoff(max_attempts=3)
    def create_vnet():
        run_az(...)

    @retry_with_exponential_backoff(
        max_attempts=5,
        initial_delay=2.0,
        max_delay=60.0,
        retryable_exceptions=(GraphThrottledError,),
    )
    def call_graph():
        ...
"""

import functools
import logging
import random
import subprocess
import time
from typing import Any, Callable, TypeVar

from alzctl.log_sanitizer import LogSanitizer

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

RETRYABLE_HTTP_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})


def retry_with_exponential_backoff(
    max_attempts: int = 3,
    initial_delay: float = 1.0,
    max_delay: float = 30.0,
    jitter: bool = True,
    retryable_exceptions: tuple[type[Exception], ...] | None = None,
) -> Callable[[F], F]:
    """Decorator for retrying operations with exponential backoff.

    Args:
        max_attempts: Maximum number of attempts (default: 3)
        initial_delay: Initial delay in seconds (default: 1.0)
        max_delay: Maximum delay between retries in seconds (default: 30.0)
        jitter: Add random jitter (+/-25%) to delays (default: True)
        retryable_exceptions: Tuple of exception types to retry
            (default: network errors and subprocess timeouts)

    Returns:
        Decorated function that will retry on transient failures

    Exceptions may carry a ``retry_after`` attribute (seconds). When present
    it replaces the computed delay, still capped at ``max_delay``.
    """
    if retryable_exceptions is None:
        retryable_exceptions = _get_default_retryable_exceptions()

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            delay = initial_delay

            for attempt in range(1, max_attempts + 1):
                try:
                    result = func(*args, **kwargs)

                    if attempt > 1:
                        logger.info(
                            f"{func.__name__} succeeded on attempt {attempt}/{max_attempts}"
                        )

                    return result

                except retryable_exceptions as e:
                    if attempt >= max_attempts:
                        logger.error(
                            f"{func.__name__} failed after {max_attempts} attempts: "
                            f"{_safe_error_message(e)}"
                        )
                        raise

                    retry_after = getattr(e, "retry_after", None)
                    if retry_after is not None:
                        actual_delay = float(retry_after)
                    else:
                        actual_delay = delay
                        if jitter:
                            jitter_amount = delay * 0.25
                            actual_delay = delay + random.uniform(-jitter_amount, jitter_amount)

                    actual_delay = min(actual_delay, max_delay)

                    logger.warning(
                        f"{func.__name__} failed on attempt {attempt}/{max_attempts}, "
                        f"retrying in {actual_delay:.2f}s: {_safe_error_message(e)}"
                    )

                    time.sleep(actual_delay)
                    delay *= 2

            raise RuntimeError(f"{func.__name__} failed with unknown error")

        return wrapper  # type: ignore

    return decorator


def _get_default_retryable_exceptions() -> tuple[type[Exception], ...]:
    """Get tuple of default retryable exception types."""
    return (
        TimeoutError,
        ConnectionError,
        subprocess.TimeoutExpired,
    )


def _safe_error_message(exception: Exception) -> str:
    """Create a log-safe, truncated error message."""
    error_str = LogSanitizer.sanitize(str(exception))

    if len(error_str) > 200:
        error_str = error_str[:200] + "..."

    return error_str


def should_retry_http_error(status_code: int) -> bool:
    """Determine if HTTP status code should trigger retry.

    Retryable status codes:
        - 408: Request Timeout
        - 429: Too Many Requests (throttling)
        - 500: Internal Server Error
        - 502: Bad Gateway
        - 503: Service Unavailable
        - 504: Gateway Timeout
    """
    return status_code in RETRYABLE_HTTP_STATUS_CODES


__all__ = [
    "RETRYABLE_HTTP_STATUS_CODES",
    "retry_with_exponential_backoff",
    "should_retry_http_error",
]
