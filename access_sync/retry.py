"""
Retry utilities for handling transient transport failures.

Retries belong to the transport layer only. The connector itself never
retries; it reports errors and rate-limit windows to its caller.
"""

import time
import logging
import functools
from typing import Callable, Any, Dict, Tuple, Type, Optional

logger = logging.getLogger(__name__)


class RetryableError(Exception):
    """
    Base exception for errors that should trigger retries.

    Args:
        message: Error message
        retry_after: Optional number of seconds the server asked us to wait
    """

    def __init__(self, message: str, retry_after: Optional[float] = None):
        super().__init__(message)
        self.retry_after = retry_after


class MaxRetriesExceeded(Exception):
    """Raised when maximum retry attempts are exceeded."""

    def __init__(self, attempts: int, last_exception: Exception):
        self.attempts = attempts
        self.last_exception = last_exception
        super().__init__(f"Failed after {attempts} attempts: {last_exception}")


def retry(
    max_attempts: int = 3,
    delay: float = 1.0,
    backoff: float = 1.0,
    max_delay: Optional[float] = None,
    exceptions: Tuple[Type[Exception], ...] = (RetryableError,),
    on_retry: Optional[Callable[[int, Exception], None]] = None
):
    """
    Decorator to retry function calls on specified exceptions.

    Args:
        max_attempts: Maximum number of attempts (including initial call)
        delay: Initial delay between retries in seconds
        backoff: Multiplier for delay after each retry (exponential backoff)
        max_delay: Upper bound for any single wait, including server-requested waits
        exceptions: Tuple of exception types to catch and retry on
        on_retry: Optional callback function called on each retry

    Returns:
        Decorated function
    """
    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            return retry_call(
                func, args, kwargs,
                max_attempts=max_attempts,
                delay=delay,
                backoff=backoff,
                max_delay=max_delay,
                exceptions=exceptions,
                on_retry=on_retry
            )
        return wrapper
    return decorator


def retry_call(
    func: Callable,
    args: tuple = (),
    kwargs: dict = None,
    max_attempts: int = 3,
    delay: float = 1.0,
    backoff: float = 1.0,
    max_delay: Optional[float] = None,
    exceptions: Tuple[Type[Exception], ...] = (RetryableError,),
    on_retry: Optional[Callable[[int, Exception], None]] = None
) -> Any:
    """
    Call a function with retry logic.

    When the caught exception carries a ``retry_after`` hint, that wait is used
    instead of the computed backoff delay for that attempt.

    Returns:
        Function result

    Raises:
        MaxRetriesExceeded: If all retry attempts fail
    """
    if kwargs is None:
        kwargs = {}

    last_exception = None
    current_delay = delay

    for attempt in range(max_attempts):
        try:
            result = func(*args, **kwargs)
            if attempt > 0:
                logger.info(f"Operation succeeded on attempt {attempt + 1}")
            return result

        except exceptions as e:
            last_exception = e

            # Don't retry on last attempt
            if attempt == max_attempts - 1:
                break

            # Server-requested wait wins over the backoff delay
            wait = getattr(e, 'retry_after', None)
            if wait is None:
                wait = current_delay
            if max_delay is not None:
                wait = min(wait, max_delay)

            # Log retry attempt
            logger.debug(f"Attempt {attempt + 1} failed with {type(e).__name__}: {e}")
            logger.debug(f"Retrying in {wait:.1f} seconds...")

            # Call retry callback if provided
            if on_retry:
                try:
                    on_retry(attempt + 1, e)
                except Exception as callback_error:
                    logger.warning(f"Retry callback failed: {callback_error}")

            # Wait before retry
            time.sleep(wait)
            current_delay *= backoff

    # All attempts failed
    raise MaxRetriesExceeded(max_attempts, last_exception)


def retry_with_config(config: Dict[str, Any], on_retry: Optional[Callable[[int, Exception], None]] = None):
    """
    Create retry decorator from the ``error_handling`` configuration section.

    Args:
        config: Dictionary containing retry configuration:
            - max_retries: Maximum retry attempts after the first call
            - retry_wait_seconds: Initial delay between retries
            - retry_backoff: Backoff multiplier (optional, default 1.0)
            - max_retry_wait_seconds: Cap on any single wait (optional)
        on_retry: Optional callback for retry events

    Returns:
        Retry decorator configured from the provided settings
    """
    # max_retries counts retries, not attempts
    return retry(
        max_attempts=config.get('max_retries', 3) + 1,
        delay=config.get('retry_wait_seconds', 1.0),
        backoff=config.get('retry_backoff', 1.0),
        max_delay=config.get('max_retry_wait_seconds'),
        exceptions=(ConnectionError, TimeoutError, RetryableError),
        on_retry=on_retry
    )


def is_retryable_error(exception: Exception) -> bool:
    """
    Determine if an exception indicates a transient failure.

    Args:
        exception: Exception to check

    Returns:
        True if the exception indicates a transient failure
    """
    # Network errors and explicitly marked retryable errors
    if isinstance(exception, (ConnectionError, TimeoutError, RetryableError)):
        return True

    status_code = getattr(exception, 'status_code', None)
    if isinstance(status_code, int):
        # 429 (too many requests) and 5xx server errors are transient
        return status_code == 429 or 500 <= status_code < 600

    # Check exception message for common transient failure patterns
    error_msg = str(exception).lower()
    transient_patterns = [
        'timeout',
        'timed out',
        'connection reset',
        'connection refused',
        'temporary failure',
        'service unavailable',
        'too many requests'
    ]

    return any(pattern in error_msg for pattern in transient_patterns)


def create_retry_callback(operation_name: str) -> Callable[[int, Exception], None]:
    """
    Create a standard retry callback for logging retry attempts.

    Args:
        operation_name: Name of the operation being retried

    Returns:
        Callback function for retry events
    """
    def on_retry(attempt: int, exception: Exception):
        logger.warning(f"{operation_name} failed on attempt {attempt}, "
                       f"retrying due to {type(exception).__name__}: {exception}")

    return on_retry
