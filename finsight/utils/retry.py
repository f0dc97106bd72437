"""Retry decorator utility for model calls."""
import time
import functools
import ssl
import socket

from .exceptions import RetryableError
from .logger import get_logger

logger = get_logger()

# Define exceptions that are safe to retry
RETRYABLE_ERRORS = (
    ConnectionError,
    TimeoutError,
    socket.timeout,
    ssl.SSLError,
    RetryableError,
)


def retry_with_backoff(max_retries=3, initial_delay=1, backoff_factor=2, retryable_exceptions=RETRYABLE_ERRORS):
    """Decorator for exponential backoff retries.

    Any argument may also be a callable taking the decorated method's
    instance, resolved on each call, so instance settings drive the policy.
    """
    def _resolve(value, instance):
        if callable(value):
            return value(instance)
        return value

    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            instance = args[0] if args else None
            retries = _resolve(max_retries, instance)
            delay = _resolve(initial_delay, instance)
            factor = _resolve(backoff_factor, instance)
            last_exception = None

            for attempt in range(retries + 1):
                try:
                    return func(*args, **kwargs)
                except retryable_exceptions as e:
                    last_exception = e

                    if attempt == retries:
                        break

                    wait_time = delay * (factor ** attempt)

                    if isinstance(e, ssl.SSLError):
                        logger.warning(f"SSL issue in {func.__name__} (Attempt {attempt+1}): {e}. Retrying...")
                    else:
                        logger.warning(f"Transient failure in {func.__name__} (Attempt {attempt+1}): {e}. Retrying in {wait_time}s...")

                    time.sleep(wait_time)

            logger.error(f"Permanently failed {func.__name__} after {retries} retries.")
            raise last_exception
        return wrapper
    return decorator
