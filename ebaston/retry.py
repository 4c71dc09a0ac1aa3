"""Exponential-backoff retry for transient completion-provider failures."""

import functools
import time

from ebaston.logging_config import get_logger

log = get_logger(__name__)


def retry_on_exception(
    max_retries: int = 2,
    base_delay: float = 1.0,
    max_delay: float = 10.0,
    retryable_exceptions: tuple = (Exception,),
    sleep=time.sleep,
):
    """Retry the wrapped call on ``retryable_exceptions`` with exponential backoff.

    Args:
        max_retries: Attempts after the initial call. 0 disables retrying.
        base_delay: Delay before the first retry, doubled on each further retry.
        max_delay: Upper bound for a single delay.
        retryable_exceptions: Exception types worth another attempt. Anything
            else propagates immediately.
        sleep: Delay function, replaceable in tests.
    """
    def decorator(func):
        name = getattr(func, "__qualname__", repr(func))

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            attempts = max_retries + 1
            for attempt in range(1, attempts + 1):
                try:
                    return func(*args, **kwargs)
                except retryable_exceptions as e:
                    if attempt == attempts:
                        log.error(
                            "%s failed after %d attempts: %s",
                            name, attempts, e,
                        )
                        raise
                    delay = min(base_delay * (2 ** (attempt - 1)), max_delay)
                    log.warning(
                        "%s failed (attempt %d/%d): %s. Retrying in %.1fs...",
                        name, attempt, attempts, e, delay,
                    )
                    sleep(delay)
        return wrapper
    return decorator
