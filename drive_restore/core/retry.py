"""Retry helper for remote operations that might fail temporarily."""

import logging
import time
from functools import wraps
from typing import Tuple, Type

logger = logging.getLogger(__name__)


def retry(
    max_attempts: int = 3,
    delay: float = 5,
    exceptions: Tuple[Type[BaseException], ...] = (Exception,),
):
    """Retry decorator for functions that might fail temporarily.

    Args:
        max_attempts: Maximum number of attempts
        delay: Delay between attempts in seconds
        exceptions: Exception types that trigger a retry

    Returns:
        Decorated function that re-raises the last exception once all
        attempts have failed
    """
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            for attempt in range(1, max_attempts + 1):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    logger.warning(
                        f"Attempt {attempt}/{max_attempts} failed for {func.__name__}: {str(e)}"
                    )
                    if attempt >= max_attempts:
                        logger.error(f"All {max_attempts} attempts failed for {func.__name__}")
                        raise
                    logger.info(f"Retrying in {delay} seconds...")
                    time.sleep(delay)
        return wrapper
    return decorator
