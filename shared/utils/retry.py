"""Retry decorator with exponential backoff.

HTTP 429 responses that carry a Retry-After header wait for the
server-provided delay instead of the computed backoff.
"""

import functools
import logging
import random
import time
from typing import Callable, Optional, Tuple, Type

import requests

logger = logging.getLogger(__name__)


def _retry_after_seconds(error: Exception) -> Optional[float]:
    """Seconds requested by a 429 Retry-After header, if any."""
    if not isinstance(error, requests.HTTPError):
        return None
    response = error.response
    if response is None or response.status_code != 429:
        return None
    value = response.headers.get("Retry-After")
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def retry_with_backoff(
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    exceptions: Tuple[Type[BaseException], ...] = (Exception,),
) -> Callable:
    """Retry the wrapped function on `exceptions`.

    The delay doubles on every attempt (base_delay, 2x, 4x, ...) with a
    little jitter, capped at max_delay. The last error is re-raised once
    max_retries retries have failed.
    """

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            for attempt in range(max_retries + 1):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    if attempt == max_retries:
                        logger.error(f"{func.__name__} failed after {max_retries} retries: {e}")
                        raise

                    delay = _retry_after_seconds(e)
                    if delay is None:
                        delay = base_delay * (2 ** attempt) + random.uniform(0, 0.1 * base_delay)
                    delay = min(delay, max_delay)

                    logger.warning(
                        f"{func.__name__} attempt {attempt + 1}/{max_retries + 1} failed: {e}. "
                        f"Retrying in {delay:.1f}s"
                    )
                    time.sleep(delay)

        return wrapper

    return decorator
