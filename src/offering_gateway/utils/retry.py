from typing import Callable, Any, Optional, Tuple, Type
import asyncio
import random
import functools
from ..utils.logging import get_logger

logger = get_logger(__name__)


def backoff_delay(attempt: int, base_delay: float, max_delay: float,
                  exponential_base: float, jitter: bool) -> float:
    """Delay before retry number `attempt` (1-based), capped at max_delay, with ±25% jitter"""
    delay = min(base_delay * (exponential_base ** (attempt - 1)), max_delay)
    if jitter:
        delay += random.uniform(-delay * 0.25, delay * 0.25)
    return max(0.0, min(delay, max_delay))


def async_retry_with_backoff(
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    jitter: bool = True,
    exceptions: Tuple[Type[BaseException], ...] = (Exception,)
) -> Callable:
    """
    Decorator for async functions to retry with exponential backoff.

    Only `exceptions` are retried. An error carrying `retryable = False`
    is raised at once even when its type is listed.

    Args:
        max_retries (int): Maximum number of retry attempts
        base_delay (float): Initial delay between retries in seconds
        max_delay (float): Maximum delay between retries in seconds
        exponential_base (float): Base for exponential backoff calculation
        jitter (bool): Whether to add random jitter to delay
        exceptions (tuple): Exception types to catch and retry on
    """
    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            attempt = 0
            waited = 0.0
            while True:
                try:
                    return await func(*args, **kwargs)
                except exceptions as e:
                    attempt += 1
                    if not getattr(e, "retryable", True):
                        raise
                    if attempt > max_retries:
                        logger.error(f"{func.__name__} failed after {max_retries} retries ({waited:.2f}s): {e}")
                        raise
                    delay = backoff_delay(attempt, base_delay, max_delay, exponential_base, jitter)
                    waited += delay
                    logger.warning(f"{func.__name__} failed (attempt {attempt}): {e}. Retrying in {delay:.2f}s")
                    await asyncio.sleep(delay)

        return wrapper

    return decorator
