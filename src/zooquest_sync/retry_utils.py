# SPDX-License-Identifier: MIT
"""Retry with exponential backoff for network-class failures.

Used around collection fetches in the HTTP transport and, when
``flush_max_retries`` is configured, around queued writes being flushed.
A ``max_retries`` of 0 runs the call once and re-raises its failure.
"""

import asyncio
from collections.abc import Awaitable, Callable
from functools import wraps
from typing import Any, TypeVar

from .logging_config import get_detail_logger


detail_logger = get_detail_logger()

T = TypeVar("T")


def async_retry_with_backoff(
    max_retries: int = 3,
    initial_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    exceptions: tuple[type[BaseException], ...] = (Exception,),
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """Decorator for retrying async functions with exponential backoff.

    Args:
        max_retries: Maximum number of retry attempts (0 disables retrying)
        initial_delay: Initial delay in seconds
        max_delay: Maximum delay in seconds
        exponential_base: Base for exponential backoff calculation
        exceptions: Tuple of exception types to catch and retry

    Returns:
        Decorated async function

    Example:
        >>> @async_retry_with_backoff(max_retries=3, exceptions=(NetworkError,))
        ... async def fetch_animals():
        ...     return await transport.fetch_collection("animals")
    """

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        name = getattr(func, "__name__", repr(func))

        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            delay = initial_delay
            attempt = 0

            while True:
                try:
                    return await func(*args, **kwargs)
                except exceptions as e:
                    if attempt >= max_retries:
                        if max_retries:
                            detail_logger.debug(
                                f"{name} failed after {max_retries} retries: {e}"
                            )
                        raise

                    detail_logger.debug(
                        f"{name} failed (attempt {attempt + 1}/{max_retries}): {e}. "
                        f"Retrying in {delay:.1f}s..."
                    )
                    await asyncio.sleep(delay)
                    delay = min(delay * exponential_base, max_delay)
                    attempt += 1

        return wrapper

    return decorator
