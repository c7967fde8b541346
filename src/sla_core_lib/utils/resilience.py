"""Resilience utilities for provider calls.

This module provides retry policies for transient transport failures when
talking to text-generation backends (a local inference host that is still
loading a model, a dropped connection, a slow cloud endpoint).
"""

import asyncio
import logging
from typing import Any, Callable, Tuple, Type, TypeVar

import aiohttp
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Failures worth retrying: the request may not have reached the backend
TRANSIENT_ERRORS: Tuple[Type[BaseException], ...] = (
    aiohttp.ClientConnectionError,
    asyncio.TimeoutError,
)


def create_custom_retry(
    max_attempts: int = 3,
    min_wait: float = 1,
    max_wait: float = 10,
    multiplier: float = 1,
    retry_on: Tuple[Type[BaseException], ...] = TRANSIENT_ERRORS,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Create a retry decorator for provider requests.

    Args:
        max_attempts: Maximum number of attempts, including the first
        min_wait: Minimum wait time between retries (seconds)
        max_wait: Maximum wait time between retries (seconds)
        multiplier: Exponential backoff multiplier
        retry_on: Exception types that trigger a retry; anything else propagates
            immediately

    Returns:
        A retry decorator configured with the specified parameters

    Example:
        ```python
        provider_retry = create_custom_retry(max_attempts=settings.llm.max_retries)

        @provider_retry
        async def call_backend():
            ...
        ```
    """
    return retry(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=multiplier, min=min_wait, max=max_wait),
        retry=retry_if_exception_type(retry_on),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )


async def call_with_retry(
    func: Callable[..., Any],
    *args: Any,
    max_attempts: int = 3,
    min_wait: float = 1,
    max_wait: float = 10,
    **kwargs: Any,
) -> Any:
    """Await ``func(*args, **kwargs)`` under a transient-failure retry policy."""
    policy = create_custom_retry(max_attempts=max_attempts, min_wait=min_wait, max_wait=max_wait)
    return await policy(func)(*args, **kwargs)
