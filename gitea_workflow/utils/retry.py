"""Retry decorator for handling Gitea API rate limits and transient errors.

This module provides a decorator that implements bounded retry logic for Gitea API calls,
including respect for the retry-after header and exponential backoff.
"""

import asyncio
import functools
from typing import Any, Callable, TypeVar

import httpx
import structlog

from gitea_workflow.utils.constants import DEFAULT_MAX_RETRIES, RETRYABLE_STATUS_CODES

logger = structlog.get_logger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


def _retry_after_seconds(response: httpx.Response, function_name: str) -> float | None:
    retry_after = response.headers.get("retry-after")
    if not retry_after:
        return None
    try:
        return float(retry_after)
    except ValueError:
        logger.warning("Invalid retry-after header value", retry_after=retry_after, function=function_name)
        return None


def retry_on_transient_error(
    max_retries: int | None = None,
    initial_delay: float = 1.0,
    max_delay: float = 30.0,
    exponential_base: float = 2.0,
) -> Callable[[F], F]:
    """Decorator for retrying async functions when they encounter rate limits or transient errors.

    This decorator handles:
    - Rate limit responses (429)
    - Gateway and availability errors (502, 503, 504)
    - Transport errors such as timeouts and dropped connections

    Any other error is raised immediately. Retries are always bounded: once the
    limit is reached the last error is raised so the caller can record it.

    Args:
        max_retries: Maximum number of retry attempts. When None, the ``max_retries``
            attribute of the bound instance is used, falling back to DEFAULT_MAX_RETRIES.
        initial_delay: Initial delay in seconds between retries (default: 1.0)
        max_delay: Maximum delay in seconds between retries (default: 30.0)
        exponential_base: Base for exponential backoff calculation (default: 2.0)

    Returns:
        Decorated function with retry logic
    """

    def decorator(func: F) -> F:
        if not asyncio.iscoroutinefunction(func):
            raise TypeError(f"Function {func.__name__} decorated with @retry_on_transient_error must be async.")

        @functools.wraps(func)
        async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
            retries = max_retries
            if retries is None:
                retries = getattr(args[0], "max_retries", DEFAULT_MAX_RETRIES) if args else DEFAULT_MAX_RETRIES
            delay = initial_delay

            for attempt in range(retries + 1):
                try:
                    return await func(*args, **kwargs)
                except httpx.HTTPStatusError as e:
                    if e.response.status_code not in RETRYABLE_STATUS_CODES:
                        raise
                    if attempt == retries:
                        logger.error(
                            "Max retries reached for transient HTTP error",
                            function=func.__name__,
                            attempt=attempt + 1,
                            status_code=e.response.status_code,
                        )
                        raise
                    wait_time = _retry_after_seconds(e.response, func.__name__)
                    if wait_time is None:
                        wait_time = delay
                    wait_time = min(wait_time, max_delay)
                    logger.warning(
                        f"Transient HTTP error, retrying in {wait_time} seconds",
                        function=func.__name__,
                        attempt=attempt + 1,
                        max_retries=retries,
                        status_code=e.response.status_code,
                        wait_time=wait_time,
                    )
                except httpx.TransportError as e:
                    if attempt == retries:
                        logger.error(
                            "Max retries reached for transport error",
                            function=func.__name__,
                            attempt=attempt + 1,
                            error=str(e),
                            error_type=type(e).__name__,
                        )
                        raise
                    wait_time = min(delay, max_delay)
                    logger.warning(
                        f"Transport error, retrying in {wait_time} seconds",
                        function=func.__name__,
                        attempt=attempt + 1,
                        max_retries=retries,
                        error_type=type(e).__name__,
                        wait_time=wait_time,
                    )

                await asyncio.sleep(wait_time)
                delay = min(delay * exponential_base, max_delay)

        return async_wrapper  # type: ignore

    return decorator
