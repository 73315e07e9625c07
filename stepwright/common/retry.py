"""Retry with exponential backoff for transient browser errors."""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from typing import TypeVar

from playwright.async_api import Error as PlaywrightError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Substrings of error messages that indicate a network hiccup rather than a
# permanent failure.
TRANSIENT_ERROR_PATTERNS = (
    "net::err_",
    "network",
    "timeout",
    "econnrefused",
    "econnreset",
    "enetunreach",
    "etimedout",
    "socket hang up",
    "temporary failure in name resolution",
)


def is_transient_error(error: BaseException) -> bool:
    """Return True for browser errors worth retrying."""
    if not isinstance(error, PlaywrightError):
        return False
    message = str(error).lower()
    return any(pattern in message for pattern in TRANSIENT_ERROR_PATTERNS)


def backoff_delay(
    attempt: int,
    base_delay: float,
    backoff_factor: float = 2.0,
    max_delay: float = 30.0,
) -> float:
    """Delay in seconds before retry number ``attempt`` (1-based), with ±10% jitter."""
    delay = base_delay * backoff_factor ** (attempt - 1)
    jitter = delay * 0.2 * (random.random() - 0.5)
    return min(delay + jitter, max_delay)


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    attempts: int,
    base_delay: float = 1.0,
    is_retryable: Callable[[BaseException], bool] = is_transient_error,
) -> T:
    """Await ``operation`` up to ``attempts`` times.

    Non-retryable errors and the error of the final attempt propagate
    unchanged.

    Args:
        operation: Zero-argument coroutine factory.
        attempts: Total number of attempts, at least 1.
        base_delay: Delay in seconds before the first retry.
        is_retryable: Predicate deciding whether an error is transient.

    Returns:
        The result of the first successful attempt.
    """
    attempt = 1
    while True:
        try:
            return await operation()
        except Exception as e:
            if attempt >= attempts or not is_retryable(e):
                raise
            delay = backoff_delay(attempt, base_delay)
            logger.info(
                f"Transient error on attempt {attempt}/{attempts}, "
                f"retrying in {delay:.2f}s: {e}"
            )
            await asyncio.sleep(delay)
            attempt += 1
