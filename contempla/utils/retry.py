"""
Retry helpers for store operations.

Conflict retries use a short exponential backoff; the operation is rebuilt
from scratch on each attempt by ``op_factory`` so every attempt runs in a
fresh transaction.
"""

import asyncio
import random
from collections.abc import Awaitable, Callable
from typing import TypeVar

from loguru import logger

from contempla.config.settings import settings
from contempla.utils.exceptions import TransientStoreError, is_retryable

T = TypeVar("T")


def backoff_delay(attempt: int, base: float | None = None) -> float:
    """
    Delay before retry number ``attempt`` (0-based).

    Exponential with jitter: base, 2*base, 4*base... capped at 2 seconds.
    """
    if base is None:
        base = settings.conflict_backoff_seconds
    delay = min(base * (2 ** attempt), 2.0)
    return delay * (0.5 + random.random() / 2)


async def retry_on_conflict(
    op_factory: Callable[[], Awaitable[T]],
    max_attempts: int,
    operation_name: str = "store operation",
    on_retry: Callable[[], Awaitable[None]] | None = None,
) -> T:
    """
    Run ``op_factory()`` until it succeeds or attempts run out.

    Only retryable errors (see ``is_retryable``) are retried, everything
    else propagates immediately.

    Args:
        op_factory: Returns a fresh awaitable for each attempt
        max_attempts: Attempts before giving up
        operation_name: Operation name for logging
        on_retry: Awaited after a failed attempt (e.g. session rollback)

    Returns:
        Result of the first successful attempt

    Raises:
        TransientStoreError: If every attempt hit a retryable error
    """
    last_error: Exception | None = None

    for attempt in range(max_attempts):
        try:
            result = await op_factory()
            if attempt > 0:
                logger.debug(
                    f"{operation_name} succeeded on attempt {attempt + 1}"
                )
            return result

        except Exception as e:
            if not is_retryable(e):
                raise
            last_error = e

            if on_retry is not None:
                await on_retry()

            if attempt < max_attempts - 1:
                delay = backoff_delay(attempt)
                logger.debug(
                    f"{operation_name} conflict on attempt "
                    f"{attempt + 1}/{max_attempts}: {type(e).__name__}. "
                    f"Retrying in {delay:.3f}s"
                )
                await asyncio.sleep(delay)

    logger.warning(
        f"{operation_name} failed after {max_attempts} attempts: {last_error}"
    )
    raise TransientStoreError(
        f"{operation_name} failed after {max_attempts} attempts"
    ) from last_error


async def retry_transient(
    op_factory: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    operation_name: str = "operation",
    base_delay: float = 0.2,
) -> T:
    """
    Retry an operation that may end in TransientStoreError.

    Used by callers sitting above a conflict loop, where exhausting the
    inner retries means the store is overloaded rather than contended.

    Raises:
        TransientStoreError: The last error, once attempts run out
    """
    for attempt in range(max_attempts):
        try:
            return await op_factory()
        except TransientStoreError:
            if attempt == max_attempts - 1:
                raise
            delay = backoff_delay(attempt, base=base_delay)
            logger.warning(
                f"{operation_name} hit a transient store error "
                f"(attempt {attempt + 1}/{max_attempts}), retrying in {delay:.2f}s"
            )
            await asyncio.sleep(delay)

    raise TransientStoreError(f"{operation_name} made no attempts")
