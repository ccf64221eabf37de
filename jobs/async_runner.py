"""
Async runner for dramatiq tasks.

Runs async job bodies from synchronous dramatiq actors. Each worker thread
keeps its own event loop, and each job gets a NullPool engine so no
connection outlives the loop it was created on.
"""

import asyncio
import threading
from collections.abc import AsyncIterator, Awaitable, Callable, Coroutine
from contextlib import asynccontextmanager
from typing import Any, TypeVar

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

from contempla.config.database import build_engine, build_session_maker
from contempla.config.settings import settings
from contempla.utils.distributed_lock import DistributedLock, LockNotAcquired
from contempla.utils.redis_utils import get_redis_client

T = TypeVar("T")

# Thread-local storage for event loops
_thread_local = threading.local()


def get_event_loop() -> asyncio.AbstractEventLoop:
    """
    Get or create event loop for current thread.

    Reusing one loop per thread prevents "Future attached to a different
    loop" errors.
    """
    loop = getattr(_thread_local, "loop", None)
    if loop is None or loop.is_closed():
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        _thread_local.loop = loop
        logger.debug(
            f"Created new event loop for thread {threading.current_thread().name}"
        )
    return loop


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """
    Run async coroutine in the thread's event loop.

    Args:
        coro: Async coroutine to run

    Returns:
        Result of the coroutine
    """
    loop = get_event_loop()
    try:
        return loop.run_until_complete(coro)
    except Exception as e:
        logger.exception(f"Error running async coroutine: {e}")
        raise


@asynccontextmanager
async def create_local_session() -> AsyncIterator[AsyncSession]:
    """
    Create a database session bound to a throwaway NullPool engine.

    Yields:
        AsyncSession bound to the current event loop
    """
    local_engine = build_engine(poolclass=NullPool, echo=False)
    local_session_maker = build_session_maker(local_engine)

    try:
        async with local_session_maker() as session:
            yield session
    finally:
        await local_engine.dispose()


async def run_locked_job(
    lock_name: str,
    work: Callable[[AsyncSession], Awaitable[T]],
    timeout: int = 300,
    session_maker: async_sessionmaker[AsyncSession] | None = None,
) -> T | None:
    """
    Run ``work`` under a distributed lock with its own session.

    Args:
        lock_name: Lock name shared by all workers
        work: Job body receiving a session
        timeout: Lock expiry in seconds
        session_maker: Session factory override (tests)

    Returns:
        Result of ``work``, or None if another worker holds the lock
    """
    redis_client = None
    if settings.broker_backend == "redis":
        try:
            redis_client = await get_redis_client()
        except Exception as e:
            logger.warning(f"Failed to create Redis client for lock: {e}")

    lock = DistributedLock(redis_client=redis_client)

    try:
        async with lock.lock(lock_name, timeout=timeout):
            if session_maker is not None:
                async with session_maker() as session:
                    return await work(session)
            async with create_local_session() as session:
                return await work(session)
    except LockNotAcquired:
        return None
    finally:
        if redis_client:
            await redis_client.aclose()
