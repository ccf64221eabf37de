"""
Distributed lock over Redis.

Keeps periodic jobs from running concurrently on several workers. Without
a Redis client the lock is a no-op and the job relies on database
constraints alone.
"""

import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import redis.asyncio as redis
from loguru import logger

# Delete the key only if we still own it
_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


class LockNotAcquired(Exception):
    """Raised when another worker holds the lock."""
    pass


class DistributedLock:
    """
    Redis SET NX lock with expiry.

    Usage:
        lock = DistributedLock(redis_client=redis_client)
        async with lock.lock("reservation_expiry", timeout=120):
            ...
    """

    def __init__(
        self,
        redis_client: redis.Redis | None,
        prefix: str = "contempla:lock:",
    ) -> None:
        self.redis_client = redis_client
        self.prefix = prefix

    @asynccontextmanager
    async def lock(self, name: str, timeout: int = 60) -> AsyncIterator[None]:
        """
        Hold the lock ``name`` for the duration of the block.

        Args:
            name: Lock name
            timeout: Seconds after which Redis frees the lock anyway

        Raises:
            LockNotAcquired: If the lock is held elsewhere
        """
        if self.redis_client is None:
            yield
            return

        key = f"{self.prefix}{name}"
        token = uuid.uuid4().hex
        acquired = await self.redis_client.set(key, token, nx=True, ex=timeout)
        if not acquired:
            logger.info(f"Lock {name} is held by another worker, skipping")
            raise LockNotAcquired(name)

        try:
            yield
        finally:
            try:
                await self.redis_client.eval(_RELEASE_SCRIPT, 1, key, token)
            except redis.RedisError as e:
                # Expiry frees the key anyway
                logger.warning(f"Failed to release lock {name}: {e}")
