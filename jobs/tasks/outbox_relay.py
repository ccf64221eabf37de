"""
Outbox relay task.

Publishes ContemplationEvent and CommissionCredited facts to the event
sink.
"""

import dramatiq
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

import jobs.broker  # noqa: F401
from contempla.services.outbox_relay import OutboxRelay
from jobs.async_runner import run_async, run_locked_job


@dramatiq.actor(max_retries=3, time_limit=60_000)  # 1 min timeout
def relay_outbox_events() -> None:
    """Publish one batch of outbox events."""
    try:
        published = run_async(_relay_outbox_events_async())
        if published:
            logger.info(f"Outbox relay published {published} event(s)")

    except Exception as e:
        logger.exception(f"Outbox relay failed: {e}")
        raise


async def _relay_outbox_events_async(
    session_maker: async_sessionmaker[AsyncSession] | None = None,
) -> int | None:
    """Async implementation of the outbox relay."""

    async def work(session: AsyncSession) -> int:
        return await OutboxRelay(session).relay()

    return await run_locked_job(
        "outbox_relay", work, timeout=60, session_maker=session_maker
    )
