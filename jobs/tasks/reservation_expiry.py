"""
Reservation expiry task.

Expires PendingPayment seats older than the reservation window so their
capacity can be offered to new joiners.
"""

import dramatiq
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

import jobs.broker  # noqa: F401
from contempla.services.group.coordinator import GroupCoordinator
from jobs.async_runner import run_async, run_locked_job


@dramatiq.actor(max_retries=3, time_limit=120_000)  # 2 min timeout
def expire_reservations() -> None:
    """Expire unpaid reservations past the window."""
    logger.info("Starting reservation expiry sweep...")

    try:
        expired = run_async(_expire_reservations_async())
        logger.info(f"Reservation expiry sweep complete: {expired or 0} expired")

    except Exception as e:
        logger.exception(f"Reservation expiry sweep failed: {e}")
        raise


async def _expire_reservations_async(
    session_maker: async_sessionmaker[AsyncSession] | None = None,
) -> int | None:
    """Async implementation of the expiry sweep."""

    async def work(session: AsyncSession) -> int:
        return await GroupCoordinator(session).expire_stale_reservations()

    return await run_locked_job(
        "reservation_expiry", work, timeout=120, session_maker=session_maker
    )
