"""
Job scheduler.

Enqueues the periodic dramatiq jobs with APScheduler and serves the health
endpoints. Workers run separately: ``dramatiq jobs.worker``.
"""

import asyncio
import signal

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from loguru import logger

from contempla.config.database import async_session_maker
from contempla.config.logging import setup_logging
from contempla.config.settings import settings
from jobs.health import start_health_server, stop_health_server
from jobs.tasks.outbox_relay import relay_outbox_events
from jobs.tasks.payment_reconciliation import reconcile_payments
from jobs.tasks.reservation_expiry import expire_reservations


def build_scheduler() -> AsyncIOScheduler:
    """Scheduler with every periodic job registered."""
    scheduler = AsyncIOScheduler(timezone="UTC")

    scheduler.add_job(
        expire_reservations.send,
        "interval",
        seconds=settings.expiry_sweep_interval_seconds,
        id="expire_reservations",
        max_instances=1,
        coalesce=True,
    )
    scheduler.add_job(
        reconcile_payments.send,
        "interval",
        seconds=settings.reconciliation_interval_seconds,
        id="reconcile_payments",
        max_instances=1,
        coalesce=True,
    )
    scheduler.add_job(
        relay_outbox_events.send,
        "interval",
        seconds=settings.outbox_relay_interval_seconds,
        id="relay_outbox_events",
        max_instances=1,
        coalesce=True,
    )
    return scheduler


async def main() -> None:
    """Run the scheduler until SIGINT/SIGTERM."""
    setup_logging("scheduler")

    scheduler = build_scheduler()
    scheduler.start()
    logger.info(f"Scheduler started with {len(scheduler.get_jobs())} jobs")

    runner = await start_health_server(
        scheduler, async_session_maker, port=settings.health_check_port
    )

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    try:
        await stop.wait()
    finally:
        logger.info("Shutting down scheduler...")
        scheduler.shutdown(wait=False)
        await stop_health_server(runner)


if __name__ == "__main__":
    asyncio.run(main())
