"""
Health check server for scheduler monitoring.

Liveness reports the process is up; readiness additionally requires the
scheduler to be running and the database to answer.
"""

import asyncio

from aiohttp import web
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from loguru import logger
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

SCHEDULER = web.AppKey("scheduler", AsyncIOScheduler)
SESSION_MAKER = web.AppKey("session_maker", async_sessionmaker[AsyncSession])


async def health_handler(request: web.Request) -> web.Response:
    """Scheduler status with its jobs."""
    scheduler = request.app.get(SCHEDULER)
    if scheduler is None:
        return web.json_response(
            {"status": "unhealthy", "error": "Scheduler not initialized"},
            status=503,
        )

    jobs = scheduler.get_jobs()
    return web.json_response(
        {
            "status": "healthy" if scheduler.running else "stopped",
            "scheduler_running": scheduler.running,
            "jobs_count": len(jobs),
            "jobs": [
                {
                    "id": job.id,
                    "next_run_time": (
                        job.next_run_time.isoformat() if job.next_run_time else None
                    ),
                }
                for job in jobs
            ],
        },
        status=200 if scheduler.running else 503,
    )


async def readiness_handler(request: web.Request) -> web.Response:
    """Ready when the scheduler runs and the database answers."""
    scheduler = request.app.get(SCHEDULER)
    if scheduler is None or not scheduler.running:
        return web.json_response(
            {"status": "not_ready", "ready": False, "reason": "scheduler"},
            status=503,
        )

    session_maker = request.app.get(SESSION_MAKER)
    if session_maker is not None:
        try:
            async with session_maker() as session:
                await session.execute(text("SELECT 1"))
        except Exception as e:
            logger.warning(f"Readiness database check failed: {e}")
            return web.json_response(
                {"status": "not_ready", "ready": False, "reason": "database"},
                status=503,
            )

    return web.json_response({"status": "ready", "ready": True})


async def liveness_handler(request: web.Request) -> web.Response:
    """The process is alive."""
    return web.json_response({"status": "alive", "alive": True})


def create_health_app(
    scheduler: AsyncIOScheduler | None,
    session_maker: async_sessionmaker[AsyncSession] | None = None,
) -> web.Application:
    """Build the health application."""
    app = web.Application()
    if scheduler is not None:
        app[SCHEDULER] = scheduler
    if session_maker is not None:
        app[SESSION_MAKER] = session_maker

    app.router.add_get("/health", health_handler)
    app.router.add_get("/health/ready", readiness_handler)
    app.router.add_get("/health/live", liveness_handler)
    return app


async def start_health_server(
    scheduler: AsyncIOScheduler,
    session_maker: async_sessionmaker[AsyncSession] | None = None,
    host: str = "0.0.0.0",
    port: int = 8081,
) -> web.AppRunner:
    """
    Start health check server.

    Returns:
        AppRunner for cleanup
    """
    runner = web.AppRunner(create_health_app(scheduler, session_maker))
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()

    logger.info(f"Health check server started on {host}:{port}")
    return runner


async def stop_health_server(runner: web.AppRunner, timeout: int = 5) -> None:
    """Stop health check server gracefully."""
    logger.info("Stopping health check server...")
    try:
        await asyncio.wait_for(runner.cleanup(), timeout=timeout)
    except TimeoutError:
        logger.warning(f"Health check server cleanup timed out after {timeout}s")
