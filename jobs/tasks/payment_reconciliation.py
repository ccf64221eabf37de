"""
Payment reconciliation task.

Explicit recovery path for payment references whose processing failed or
got stuck: each eligible reference is reclaimed and processed again.
Commission and ledger effects stay idempotent across the rerun.
"""

import dramatiq
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

import jobs.broker  # noqa: F401
from contempla.config.settings import settings
from contempla.services.payment.handler import (
    ConfirmationResult,
    PaymentConfirmationHandler,
)
from jobs.async_runner import run_async, run_locked_job


@dramatiq.actor(max_retries=3, time_limit=300_000)  # 5 min timeout
def reconcile_payments() -> None:
    """Reprocess failed or stale payment references."""
    logger.info("Starting payment reconciliation...")

    try:
        results = run_async(_reconcile_payments_async()) or []
        logger.info(f"Payment reconciliation complete: {len(results)} reference(s)")

    except Exception as e:
        logger.exception(f"Payment reconciliation failed: {e}")
        raise


async def _reconcile_payments_async(
    session_maker: async_sessionmaker[AsyncSession] | None = None,
) -> list[ConfirmationResult] | None:
    """Async implementation of payment reconciliation."""

    async def work(session: AsyncSession) -> list[ConfirmationResult]:
        handler = PaymentConfirmationHandler(session)
        results = await handler.reconcile_pending(limit=settings.outbox_batch_size)
        for result in results:
            logger.info(
                f"Reconciled {result.external_ref}: {result.status.value}"
            )
        return results

    return await run_locked_job(
        "payment_reconciliation", work, timeout=300, session_maker=session_maker
    )
