"""
Processed payment reference repository.

Data access layer for the payment deduplication table.
"""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import and_, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from contempla.models.enums import PaymentRefStatus
from contempla.models.processed_payment_ref import ProcessedPaymentRef
from contempla.repositories.base import BaseRepository


class PaymentRefRepository(BaseRepository[ProcessedPaymentRef]):
    """Deduplication records for payment confirmations."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize payment ref repository."""
        super().__init__(ProcessedPaymentRef, session)

    async def insert_processing(
        self,
        external_ref: str,
        participant_id: int,
        amount: Decimal | None,
    ) -> None:
        """
        Insert a Processing record.

        Raises:
            IntegrityError: If the reference was already recorded
        """
        now = datetime.now(UTC)
        self.session.add(
            ProcessedPaymentRef(
                external_ref=external_ref,
                participant_id=participant_id,
                amount=amount,
                status=PaymentRefStatus.PROCESSING.value,
                attempts=1,
                created_at=now,
                updated_at=now,
            )
        )
        await self.session.flush()

    async def set_status(
        self,
        external_ref: str,
        status: PaymentRefStatus,
        outcome: str | None = None,
        error: str | None = None,
    ) -> None:
        """Record the processing result."""
        await self.session.execute(
            update(ProcessedPaymentRef)
            .where(ProcessedPaymentRef.external_ref == external_ref)
            .values(
                status=status.value,
                outcome=outcome,
                error=error,
                updated_at=datetime.now(UTC),
            )
            .execution_options(synchronize_session=False)
        )

    async def reclaim(self, external_ref: str, stale_before: datetime) -> bool:
        """
        Move a Failed, or stale Processing, record back to Processing.

        Conditional update, so only one reconciler can win a record.

        Returns:
            True if this caller now owns the record
        """
        stmt = (
            update(ProcessedPaymentRef)
            .where(
                ProcessedPaymentRef.external_ref == external_ref,
                self._reclaimable(stale_before),
            )
            .values(
                status=PaymentRefStatus.PROCESSING.value,
                attempts=ProcessedPaymentRef.attempts + 1,
                error=None,
                updated_at=datetime.now(UTC),
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def list_reclaimable(
        self, stale_before: datetime, limit: int = 100
    ) -> list[str]:
        """References eligible for reconciliation, oldest first."""
        stmt = (
            select(ProcessedPaymentRef.external_ref)
            .where(self._reclaimable(stale_before))
            .order_by(ProcessedPaymentRef.updated_at)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    def _reclaimable(stale_before: datetime):
        return or_(
            ProcessedPaymentRef.status == PaymentRefStatus.FAILED.value,
            and_(
                ProcessedPaymentRef.status == PaymentRefStatus.PROCESSING.value,
                ProcessedPaymentRef.updated_at < stale_before,
            ),
        )
