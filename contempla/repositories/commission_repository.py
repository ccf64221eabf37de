"""
Commission repository.

Data access layer for Commission model.
"""

from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from contempla.models.commission import Commission
from contempla.repositories.base import BaseRepository


class CommissionRepository(BaseRepository[Commission]):
    """Commission repository with specific queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize commission repository."""
        super().__init__(Commission, session)

    async def key_exists(
        self, source_payment_id: str, payee_user_id: int, level: int
    ) -> bool:
        """Check the idempotency key ``(source, payee, level)``."""
        return await self.exists(
            source_payment_id=source_payment_id,
            payee_user_id=payee_user_id,
            level=level,
        )

    async def list_by_source(self, source_payment_id: str) -> list[Commission]:
        """Get commissions produced by one payment, by level."""
        stmt = (
            select(Commission)
            .where(Commission.source_payment_id == source_payment_id)
            .order_by(Commission.level)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_by_payee(self, payee_user_id: int) -> list[Commission]:
        """Get commissions earned by a user, oldest first."""
        stmt = (
            select(Commission)
            .where(Commission.payee_user_id == payee_user_id)
            .order_by(Commission.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def total_for_payee(self, payee_user_id: int) -> Decimal:
        """Total commission earned by a user."""
        result = await self.session.execute(
            select(func.coalesce(func.sum(Commission.amount), 0)).where(
                Commission.payee_user_id == payee_user_id
            )
        )
        return Decimal(str(result.scalar() or 0))
