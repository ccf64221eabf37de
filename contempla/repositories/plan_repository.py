"""
Plan repository.

Data access layer for Plan model.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from contempla.models.plan import Plan
from contempla.repositories.base import BaseRepository


class PlanRepository(BaseRepository[Plan]):
    """Plan repository."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize plan repository."""
        super().__init__(Plan, session)

    async def list_ordered(self) -> list[Plan]:
        """Get all plans, cheapest entry first."""
        stmt = select(Plan).order_by(Plan.entry_price, Plan.id)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
