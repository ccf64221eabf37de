"""
Plan service.

Catalog management. Plans are created once and never updated.
"""

from decimal import ROUND_DOWN, Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from contempla.config.business_constants import (
    DEFAULT_ENTRY_FRACTION,
    DEFAULT_GROUP_CAPACITY,
    MIN_GROUP_CAPACITY,
    MONEY_QUANTUM,
)
from contempla.models.plan import Plan
from contempla.repositories.plan_repository import PlanRepository
from contempla.services.base_service import BaseService, transaction
from contempla.utils.exceptions import PlanNotFound


def entry_price_for(full_price: Decimal, entry_fraction: Decimal) -> Decimal:
    """Entry fee as a fraction of the full price, rounded down to cents."""
    return (Decimal(full_price) * Decimal(entry_fraction)).quantize(
        MONEY_QUANTUM, rounding=ROUND_DOWN
    )


class PlanService(BaseService):
    """Plan catalog."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)
        self.repo = PlanRepository(session)

    @transaction
    async def create_plan(
        self,
        name: str,
        full_price: Decimal,
        entry_fraction: Decimal = DEFAULT_ENTRY_FRACTION,
        capacity: int = DEFAULT_GROUP_CAPACITY,
        duration_days: int | None = None,
    ) -> Plan:
        """
        Create a plan.

        Raises:
            ValueError: Invalid price, fraction or capacity
        """
        full_price = Decimal(full_price).quantize(MONEY_QUANTUM)
        entry_fraction = Decimal(entry_fraction)

        if full_price <= 0:
            raise ValueError("Full price must be positive")
        if not 0 < entry_fraction <= 1:
            raise ValueError("Entry fraction must be in (0, 1]")
        if capacity < MIN_GROUP_CAPACITY:
            raise ValueError(f"Capacity must be at least {MIN_GROUP_CAPACITY}")

        entry_price = entry_price_for(full_price, entry_fraction)
        if entry_price <= 0:
            raise ValueError("Entry price rounds to zero")

        plan = await self.repo.create(
            name=name,
            full_price=full_price,
            entry_price=entry_price,
            capacity=capacity,
            duration_days=duration_days,
        )
        self.logger.info(
            f"Plan {plan.id} created: {name} "
            f"(entry {entry_price} of {full_price}, capacity {capacity})"
        )
        return plan

    async def get_plan(self, plan_id: int) -> Plan:
        """
        Get a plan.

        Raises:
            PlanNotFound: Unknown plan
        """
        plan = await self.repo.get_by_id(plan_id)
        if plan is None:
            raise PlanNotFound(f"Plan {plan_id} not found")
        return plan

    async def list_plans(self) -> list[Plan]:
        return await self.repo.list_ordered()
