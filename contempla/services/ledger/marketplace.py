"""Marketplace purchases paid with credits."""

from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from contempla.config.business_constants import MONEY_QUANTUM
from contempla.models.credit_transaction import CreditTransaction
from contempla.models.enums import CreditTransactionKind
from contempla.services.base_service import BaseService, transaction
from contempla.services.ledger.store import LedgerStore


class MarketplaceService(BaseService):
    """Spends credit balance on marketplace orders."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)
        self.ledger = LedgerStore(session)

    @transaction
    async def spend_credits(
        self, user_id: int, amount: Decimal, order_reference: str
    ) -> CreditTransaction:
        """
        Debit ``amount`` for an order.

        Raises:
            InsufficientBalance: Balance lower than the amount
            ValueError: Non-positive amount
        """
        amount = Decimal(amount).quantize(MONEY_QUANTUM)
        if amount <= 0:
            raise ValueError("Order amount must be positive")

        return await self.ledger.apply_transaction(
            user_id=user_id,
            amount=-amount,
            kind=CreditTransactionKind.MARKETPLACE_DEBIT,
            reference_id=order_reference,
            description=f"Marketplace order {order_reference}",
        )
