"""
Ledger repository.

Data access for UserBalance and CreditTransaction. Balance changes are
single conditional UPDATE statements so concurrent writers for one user
serialise on the row.
"""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from contempla.models.credit_transaction import CreditTransaction
from contempla.models.user_balance import UserBalance
from contempla.repositories.base import BaseRepository


class LedgerRepository(BaseRepository[CreditTransaction]):
    """Credit transaction log and materialised balances."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize ledger repository."""
        super().__init__(CreditTransaction, session)

    async def ensure_balance_row(self, user_id: int) -> None:
        """
        Create the user's balance row if it does not exist yet.

        Runs in a savepoint: a concurrent creator wins and the resulting
        IntegrityError is harmless.
        """
        existing = await self.session.execute(
            select(UserBalance.user_id).where(UserBalance.user_id == user_id)
        )
        if existing.scalar_one_or_none() is not None:
            return

        try:
            async with self.session.begin_nested():
                self.session.add(
                    UserBalance(user_id=user_id, balance=Decimal("0.00"))
                )
        except IntegrityError:
            pass

    async def add_to_balance(
        self, user_id: int, amount: Decimal
    ) -> Decimal | None:
        """
        Atomically apply ``amount`` to the user's balance.

        Args:
            user_id: Balance owner
            amount: Signed delta

        Returns:
            New balance, or None if the guard rejected the change
        """
        stmt = (
            update(UserBalance)
            .where(
                UserBalance.user_id == user_id,
                UserBalance.balance + amount >= 0,
            )
            .values(
                balance=UserBalance.balance + amount,
                updated_at=datetime.now(UTC),
            )
            .returning(UserBalance.balance)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def set_balance(self, user_id: int, balance: Decimal) -> None:
        """Overwrite the cached balance (rebuild from log)."""
        await self.session.execute(
            update(UserBalance)
            .where(UserBalance.user_id == user_id)
            .values(balance=balance, updated_at=datetime.now(UTC))
            .execution_options(synchronize_session=False)
        )

    async def get_balance(self, user_id: int) -> Decimal:
        """Cached balance, zero for users without ledger activity."""
        result = await self.session.execute(
            select(UserBalance.balance).where(UserBalance.user_id == user_id)
        )
        balance = result.scalar_one_or_none()
        return balance if balance is not None else Decimal("0.00")

    async def sum_amounts(self, user_id: int) -> Decimal:
        """Sum of the user's transaction log."""
        result = await self.session.execute(
            select(func.coalesce(func.sum(CreditTransaction.amount), 0)).where(
                CreditTransaction.user_id == user_id
            )
        )
        return Decimal(str(result.scalar() or 0))

    async def list_by_user(
        self, user_id: int, limit: int = 50
    ) -> list[CreditTransaction]:
        """Get a user's transactions, newest first."""
        stmt = (
            select(CreditTransaction)
            .where(CreditTransaction.user_id == user_id)
            .order_by(CreditTransaction.id.desc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_user_ids(self) -> list[int]:
        """Every user with a balance row or a log entry."""
        balances = select(UserBalance.user_id)
        logged = select(CreditTransaction.user_id).distinct()
        result = await self.session.execute(balances.union(logged))
        return sorted(result.scalars().all())
