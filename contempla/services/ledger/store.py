"""
Ledger store.

Per-user credit balance plus an append-only transaction log. The balance
row is a cache of the log: every change is one conditional
``balance = balance + amount`` update and one log insert in the same
transaction, so the cache can always be rebuilt from the log.
"""

from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from contempla.config.business_constants import MONEY_QUANTUM
from contempla.models.credit_transaction import CreditTransaction
from contempla.models.enums import (
    CREDIT_KINDS,
    DEBIT_KINDS,
    CreditTransactionKind,
)
from contempla.repositories.ledger_repository import LedgerRepository
from contempla.services.base_service import BaseService
from contempla.utils.exceptions import InsufficientBalance, InvariantViolation


@dataclass(frozen=True)
class BalanceCheck:
    """Cached balance compared with the log."""

    user_id: int
    cached_balance: Decimal
    computed_balance: Decimal

    @property
    def consistent(self) -> bool:
        return self.cached_balance == self.computed_balance


def validate_amount(amount: Decimal, kind: CreditTransactionKind) -> Decimal:
    """
    Check the sign and precision of a ledger amount.

    Credits are positive, debits negative, and amounts are whole cents.

    Raises:
        ValueError: If the amount does not fit the kind
    """
    amount = Decimal(amount)
    if amount == 0:
        raise ValueError("Ledger amount must be non-zero")
    if amount != amount.quantize(MONEY_QUANTUM):
        raise ValueError(f"Ledger amount {amount} has sub-cent precision")
    if kind in CREDIT_KINDS and amount < 0:
        raise ValueError(f"{kind.value} must be a positive amount")
    if kind in DEBIT_KINDS and amount > 0:
        raise ValueError(f"{kind.value} must be a negative amount")
    return amount


class LedgerStore(BaseService):
    """
    Credit ledger.

    ``apply_transaction`` does not commit; it joins the caller's
    transaction so ledger effects land together with the business change
    that caused them.
    """

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)
        self.repo = LedgerRepository(session)

    async def apply_transaction(
        self,
        user_id: int,
        amount: Decimal,
        kind: CreditTransactionKind,
        reference_id: str | None,
        description: str | None = None,
    ) -> CreditTransaction:
        """
        Apply a signed amount to the user's balance and log it.

        Args:
            user_id: Balance owner
            amount: Signed amount (credits > 0, debits < 0)
            kind: Transaction kind
            reference_id: Payment ref, withdrawal id, order id...
            description: Free-form note

        Returns:
            The appended CreditTransaction

        Raises:
            InsufficientBalance: Debit larger than the balance
            ValueError: Amount sign or precision does not fit ``kind``
        """
        amount = validate_amount(amount, kind)

        await self.repo.ensure_balance_row(user_id)
        new_balance = await self.repo.add_to_balance(user_id, amount)

        if new_balance is None:
            if amount < 0:
                self.logger.info(
                    f"Insufficient balance for user {user_id}",
                    extra={"user_id": user_id, "amount": str(amount)},
                )
                raise InsufficientBalance(
                    f"Balance too low for a debit of {-amount}"
                )
            # A credit can only be rejected if the stored balance is negative
            self.logger.critical(
                f"Credit rejected for user {user_id}: stored balance is negative"
            )
            raise InvariantViolation(f"Negative balance for user {user_id}")

        tx = CreditTransaction(
            user_id=user_id,
            kind=kind.value,
            amount=amount,
            balance_after=new_balance,
            reference=reference_id,
            description=description,
        )
        self.session.add(tx)
        await self.session.flush()

        self.logger.info(
            f"Ledger {kind.value} {amount} for user {user_id}",
            extra={
                "user_id": user_id,
                "kind": kind.value,
                "amount": str(amount),
                "balance_after": str(new_balance),
                "reference": reference_id,
            },
        )
        return tx

    async def get_balance(self, user_id: int) -> Decimal:
        """Current (cached) balance."""
        return await self.repo.get_balance(user_id)

    async def get_history(
        self, user_id: int, limit: int = 50
    ) -> list[CreditTransaction]:
        """Latest transactions, newest first."""
        return await self.repo.list_by_user(user_id, limit=limit)

    async def compute_balance_from_log(self, user_id: int) -> Decimal:
        """Balance as the sum of the log."""
        total = await self.repo.sum_amounts(user_id)
        return total.quantize(MONEY_QUANTUM)

    async def verify_balance(self, user_id: int) -> BalanceCheck:
        """Compare the cached balance with the log."""
        cached = await self.repo.get_balance(user_id)
        computed = await self.compute_balance_from_log(user_id)
        check = BalanceCheck(
            user_id=user_id,
            cached_balance=Decimal(cached).quantize(MONEY_QUANTUM),
            computed_balance=computed,
        )
        if not check.consistent:
            self.logger.error(
                f"Balance mismatch for user {user_id}: "
                f"cached={check.cached_balance} log={check.computed_balance}"
            )
        return check

    async def rebuild_balance(self, user_id: int) -> Decimal:
        """
        Reset the cached balance to the sum of the log.

        Does not commit.

        Raises:
            InvariantViolation: If the log itself sums to a negative balance
        """
        computed = await self.compute_balance_from_log(user_id)
        if computed < 0:
            self.logger.critical(
                f"Transaction log of user {user_id} sums to {computed}"
            )
            raise InvariantViolation(f"Negative log total for user {user_id}")

        await self.repo.ensure_balance_row(user_id)
        await self.repo.set_balance(user_id, computed)
        self.logger.warning(f"Rebuilt balance of user {user_id}: {computed}")
        return computed

    async def list_user_ids(self) -> list[int]:
        """Users with any ledger activity."""
        return await self.repo.list_user_ids()
