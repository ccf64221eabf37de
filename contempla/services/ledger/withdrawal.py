"""
Withdrawal service.

Cash-out of credit balance. The amount leaves the ledger when the request
is created; a rejected request is refunded.
"""

from decimal import Decimal

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from contempla.config.business_constants import MONEY_QUANTUM
from contempla.config.settings import settings
from contempla.models.enums import CreditTransactionKind, WithdrawalStatus
from contempla.models.withdrawal_request import WithdrawalRequest
from contempla.repositories.withdrawal_repository import WithdrawalRepository
from contempla.services.base_service import BaseService, transaction
from contempla.services.ledger.store import LedgerStore
from contempla.utils.datetime_utils import utc_now
from contempla.utils.exceptions import WithdrawalNotAllowed


def withdrawal_reference(request_id: int) -> str:
    """Ledger reference of a withdrawal request."""
    return f"withdrawal:{request_id}"


class WithdrawalService(BaseService):
    """Withdrawal requests."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)
        self.repo = WithdrawalRepository(session)
        self.ledger = LedgerStore(session)

    @transaction
    async def request_withdrawal(
        self, user_id: int, amount: Decimal, pix_key: str | None = None
    ) -> WithdrawalRequest:
        """
        Create a withdrawal request and debit the balance.

        Raises:
            WithdrawalNotAllowed: Below minimum or another request pending
            InsufficientBalance: Balance lower than the amount
        """
        amount = Decimal(amount).quantize(MONEY_QUANTUM)
        if amount < settings.min_withdrawal_amount:
            raise WithdrawalNotAllowed(
                f"Minimum withdrawal is {settings.min_withdrawal_amount}"
            )
        if await self.repo.has_pending(user_id):
            raise WithdrawalNotAllowed(
                "There is already a pending withdrawal request"
            )

        try:
            async with self.session.begin_nested():
                request = await self.repo.create(
                    user_id=user_id,
                    amount=amount,
                    pix_key=pix_key,
                    status=WithdrawalStatus.PENDING.value,
                )
        except IntegrityError:
            # A concurrent request won the pending slot
            raise WithdrawalNotAllowed(
                "There is already a pending withdrawal request"
            )

        await self.ledger.apply_transaction(
            user_id=user_id,
            amount=-amount,
            kind=CreditTransactionKind.WITHDRAWAL,
            reference_id=withdrawal_reference(request.id),
            description="Withdrawal request",
        )

        self.logger.info(
            f"Withdrawal {request.id} of {amount} requested by user {user_id}"
        )
        return request

    @transaction
    async def reject_withdrawal(
        self, request_id: int, reason: str
    ) -> WithdrawalRequest:
        """
        Reject a pending request and refund its amount.

        Raises:
            WithdrawalNotAllowed: Unknown or already resolved request
        """
        request = await self._get_pending(request_id)
        request.status = WithdrawalStatus.REJECTED.value
        request.reason = reason
        request.processed_at = utc_now()

        await self.ledger.apply_transaction(
            user_id=request.user_id,
            amount=request.amount,
            kind=CreditTransactionKind.REFUND,
            reference_id=withdrawal_reference(request.id),
            description=f"Withdrawal rejected: {reason}",
        )
        await self.session.flush()

        self.logger.info(f"Withdrawal {request.id} rejected: {reason}")
        return request

    @transaction
    async def complete_withdrawal(
        self, request_id: int, payout_ref: str
    ) -> WithdrawalRequest:
        """
        Mark a pending request as paid out.

        Raises:
            WithdrawalNotAllowed: Unknown or already resolved request
        """
        request = await self._get_pending(request_id)
        request.status = WithdrawalStatus.PAID.value
        request.payout_ref = payout_ref
        request.processed_at = utc_now()
        await self.session.flush()

        self.logger.info(f"Withdrawal {request.id} paid ({payout_ref})")
        return request

    async def _get_pending(self, request_id: int) -> WithdrawalRequest:
        request = await self.repo.get_for_update(request_id)
        if request is None:
            raise WithdrawalNotAllowed(f"Withdrawal {request_id} not found")
        if request.status != WithdrawalStatus.PENDING:
            raise WithdrawalNotAllowed(
                f"Withdrawal {request_id} is already {request.status}"
            )
        return request
