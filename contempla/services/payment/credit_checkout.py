"""
Credit checkout.

Pays an entry fee from the user's credit balance. The debit is committed
first, then the seat is confirmed through the regular payment handler
under the reference ``credits:<participant_id>``, so the usual
deduplication applies.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from contempla.config.business_constants import CREDIT_PAYMENT_REF_PREFIX
from contempla.models.enums import CreditTransactionKind
from contempla.repositories.group_repository import GroupRepository
from contempla.repositories.participant_repository import ParticipantRepository
from contempla.repositories.plan_repository import PlanRepository
from contempla.services.base_service import BaseService
from contempla.services.ledger.store import LedgerStore
from contempla.services.payment.handler import (
    ConfirmationResult,
    ConfirmationStatus,
    PaymentConfirmationHandler,
)
from contempla.utils.exceptions import ParticipantNotFound


def credit_payment_ref(participant_id: int) -> str:
    """Payment reference used for entry fees paid with credits."""
    return f"{CREDIT_PAYMENT_REF_PREFIX}{participant_id}"


class CreditCheckout(BaseService):
    """Entry fee payment from credit balance."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)
        self.participant_repo = ParticipantRepository(session)
        self.group_repo = GroupRepository(session)
        self.plan_repo = PlanRepository(session)
        self.ledger = LedgerStore(session)
        self.handler = PaymentConfirmationHandler(session)

    async def pay_entry(self, participant_id: int) -> ConfirmationResult:
        """
        Debit the entry fee and confirm the seat.

        Raises:
            ParticipantNotFound: Unknown participant
            InsufficientBalance: Not enough credits
        """
        ref = credit_payment_ref(participant_id)

        try:
            participant = await self.participant_repo.get_by_id(participant_id)
            if participant is None:
                raise ParticipantNotFound(
                    f"Participant {participant_id} not found"
                )
            group = await self.group_repo.get_by_id(participant.group_id)
            plan = await self.plan_repo.get_by_id(group.plan_id)
            user_id = participant.user_id
            entry_price = plan.entry_price

            await self.ledger.apply_transaction(
                user_id=user_id,
                amount=-entry_price,
                kind=CreditTransactionKind.ENTRY_CHARGE,
                reference_id=ref,
                description=f"Entry fee for group {group.id}",
            )
            await self.commit()
        except Exception:
            await self.rollback()
            raise

        result = await self.handler.handle_confirmation(
            ref, participant_id, entry_price
        )

        if result.status == ConfirmationStatus.ALREADY_PROCESSED:
            # The seat was already paid with credits; undo this debit
            try:
                await self.ledger.apply_transaction(
                    user_id=user_id,
                    amount=entry_price,
                    kind=CreditTransactionKind.REFUND,
                    reference_id=ref,
                    description="Repeated credit checkout reversed",
                )
                await self.commit()
            except Exception:
                await self.rollback()
                raise

        return result
