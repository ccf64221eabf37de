"""
Payment confirmation handler.

Single entry point for payment provider confirmations. Every reference is
claimed once in ``processed_payment_refs`` (unique key) and committed
before any effect is applied, so a redelivered webhook short-circuits with
ALREADY_PROCESSED. A reference whose processing failed stays claimed and
is only picked up again by the explicit reconciliation path.
"""

from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal
from enum import StrEnum

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from contempla.config.business_constants import MONEY_QUANTUM
from contempla.config.settings import settings
from contempla.models.enums import CreditTransactionKind, PaymentRefStatus
from contempla.models.participant import Participant
from contempla.repositories.group_repository import GroupRepository
from contempla.repositories.participant_repository import ParticipantRepository
from contempla.repositories.payment_ref_repository import PaymentRefRepository
from contempla.repositories.plan_repository import PlanRepository
from contempla.services.base_service import BaseService, log_operation
from contempla.services.commission.engine import CommissionEngine
from contempla.services.group.coordinator import (
    GroupCoordinator,
    NoOp,
    ParticipantConfirmed,
    ParticipantUnavailable,
)
from contempla.services.ledger.store import LedgerStore
from contempla.utils.datetime_utils import utc_now
from contempla.utils.exceptions import InvariantViolation
from contempla.utils.retry import retry_on_conflict


class ConfirmationStatus(StrEnum):
    """Outcome of a confirmation."""

    CONFIRMED = "confirmed"
    ALREADY_PROCESSED = "already_processed"
    CONVERTED_TO_CREDIT = "converted_to_credit"
    AMOUNT_MISMATCH = "amount_mismatch"
    PARTICIPANT_NOT_FOUND = "participant_not_found"
    NOT_RECLAIMABLE = "not_reclaimable"
    FAILED = "failed"


@dataclass
class ConfirmationResult:
    """Typed result returned to the payment boundary."""

    status: ConfirmationStatus
    external_ref: str
    participant_id: int | None = None
    commissions_created: int = 0
    contemplated_participant_id: int | None = None
    message: str | None = None


class PaymentConfirmationHandler(BaseService):
    """Processes each payment reference exactly once."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)
        self.refs = PaymentRefRepository(session)
        self.plan_repo = PlanRepository(session)
        self.group_repo = GroupRepository(session)
        self.participant_repo = ParticipantRepository(session)
        self.coordinator = GroupCoordinator(session)
        self.commissions = CommissionEngine(session)
        self.ledger = LedgerStore(session)

    @log_operation
    async def handle_confirmation(
        self,
        external_ref: str,
        participant_id: int,
        amount: Decimal | None = None,
    ) -> ConfirmationResult:
        """
        Handle one provider confirmation.

        Args:
            external_ref: Provider payment reference (idempotency key)
            participant_id: Seat the payment is for
            amount: Amount the provider reports, checked against the plan

        Returns:
            ConfirmationResult; never raises for business outcomes
        """
        try:
            await self.refs.insert_processing(external_ref, participant_id, amount)
            await self.commit()
        except IntegrityError:
            await self.rollback()
            self.logger.info(f"Payment {external_ref} already processed")
            return ConfirmationResult(
                status=ConfirmationStatus.ALREADY_PROCESSED,
                external_ref=external_ref,
                participant_id=participant_id,
            )

        return await self._process(external_ref, participant_id, amount)

    async def reconcile(self, external_ref: str) -> ConfirmationResult:
        """
        Re-run a Failed, or stuck Processing, reference.

        The reference is reclaimed with a conditional update, so concurrent
        reconcilers cannot both process it.
        """
        stale_before = utc_now() - timedelta(
            minutes=settings.stale_processing_minutes
        )
        try:
            reclaimed = await self.refs.reclaim(external_ref, stale_before)
            await self.commit()
        except Exception:
            await self.rollback()
            raise

        if not reclaimed:
            return ConfirmationResult(
                status=ConfirmationStatus.NOT_RECLAIMABLE,
                external_ref=external_ref,
                message="Reference is not failed or stale",
            )

        record = await self.refs.get_by_id(external_ref)
        await self.session.refresh(record)
        self.logger.warning(
            f"Reconciling payment {external_ref} (attempt {record.attempts})"
        )
        return await self._process(
            external_ref, record.participant_id, record.amount
        )

    async def reconcile_pending(self, limit: int = 100) -> list[ConfirmationResult]:
        """Reconcile every eligible reference, oldest first."""
        stale_before = utc_now() - timedelta(
            minutes=settings.stale_processing_minutes
        )
        refs = await self.refs.list_reclaimable(stale_before, limit=limit)
        await self.rollback()

        results = []
        for ref in refs:
            results.append(await self.reconcile(ref))
        return results

    # ------------------------------------------------------------------

    async def _process(
        self,
        external_ref: str,
        participant_id: int,
        amount: Decimal | None,
    ) -> ConfirmationResult:
        try:
            return await retry_on_conflict(
                lambda: self._process_once(external_ref, participant_id, amount),
                max_attempts=settings.confirmation_max_attempts,
                operation_name=f"confirm {external_ref}",
                on_retry=self.rollback,
            )
        except Exception as e:
            await self.rollback()
            if isinstance(e, InvariantViolation):
                self.logger.critical(
                    f"Invariant violated while confirming {external_ref}: {e}"
                )
            else:
                self.logger.error(
                    f"Confirmation of {external_ref} failed",
                    extra={"external_ref": external_ref, "error": str(e)},
                    exc_info=True,
                )
            await self._mark_failed(external_ref, e)
            return ConfirmationResult(
                status=ConfirmationStatus.FAILED,
                external_ref=external_ref,
                participant_id=participant_id,
                message=str(e),
            )

    async def _process_once(
        self,
        external_ref: str,
        participant_id: int,
        amount: Decimal | None,
    ) -> ConfirmationResult:
        participant = await self.participant_repo.get_by_id(participant_id)
        if participant is None:
            return await self._reject(
                external_ref,
                participant_id,
                ConfirmationStatus.PARTICIPANT_NOT_FOUND,
                f"Participant {participant_id} not found",
            )

        group = await self.group_repo.get_by_id(participant.group_id)
        plan = await self.plan_repo.get_by_id(group.plan_id)
        entry_price = plan.entry_price

        if amount is not None and (
            Decimal(amount).quantize(MONEY_QUANTUM) != entry_price
        ):
            return await self._reject(
                external_ref,
                participant_id,
                ConfirmationStatus.AMOUNT_MISMATCH,
                f"Paid {amount}, entry price is {entry_price}",
            )

        outcome = await self.coordinator.confirm_participant_payment(
            participant_id, external_ref
        )

        result = ConfirmationResult(
            status=ConfirmationStatus.CONFIRMED,
            external_ref=external_ref,
            participant_id=participant_id,
        )

        if isinstance(outcome, ParticipantConfirmed):
            created = await self.commissions.apply_cascade(
                external_ref, participant_id, entry_price
            )
            result.commissions_created = len(created)
            if outcome.contemplation is not None:
                result.contemplated_participant_id = (
                    outcome.contemplation.contemplated_participant_id
                )

        elif isinstance(outcome, NoOp) and (
            outcome.participant.external_payment_ref == external_ref
        ):
            # Replay of the payment that confirmed the seat
            created = await self.commissions.apply_cascade(
                external_ref, participant_id, entry_price
            )
            result.commissions_created = len(created)

        elif isinstance(outcome, NoOp | ParticipantUnavailable):
            reason = (
                "duplicate payment"
                if isinstance(outcome, NoOp)
                else f"payment for {outcome.status.value} seat"
            )
            await self._convert_to_credit(
                outcome.participant, external_ref, entry_price, reason
            )
            result.status = ConfirmationStatus.CONVERTED_TO_CREDIT
            result.message = f"Converted to credit: {reason}"

        await self.refs.set_status(
            external_ref, PaymentRefStatus.COMPLETED, outcome=result.status.value
        )
        await self.commit()

        self.logger.info(
            f"Payment {external_ref} processed: {result.status.value}",
            extra={
                "external_ref": external_ref,
                "participant_id": participant_id,
                "commissions": result.commissions_created,
            },
        )
        return result

    async def _convert_to_credit(
        self,
        participant: Participant,
        external_ref: str,
        amount: Decimal,
        reason: str,
    ) -> None:
        await self.ledger.apply_transaction(
            user_id=participant.user_id,
            amount=amount,
            kind=CreditTransactionKind.REFUND,
            reference_id=external_ref,
            description=f"Entry fee converted to credit ({reason})",
        )
        self.logger.warning(
            f"Payment {external_ref} for participant {participant.id} "
            f"converted to credit: {reason}"
        )

    async def _reject(
        self,
        external_ref: str,
        participant_id: int,
        status: ConfirmationStatus,
        message: str,
    ) -> ConfirmationResult:
        await self.refs.set_status(
            external_ref,
            PaymentRefStatus.REJECTED,
            outcome=status.value,
            error=message,
        )
        await self.commit()
        self.logger.warning(f"Payment {external_ref} rejected: {message}")
        return ConfirmationResult(
            status=status,
            external_ref=external_ref,
            participant_id=participant_id,
            message=message,
        )

    async def _mark_failed(self, external_ref: str, error: Exception) -> None:
        try:
            await self.refs.set_status(
                external_ref,
                PaymentRefStatus.FAILED,
                outcome=ConfirmationStatus.FAILED.value,
                error=f"{type(error).__name__}: {error}",
            )
            await self.commit()
        except Exception as e:
            # The ref stays Processing; reconciliation picks it up once stale
            await self.rollback()
            self.logger.error(f"Could not mark {external_ref} as failed: {e}")
