"""
Integration tests for payment confirmation.

Tests cover:
- Full group lifecycle: ten payments, contemplation and commissions
- Duplicate webhook deliveries
- Late and duplicate payments converted to credit
- Amount mismatch and unknown participants
- Reconciliation of failed references
"""

import asyncio
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from contempla.models.enums import (
    CreditTransactionKind,
    GroupState,
    OutboxEventType,
    PaymentRefStatus,
    PaymentStatus,
)
from contempla.models.group import Group
from contempla.models.participant import Participant
from contempla.models.processed_payment_ref import ProcessedPaymentRef
from contempla.repositories.commission_repository import CommissionRepository
from contempla.repositories.ledger_repository import LedgerRepository
from contempla.repositories.outbox_repository import OutboxRepository
from contempla.services.ledger.store import LedgerStore
from contempla.services.payment.handler import (
    ConfirmationStatus,
    PaymentConfirmationHandler,
)

CREATOR = 1000


class TestGroupLifecycle:
    """Ten members pay and the group completes."""

    @pytest.mark.asyncio
    async def test_ten_payments_complete_group(
        self, session, plan, form_group, pay, load
    ):
        group_id, code, ids = await form_group(plan.id, 10, first_user_id=CREATOR)

        results = [await pay(pid) for pid in reversed(ids)]

        assert all(r.status == ConfirmationStatus.CONFIRMED for r in results)
        assert results[-1].contemplated_participant_id == ids[0]
        assert all(r.contemplated_participant_id is None for r in results[:-1])

        group = await load(Group, group_id)
        assert group.state == GroupState.COMPLETED
        assert group.contemplated_participant_id == ids[0]

        # Every joiner was referred by the creator: nine level-1 commissions
        commissions = await CommissionRepository(session).list_by_payee(CREATOR)
        assert len(commissions) == 9
        assert {c.level for c in commissions} == {1}
        assert sum(r.commissions_created for r in results) == 9

        check = await LedgerStore(session).verify_balance(CREATOR)
        assert check.cached_balance == Decimal("90.00")
        assert check.consistent

        contemplations = await OutboxRepository(session).list_by_type(
            OutboxEventType.CONTEMPLATION.value
        )
        assert len(contemplations) == 1
        assert contemplations[0].aggregate_id == group_id
        assert contemplations[0].payload["contemplated_participant_id"] == ids[0]

    @pytest.mark.asyncio
    async def test_amount_checked_against_entry_price(
        self, plan, form_group, pay
    ):
        group_id, code, ids = await form_group(plan.id, 2)

        result = await pay(ids[1], amount=Decimal("100.00"))

        assert result.status == ConfirmationStatus.CONFIRMED
        assert result.commissions_created == 1


class TestDuplicateDelivery:
    """The same reference is processed once."""

    @pytest.mark.asyncio
    async def test_same_ref_twice(self, session, plan, form_group, pay):
        group_id, code, ids = await form_group(plan.id, 2, first_user_id=CREATOR)

        first = await pay(ids[1], "pay-abc")
        second = await pay(ids[1], "pay-abc")

        assert first.status == ConfirmationStatus.CONFIRMED
        assert second.status == ConfirmationStatus.ALREADY_PROCESSED

        history = await LedgerRepository(session).list_by_user(CREATOR)
        assert len(history) == 1
        assert len(await CommissionRepository(session).list_by_source("pay-abc")) == 1

    @pytest.mark.asyncio
    @pytest.mark.slow
    async def test_concurrent_deliveries_of_same_ref(
        self, session_maker, plan, form_group, pay
    ):
        """Concurrent webhooks for one reference: one wins, the rest short-circuit."""
        group_id, code, ids = await form_group(plan.id, 2, first_user_id=CREATOR)

        results = await asyncio.gather(
            *(pay(ids[1], "pay-same") for _ in range(5))
        )

        statuses = [r.status for r in results]
        assert statuses.count(ConfirmationStatus.CONFIRMED) == 1
        assert statuses.count(ConfirmationStatus.ALREADY_PROCESSED) == 4
        async with session_maker() as s:
            assert len(await LedgerRepository(s).list_by_user(CREATOR)) == 1
            assert len(await CommissionRepository(s).list_by_source("pay-same")) == 1

    @pytest.mark.asyncio
    async def test_ref_recorded_completed(self, session, plan, form_group, pay):
        group_id, code, ids = await form_group(plan.id, 2)

        await pay(ids[1], "pay-abc")

        record = await session.get(ProcessedPaymentRef, "pay-abc")
        assert record.status == PaymentRefStatus.COMPLETED
        assert record.outcome == ConfirmationStatus.CONFIRMED.value
        assert record.attempts == 1

    @pytest.mark.asyncio
    async def test_second_ref_for_paid_seat_becomes_credit(
        self, session, plan, form_group, pay
    ):
        """A seat paid twice under different references refunds the second."""
        group_id, code, ids = await form_group(plan.id, 2, first_user_id=CREATOR)
        payer_user = CREATOR + 1

        await pay(ids[1], "pay-1")
        result = await pay(ids[1], "pay-2")

        assert result.status == ConfirmationStatus.CONVERTED_TO_CREDIT
        ledger = LedgerStore(session)
        assert await ledger.get_balance(payer_user) == Decimal("100.00")
        # No second commission for the referrer
        assert await ledger.get_balance(CREATOR) == Decimal("10.00")


class TestLatePayment:
    """Payments for seats that are no longer held."""

    @pytest.mark.asyncio
    async def test_payment_after_expiry_becomes_credit(
        self, session, plan, form_group, pay, age_reservation, load
    ):
        group_id, code, ids = await form_group(plan.id, 2, first_user_id=CREATOR)
        await age_reservation(ids[1])

        result = await pay(ids[1], "pay-late")

        assert result.status == ConfirmationStatus.CONVERTED_TO_CREDIT
        participant = await load(Participant, ids[1])
        assert participant.payment_status == PaymentStatus.EXPIRED

        history = await LedgerRepository(session).list_by_user(CREATOR + 1)
        assert [(tx.kind, tx.amount) for tx in history] == [
            (CreditTransactionKind.REFUND.value, Decimal("100.00"))
        ]
        assert await CommissionRepository(session).list_by_source("pay-late") == []


class TestRejectedPayments:
    """Confirmations that cannot apply are recorded as rejected."""

    @pytest.mark.asyncio
    async def test_amount_mismatch(self, session, plan, form_group, pay, load):
        group_id, code, ids = await form_group(plan.id, 2)

        result = await pay(ids[1], "pay-short", amount=Decimal("90.00"))

        assert result.status == ConfirmationStatus.AMOUNT_MISMATCH
        participant = await load(Participant, ids[1])
        assert participant.payment_status == PaymentStatus.PENDING_PAYMENT
        record = await session.get(ProcessedPaymentRef, "pay-short")
        assert record.status == PaymentRefStatus.REJECTED

    @pytest.mark.asyncio
    async def test_unknown_participant(self, session, pay):
        result = await pay(424242, "pay-ghost")

        assert result.status == ConfirmationStatus.PARTICIPANT_NOT_FOUND
        record = await session.get(ProcessedPaymentRef, "pay-ghost")
        assert record.status == PaymentRefStatus.REJECTED

    @pytest.mark.asyncio
    async def test_rejected_ref_not_reprocessed(self, plan, form_group, pay):
        group_id, code, ids = await form_group(plan.id, 2)
        await pay(ids[1], "pay-short", amount=Decimal("90.00"))

        again = await pay(ids[1], "pay-short", amount=Decimal("100.00"))

        assert again.status == ConfirmationStatus.ALREADY_PROCESSED


class TestReconciliation:
    """Failed references are retried only through reconciliation."""

    @pytest.mark.asyncio
    async def test_failure_marks_ref_failed(
        self, session_maker, plan, form_group, load
    ):
        group_id, code, ids = await form_group(plan.id, 2)

        async with session_maker() as s:
            handler = PaymentConfirmationHandler(s)
            handler.commissions.apply_cascade = AsyncMock(
                side_effect=RuntimeError("ledger offline")
            )
            result = await handler.handle_confirmation("pay-boom", ids[1])

        assert result.status == ConfirmationStatus.FAILED
        record = await load(ProcessedPaymentRef, "pay-boom")
        assert record.status == PaymentRefStatus.FAILED
        assert "ledger offline" in record.error
        # The seat change was rolled back with the cascade
        participant = await load(Participant, ids[1])
        assert participant.payment_status == PaymentStatus.PENDING_PAYMENT

    @pytest.mark.asyncio
    async def test_failed_ref_redelivery_is_deduplicated(
        self, session_maker, plan, form_group, pay
    ):
        group_id, code, ids = await form_group(plan.id, 2)
        async with session_maker() as s:
            handler = PaymentConfirmationHandler(s)
            handler.commissions.apply_cascade = AsyncMock(
                side_effect=RuntimeError("ledger offline")
            )
            await handler.handle_confirmation("pay-boom", ids[1])

        again = await pay(ids[1], "pay-boom")

        assert again.status == ConfirmationStatus.ALREADY_PROCESSED

    @pytest.mark.asyncio
    async def test_reconcile_completes_failed_ref(
        self, session_maker, plan, form_group, load
    ):
        group_id, code, ids = await form_group(plan.id, 2, first_user_id=CREATOR)
        async with session_maker() as s:
            handler = PaymentConfirmationHandler(s)
            handler.commissions.apply_cascade = AsyncMock(
                side_effect=RuntimeError("ledger offline")
            )
            await handler.handle_confirmation("pay-boom", ids[1])

        async with session_maker() as s:
            result = await PaymentConfirmationHandler(s).reconcile("pay-boom")

        assert result.status == ConfirmationStatus.CONFIRMED
        assert result.commissions_created == 1
        record = await load(ProcessedPaymentRef, "pay-boom")
        assert record.status == PaymentRefStatus.COMPLETED
        assert record.attempts == 2
        participant = await load(Participant, ids[1])
        assert participant.payment_status == PaymentStatus.PAID

    @pytest.mark.asyncio
    async def test_completed_ref_not_reclaimable(
        self, session_maker, plan, form_group, pay
    ):
        group_id, code, ids = await form_group(plan.id, 2)
        await pay(ids[1], "pay-ok")

        async with session_maker() as s:
            result = await PaymentConfirmationHandler(s).reconcile("pay-ok")

        assert result.status == ConfirmationStatus.NOT_RECLAIMABLE

    @pytest.mark.asyncio
    async def test_reconcile_pending(self, session_maker, plan, form_group):
        group_id, code, ids = await form_group(plan.id, 3)
        async with session_maker() as s:
            handler = PaymentConfirmationHandler(s)
            handler.commissions.apply_cascade = AsyncMock(
                side_effect=RuntimeError("ledger offline")
            )
            await handler.handle_confirmation("pay-a", ids[1])
            await handler.handle_confirmation("pay-b", ids[2])

        async with session_maker() as s:
            results = await PaymentConfirmationHandler(s).reconcile_pending()

        assert sorted(r.external_ref for r in results) == ["pay-a", "pay-b"]
        assert all(r.status == ConfirmationStatus.CONFIRMED for r in results)
