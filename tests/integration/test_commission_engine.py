"""
Integration tests for the commission cascade.

Tests cover:
- Level 1 and level 2 credits
- Idempotence per source payment
- One payout per payer and level
- Referral cycles detected
"""

from decimal import Decimal

import pytest
from sqlalchemy import update

from contempla.models.enums import OutboxEventType
from contempla.models.participant import Participant
from contempla.repositories.commission_repository import CommissionRepository
from contempla.repositories.outbox_repository import OutboxRepository
from contempla.services.commission.engine import CommissionEngine
from contempla.services.group.coordinator import GroupCoordinator
from contempla.services.ledger.store import LedgerStore
from contempla.utils.exceptions import InvariantViolation, ParticipantNotFound

ENTRY = Decimal("100.00")


@pytest.fixture
def referral_chain(session, plan):
    """
    Two groups linked by a referral.

    Group A: influencer (user 1) at position 1.
    Group B: referrer (user 2) created through the influencer's referral,
    payer (user 3) joined through the referrer.
    """

    async def _build():
        coordinator = GroupCoordinator(session)
        _, influencer = await coordinator.create_group(plan.id, 1)
        group_b, referrer = await coordinator.create_group(
            plan.id, 2, referred_by_participant_id=influencer.id
        )
        payer = await coordinator.join_group(group_b.id, 3, referrer.id)
        return influencer, referrer, payer

    return _build


class TestCascade:
    """Test commission levels."""

    @pytest.mark.asyncio
    async def test_two_levels_credited(self, session, referral_chain):
        influencer, referrer, payer = await referral_chain()

        created = await CommissionEngine(session).apply_cascade(
            "pay-1", payer.id, ENTRY
        )
        await session.commit()

        assert [(c.level, c.payee_user_id, c.amount) for c in created] == [
            (1, 2, Decimal("10.00")),
            (2, 1, Decimal("5.00")),
        ]
        ledger = LedgerStore(session)
        assert await ledger.get_balance(2) == Decimal("10.00")
        assert await ledger.get_balance(1) == Decimal("5.00")

    @pytest.mark.asyncio
    async def test_no_referrer_no_commission(self, session, referral_chain):
        influencer, referrer, payer = await referral_chain()

        created = await CommissionEngine(session).apply_cascade(
            "pay-1", influencer.id, ENTRY
        )

        assert created == []

    @pytest.mark.asyncio
    async def test_depth_limited(self, session, referral_chain):
        """With depth 1 only the direct referrer is paid."""
        influencer, referrer, payer = await referral_chain()

        created = await CommissionEngine(session, max_depth=1).apply_cascade(
            "pay-1", payer.id, ENTRY
        )

        assert [c.level for c in created] == [1]

    @pytest.mark.asyncio
    async def test_events_recorded(self, session, referral_chain):
        influencer, referrer, payer = await referral_chain()

        await CommissionEngine(session).apply_cascade("pay-1", payer.id, ENTRY)
        await session.commit()

        events = await OutboxRepository(session).list_by_type(
            OutboxEventType.COMMISSION_CREDITED.value
        )
        assert [e.payload["amount"] for e in events] == ["10.00", "5.00"]
        assert events[0].payload["source_payment_id"] == "pay-1"

    @pytest.mark.asyncio
    async def test_unknown_payer(self, session):
        with pytest.raises(ParticipantNotFound):
            await CommissionEngine(session).apply_cascade("pay-1", 999, ENTRY)


class TestIdempotence:
    """Replays never pay twice."""

    @pytest.mark.asyncio
    async def test_same_source_replayed(self, session, referral_chain):
        influencer, referrer, payer = await referral_chain()
        engine = CommissionEngine(session)
        await engine.apply_cascade("pay-1", payer.id, ENTRY)
        await session.commit()

        replay = await engine.apply_cascade("pay-1", payer.id, ENTRY)
        await session.commit()

        assert replay == []
        assert len(await CommissionRepository(session).list_by_source("pay-1")) == 2
        assert await LedgerStore(session).get_balance(2) == Decimal("10.00")

    @pytest.mark.asyncio
    async def test_second_payment_of_same_payer(self, session, referral_chain):
        """Another reference for the same payer hits the per-level constraint."""
        influencer, referrer, payer = await referral_chain()
        engine = CommissionEngine(session)
        await engine.apply_cascade("pay-1", payer.id, ENTRY)
        await session.commit()

        other = await engine.apply_cascade("pay-2", payer.id, ENTRY)
        await session.commit()

        assert other == []
        assert await CommissionRepository(session).total_for_payee(2) == Decimal("10.00")
        assert (await LedgerStore(session).verify_balance(2)).consistent


class TestReferralCycle:
    """Corrupt referral chains fail closed."""

    @pytest.mark.asyncio
    async def test_cycle_detected(self, session, referral_chain):
        influencer, referrer, payer = await referral_chain()
        # influencer -> referrer -> influencer
        await session.execute(
            update(Participant)
            .where(Participant.id == influencer.id)
            .values(referred_by=referrer.id)
        )
        await session.commit()

        rates = {1: Decimal("0.10"), 2: Decimal("0.05"), 3: Decimal("0.01")}
        engine = CommissionEngine(session, rates=rates, max_depth=3)

        with pytest.raises(InvariantViolation):
            await engine.apply_cascade("pay-1", payer.id, ENTRY)
        await session.rollback()

        assert await CommissionRepository(session).list_by_source("pay-1") == []
