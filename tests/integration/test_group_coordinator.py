"""
Integration tests for group formation.

Tests cover:
- Group creation with the creator at position 1
- Capacity under concurrent joins
- Expired reservations releasing capacity without position reuse
- Confirmation, contemplation and state transitions
"""

import asyncio
from datetime import timedelta

import pytest

from contempla.models.enums import GroupState, PaymentStatus
from contempla.models.group import Group
from contempla.models.participant import Participant
from contempla.repositories.participant_repository import ParticipantRepository
from contempla.services.group.coordinator import (
    GroupCoordinator,
    NoOp,
    ParticipantConfirmed,
    ParticipantUnavailable,
)
from contempla.services.join_service import JoinStatus
from contempla.utils.datetime_utils import utc_now
from contempla.utils.exceptions import (
    AlreadyMember,
    GroupFull,
    GroupNotAcceptingMembers,
    GroupNotFound,
    ParticipantNotFound,
    PlanNotFound,
)


class TestCreateGroup:
    """Test group creation."""

    @pytest.mark.asyncio
    async def test_creator_takes_position_one(self, session, plan):
        group, creator = await GroupCoordinator(session).create_group(plan.id, 42)

        assert group.state == GroupState.FORMING
        assert group.capacity == plan.capacity
        assert group.version == 0
        assert len(group.referral_code) == 8
        assert creator.position == 1
        assert creator.user_id == 42
        assert creator.payment_status == PaymentStatus.PENDING_PAYMENT

    @pytest.mark.asyncio
    async def test_codes_unique_per_group(self, session, plan):
        coordinator = GroupCoordinator(session)
        codes = set()
        for user_id in range(5):
            group, _ = await coordinator.create_group(plan.id, user_id)
            codes.add(group.referral_code)
        assert len(codes) == 5

    @pytest.mark.asyncio
    async def test_unknown_plan(self, session):
        with pytest.raises(PlanNotFound):
            await GroupCoordinator(session).create_group(999, 42)

    @pytest.mark.asyncio
    async def test_unknown_referrer(self, session, plan):
        with pytest.raises(ParticipantNotFound):
            await GroupCoordinator(session).create_group(
                plan.id, 42, referred_by_participant_id=999
            )


class TestJoinGroup:
    """Test admission under the capacity limit."""

    @pytest.mark.asyncio
    async def test_positions_assigned_in_order(self, session, small_plan):
        coordinator = GroupCoordinator(session)
        group, creator = await coordinator.create_group(small_plan.id, 1)

        second = await coordinator.join_group(group.id, 2, creator.id)
        third = await coordinator.join_group(group.id, 3, creator.id)

        assert [second.position, third.position] == [2, 3]
        assert second.referred_by == creator.id

    @pytest.mark.asyncio
    async def test_last_seat_makes_group_full(self, session, small_plan, load):
        coordinator = GroupCoordinator(session)
        group, creator = await coordinator.create_group(small_plan.id, 1)
        await coordinator.join_group(group.id, 2, creator.id)
        assert (await load(Group, group.id)).state == GroupState.FORMING

        await coordinator.join_group(group.id, 3, creator.id)

        stored = await load(Group, group.id)
        assert stored.state == GroupState.FULL
        assert stored.version == 2

    @pytest.mark.asyncio
    async def test_join_full_group(self, session, small_plan):
        coordinator = GroupCoordinator(session)
        group, creator = await coordinator.create_group(small_plan.id, 1)
        await coordinator.join_group(group.id, 2, creator.id)
        await coordinator.join_group(group.id, 3, creator.id)

        with pytest.raises(GroupFull):
            await coordinator.join_group(group.id, 4, creator.id)

    @pytest.mark.asyncio
    async def test_already_member(self, session, small_plan):
        coordinator = GroupCoordinator(session)
        group, creator = await coordinator.create_group(small_plan.id, 1)
        await coordinator.join_group(group.id, 2, creator.id)

        with pytest.raises(AlreadyMember):
            await coordinator.join_group(group.id, 2, creator.id)

    @pytest.mark.asyncio
    async def test_unknown_group(self, session):
        with pytest.raises(GroupNotFound):
            await GroupCoordinator(session).join_group(999, 2, None)

    @pytest.mark.asyncio
    @pytest.mark.slow
    async def test_concurrent_joins_never_exceed_capacity(
        self, session_maker, small_plan, join
    ):
        """Many joiners racing for two seats: exactly two get in."""
        created = await join(small_plan.id, 1)

        results = await asyncio.gather(
            *(join(small_plan.id, user_id, created.referral_code)
              for user_id in range(100, 110))
        )

        joined = [r for r in results if r.status == JoinStatus.JOINED]
        full = [r for r in results if r.status == JoinStatus.GROUP_FULL]
        assert len(joined) == 2
        assert len(full) == 8
        assert sorted(r.position for r in joined) == [2, 3]

        async with session_maker() as s:
            seats = await ParticipantRepository(s).list_by_group(created.group_id)
            group = await s.get(Group, created.group_id)
        assert len(seats) == small_plan.capacity
        assert len({p.position for p in seats}) == len(seats)
        assert group.state == GroupState.FULL


class TestReservationExpiry:
    """Unpaid seats stop counting once their window passes."""

    @pytest.mark.asyncio
    async def test_expired_seat_frees_capacity(
        self, session, small_plan, form_group, age_reservation, join
    ):
        group_id, code, ids = await form_group(small_plan.id, 3)
        await age_reservation(ids[2])

        result = await join(small_plan.id, 77, code)

        assert result.status == JoinStatus.JOINED

    @pytest.mark.asyncio
    async def test_positions_never_reused(
        self, small_plan, form_group, age_reservation, join
    ):
        """The freed seat is offered at the next position, not the old one."""
        group_id, code, ids = await form_group(small_plan.id, 3)
        await age_reservation(ids[2])

        result = await join(small_plan.id, 77, code)

        assert result.position == 4

    @pytest.mark.asyncio
    async def test_full_group_stays_full_when_refilled(
        self, small_plan, form_group, age_reservation, join, load
    ):
        group_id, code, ids = await form_group(small_plan.id, 3)
        await age_reservation(ids[1])
        await join(small_plan.id, 77, code)

        assert (await load(Group, group_id)).state == GroupState.FULL

    @pytest.mark.asyncio
    async def test_expire_stale_reservations(
        self, session, small_plan, form_group, age_reservation, load
    ):
        group_id, code, ids = await form_group(small_plan.id, 2)
        await age_reservation(ids[1])

        expired = await GroupCoordinator(session).expire_stale_reservations()

        assert expired == 1
        assert (await load(Participant, ids[1])).payment_status == PaymentStatus.EXPIRED
        assert (await load(Participant, ids[0])).payment_status == PaymentStatus.PENDING_PAYMENT

    @pytest.mark.asyncio
    async def test_expiry_leaves_paid_seats(
        self, session, small_plan, form_group, pay, load
    ):
        group_id, code, ids = await form_group(small_plan.id, 2)
        await pay(ids[0])

        later = utc_now() + timedelta(days=1)
        expired = await GroupCoordinator(session).expire_stale_reservations(now=later)

        assert expired == 1
        assert (await load(Participant, ids[0])).payment_status == PaymentStatus.PAID


class TestConfirmParticipantPayment:
    """Test the payment state machine of a seat."""

    @pytest.mark.asyncio
    async def test_pending_becomes_paid(self, session, small_plan, form_group):
        group_id, code, ids = await form_group(small_plan.id, 2)

        outcome = await GroupCoordinator(session).confirm_participant_payment(
            ids[1], "pay-x"
        )
        await session.commit()

        assert isinstance(outcome, ParticipantConfirmed)
        assert outcome.participant.payment_status == PaymentStatus.PAID
        assert outcome.participant.external_payment_ref == "pay-x"
        assert outcome.contemplation is None

    @pytest.mark.asyncio
    async def test_second_confirmation_is_noop(self, session, small_plan, form_group):
        group_id, code, ids = await form_group(small_plan.id, 2)
        coordinator = GroupCoordinator(session)
        await coordinator.confirm_participant_payment(ids[1], "pay-x")
        await session.commit()

        outcome = await coordinator.confirm_participant_payment(ids[1], "pay-x")
        await session.rollback()

        assert isinstance(outcome, NoOp)

    @pytest.mark.asyncio
    async def test_late_payment_unavailable(
        self, session, small_plan, form_group, age_reservation, load
    ):
        group_id, code, ids = await form_group(small_plan.id, 2)
        await age_reservation(ids[1])

        outcome = await GroupCoordinator(session).confirm_participant_payment(
            ids[1], "pay-late"
        )
        await session.commit()

        assert isinstance(outcome, ParticipantUnavailable)
        assert outcome.status == PaymentStatus.EXPIRED
        assert (await load(Participant, ids[1])).payment_status == PaymentStatus.EXPIRED

    @pytest.mark.asyncio
    async def test_unknown_participant(self, session):
        with pytest.raises(ParticipantNotFound):
            await GroupCoordinator(session).confirm_participant_payment(999, "pay")

    @pytest.mark.asyncio
    async def test_last_payment_completes_group(
        self, session, small_plan, form_group, load
    ):
        """Payment order does not decide the winner: position 1 does."""
        group_id, code, ids = await form_group(small_plan.id, 3)
        coordinator = GroupCoordinator(session)

        outcomes = []
        for participant_id in reversed(ids):
            outcomes.append(
                await coordinator.confirm_participant_payment(
                    participant_id, f"pay-{participant_id}"
                )
            )
            await session.commit()

        assert all(o.contemplation is None for o in outcomes[:-1])
        contemplation = outcomes[-1].contemplation
        assert contemplation.contemplated_participant_id == ids[0]

        group = await load(Group, group_id)
        assert group.state == GroupState.COMPLETED
        assert group.contemplated_participant_id == ids[0]
        assert group.contemplated_at is not None

    @pytest.mark.asyncio
    async def test_completed_group_rejects_joins(
        self, session, pair_plan, form_group, pay
    ):
        group_id, code, ids = await form_group(pair_plan.id, 2)
        for participant_id in ids:
            await pay(participant_id)

        with pytest.raises(GroupNotAcceptingMembers):
            await GroupCoordinator(session).join_group(group_id, 99, ids[0])

    @pytest.mark.asyncio
    async def test_forming_group_not_completed_by_payments(
        self, session, small_plan, form_group, pay, load
    ):
        """All seats paid but one still empty: no contemplation."""
        group_id, code, ids = await form_group(small_plan.id, 2)
        for participant_id in ids:
            await pay(participant_id)

        group = await load(Group, group_id)
        assert group.state == GroupState.FORMING
        assert group.contemplated_participant_id is None
