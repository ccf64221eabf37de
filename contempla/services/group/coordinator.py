"""
Group coordinator.

Owns the group lifecycle: creation, admission under the capacity limit,
payment confirmation and contemplation, and expiry of unpaid seats.

Admission is serialised per group: the group row is locked, active seats
are counted, and the insert is guarded by the group ``version`` plus the
unique ``(group_id, position)`` constraint. Losing any of those guards
rolls the attempt back and starts over.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from contempla.config.business_constants import (
    MSG_ALREADY_MEMBER,
    MSG_GROUP_FULL,
    MSG_GROUP_NOT_ACCEPTING,
)
from contempla.config.settings import settings
from contempla.models.enums import (
    ADMITTING_GROUP_STATES,
    GroupState,
    PaymentStatus,
    can_transition_group,
    can_transition_payment,
)
from contempla.models.group import Group
from contempla.models.participant import Participant
from contempla.repositories.group_repository import GroupRepository
from contempla.repositories.outbox_repository import OutboxRepository
from contempla.repositories.participant_repository import ParticipantRepository
from contempla.repositories.plan_repository import PlanRepository
from contempla.services.base_service import BaseService
from contempla.services.events import ContemplationEvent, record_event
from contempla.services.group.contemplation import (
    is_ready_for_contemplation,
    select_contemplation_candidate,
)
from contempla.services.referral.code_generator import (
    generate_unique_referral_code,
)
from contempla.utils.datetime_utils import ensure_utc, utc_now
from contempla.utils.exceptions import (
    AlreadyMember,
    ConcurrencyConflict,
    ExpectedCondition,
    GroupFull,
    GroupNotAcceptingMembers,
    GroupNotFound,
    InvariantViolation,
    ParticipantNotFound,
    PlanNotFound,
)
from contempla.utils.retry import retry_on_conflict


@dataclass(frozen=True)
class ParticipantConfirmed:
    """Seat moved to Paid by this call."""

    participant: Participant
    group: Group
    contemplation: ContemplationEvent | None = None


@dataclass(frozen=True)
class NoOp:
    """Seat was already Paid; nothing changed."""

    participant: Participant
    group: Group


@dataclass(frozen=True)
class ParticipantUnavailable:
    """Seat expired or failed before the payment arrived."""

    participant: Participant
    group: Group
    status: PaymentStatus


ConfirmationOutcome = ParticipantConfirmed | NoOp | ParticipantUnavailable


class GroupCoordinator(BaseService):
    """
    Group lifecycle service.

    ``create_group``, ``join_group`` and ``expire_stale_reservations`` own
    their transactions. ``confirm_participant_payment`` runs inside the
    caller's transaction so the payment, the completion of the group and
    the commission cascade commit together.
    """

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)
        self.plan_repo = PlanRepository(session)
        self.group_repo = GroupRepository(session)
        self.participant_repo = ParticipantRepository(session)
        self.outbox_repo = OutboxRepository(session)
        self.expiry_window = timedelta(
            minutes=settings.reservation_expiry_minutes
        )

    def window_start(self, now: datetime) -> datetime:
        """Oldest enrolment time of a pending seat that still holds capacity."""
        return now - self.expiry_window

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create_group(
        self,
        plan_id: int,
        creator_user_id: int,
        referred_by_participant_id: int | None = None,
    ) -> tuple[Group, Participant]:
        """
        Create a Forming group with the creator at position 1.

        Args:
            plan_id: Plan to form a group for
            creator_user_id: Creating user
            referred_by_participant_id: Optional referrer from another group

        Returns:
            (group, creator participant)

        Raises:
            PlanNotFound: Unknown plan
            ParticipantNotFound: Unknown referrer
            TransientStoreError: Code collisions or store conflicts persisted
        """
        try:
            return await retry_on_conflict(
                lambda: self._create_once(
                    plan_id, creator_user_id, referred_by_participant_id
                ),
                max_attempts=settings.referral_code_max_attempts,
                operation_name="create_group",
                on_retry=self.rollback,
            )
        except ExpectedCondition:
            await self.rollback()
            raise

    async def _create_once(
        self,
        plan_id: int,
        creator_user_id: int,
        referred_by_participant_id: int | None,
    ) -> tuple[Group, Participant]:
        plan = await self.plan_repo.get_by_id(plan_id)
        if plan is None:
            raise PlanNotFound(f"Plan {plan_id} not found")

        if referred_by_participant_id is not None:
            referrer = await self.participant_repo.get_by_id(
                referred_by_participant_id
            )
            if referrer is None:
                raise ParticipantNotFound(
                    f"Referrer {referred_by_participant_id} not found"
                )

        code = await generate_unique_referral_code(self.group_repo)
        now = utc_now()

        group = Group(
            plan_id=plan.id,
            referral_code=code,
            capacity=plan.capacity,
            state=GroupState.FORMING.value,
            version=0,
            created_by_user_id=creator_user_id,
            created_at=now,
        )
        self.session.add(group)
        await self.session.flush()

        creator = Participant(
            group_id=group.id,
            user_id=creator_user_id,
            position=1,
            payment_status=PaymentStatus.PENDING_PAYMENT.value,
            referred_by=referred_by_participant_id,
            enrolled_at=now,
        )
        self.session.add(creator)
        await self.session.flush()
        await self.commit()

        self.logger.info(
            f"Group {group.id} created with code {code}",
            extra={
                "group_id": group.id,
                "plan_id": plan.id,
                "creator_user_id": creator_user_id,
            },
        )
        return group, creator

    # ------------------------------------------------------------------
    # Admission
    # ------------------------------------------------------------------

    async def join_group(
        self,
        group_id: int,
        joiner_user_id: int,
        referred_by_participant_id: int | None,
    ) -> Participant:
        """
        Reserve the next position in a group.

        Args:
            group_id: Target group
            joiner_user_id: Joining user
            referred_by_participant_id: Referrer (normally the group creator)

        Returns:
            New PendingPayment participant

        Raises:
            GroupNotFound: Unknown group
            GroupNotAcceptingMembers: Group is contemplating or completed
            GroupFull: No vacancy
            AlreadyMember: User already holds an active seat
            ParticipantNotFound: Unknown referrer
            TransientStoreError: Conflicts persisted past join_max_attempts
        """
        try:
            return await retry_on_conflict(
                lambda: self._join_once(
                    group_id, joiner_user_id, referred_by_participant_id
                ),
                max_attempts=settings.join_max_attempts,
                operation_name=f"join_group({group_id})",
                on_retry=self.rollback,
            )
        except ExpectedCondition as e:
            await self.rollback()
            self.logger.info(
                f"Join to group {group_id} rejected: {e.code}",
                extra={"group_id": group_id, "user_id": joiner_user_id},
            )
            raise

    async def _join_once(
        self,
        group_id: int,
        joiner_user_id: int,
        referred_by_participant_id: int | None,
    ) -> Participant:
        now = utc_now()
        window_start = self.window_start(now)

        group = await self.group_repo.get_for_update(group_id)
        if group is None:
            raise GroupNotFound(f"Group {group_id} not found")

        state = GroupState(group.state)
        if state not in ADMITTING_GROUP_STATES:
            raise GroupNotAcceptingMembers(MSG_GROUP_NOT_ACCEPTING)

        active_count = await self.participant_repo.count_active(
            group.id, window_start
        )
        if active_count >= group.capacity:
            raise GroupFull(MSG_GROUP_FULL)

        if await self.participant_repo.has_active_membership(
            group.id, joiner_user_id, window_start
        ):
            raise AlreadyMember(MSG_ALREADY_MEMBER)

        if referred_by_participant_id is not None:
            referrer = await self.participant_repo.get_by_id(
                referred_by_participant_id
            )
            if referrer is None:
                raise ParticipantNotFound(
                    f"Referrer {referred_by_participant_id} not found"
                )

        position = await self.participant_repo.next_position(group.id)

        values = {}
        if state == GroupState.FORMING and active_count + 1 == group.capacity:
            self._check_transition(group, GroupState.FULL)
            values["state"] = GroupState.FULL.value

        if not await self.group_repo.compare_and_set(
            group.id, group.version, **values
        ):
            raise ConcurrencyConflict(f"Group {group.id} changed during join")

        participant = Participant(
            group_id=group.id,
            user_id=joiner_user_id,
            position=position,
            payment_status=PaymentStatus.PENDING_PAYMENT.value,
            referred_by=referred_by_participant_id,
            enrolled_at=now,
        )
        self.session.add(participant)
        try:
            await self.session.flush()
        except IntegrityError as e:
            raise ConcurrencyConflict(
                f"Position {position} of group {group.id} was taken"
            ) from e

        # Fail closed if the guards above ever let an overrun through
        after = await self.participant_repo.count_active(group.id, window_start)
        if after > group.capacity:
            self.logger.critical(
                f"Capacity overrun in group {group.id}: {after}/{group.capacity}"
            )
            raise InvariantViolation(f"Capacity overrun in group {group.id}")

        await self.commit()

        self.logger.info(
            f"User {joiner_user_id} joined group {group.id} at position {position}",
            extra={
                "group_id": group.id,
                "participant_id": participant.id,
                "position": position,
                "active": after,
                "capacity": group.capacity,
            },
        )
        return participant

    # ------------------------------------------------------------------
    # Payment confirmation
    # ------------------------------------------------------------------

    async def confirm_participant_payment(
        self,
        participant_id: int,
        external_payment_ref: str,
        now: datetime | None = None,
    ) -> ConfirmationOutcome:
        """
        Mark a seat Paid and complete the group when it is ready.

        Idempotent: an already Paid seat yields NoOp. Does not commit.

        Args:
            participant_id: Seat being paid
            external_payment_ref: Provider payment reference
            now: Clock override

        Returns:
            ParticipantConfirmed, NoOp or ParticipantUnavailable

        Raises:
            ParticipantNotFound: Unknown participant
            ConcurrencyConflict: Group changed under us (caller retries)
            InvariantViolation: Illegal state transition
        """
        now = now or utc_now()
        window_start = self.window_start(now)

        seat = await self.participant_repo.get_by_id(participant_id)
        if seat is None:
            raise ParticipantNotFound(f"Participant {participant_id} not found")

        # Lock order: group first, then seat, the same as admission
        group = await self.group_repo.get_for_update(seat.group_id)
        participant = await self.participant_repo.get_for_update(participant_id)

        status = PaymentStatus(participant.payment_status)

        if status == PaymentStatus.PAID:
            return NoOp(participant=participant, group=group)

        if status in (PaymentStatus.EXPIRED, PaymentStatus.FAILED):
            return ParticipantUnavailable(
                participant=participant, group=group, status=status
            )

        if ensure_utc(participant.enrolled_at) < window_start:
            self._check_payment_transition(participant, PaymentStatus.EXPIRED)
            participant.payment_status = PaymentStatus.EXPIRED.value
            await self.session.flush()
            self.logger.info(
                f"Payment for participant {participant.id} arrived after expiry"
            )
            return ParticipantUnavailable(
                participant=participant,
                group=group,
                status=PaymentStatus.EXPIRED,
            )

        self._check_payment_transition(participant, PaymentStatus.PAID)
        participant.payment_status = PaymentStatus.PAID.value
        participant.paid_at = now
        participant.external_payment_ref = external_payment_ref
        await self.session.flush()

        values = {}
        contemplation = None

        if GroupState(group.state) == GroupState.FULL:
            active = await self.participant_repo.list_active(
                group.id, window_start
            )
            if is_ready_for_contemplation(group.capacity, active):
                candidate = select_contemplation_candidate(active)
                self._check_transition(group, GroupState.CONTEMPLATING)
                if not can_transition_group(
                    GroupState.CONTEMPLATING, GroupState.COMPLETED
                ):
                    raise InvariantViolation(
                        "contemplating -> completed is not allowed"
                    )
                values = {
                    "state": GroupState.COMPLETED.value,
                    "contemplated_participant_id": candidate.id,
                    "contemplated_at": now,
                }
                contemplation = ContemplationEvent(
                    group_id=group.id,
                    contemplated_participant_id=candidate.id,
                    contemplated_at=now,
                )

        if not await self.group_repo.compare_and_set(
            group.id, group.version, **values
        ):
            raise ConcurrencyConflict(
                f"Group {group.id} changed during confirmation"
            )

        if contemplation is not None:
            await record_event(self.outbox_repo, contemplation)
            self.logger.info(
                f"Group {group.id} completed, participant "
                f"{contemplation.contemplated_participant_id} contemplated",
                extra={"group_id": group.id},
            )

        self.logger.info(
            f"Participant {participant.id} paid ({external_payment_ref})",
            extra={"participant_id": participant.id, "group_id": group.id},
        )
        return ParticipantConfirmed(
            participant=participant, group=group, contemplation=contemplation
        )

    # ------------------------------------------------------------------
    # Expiry
    # ------------------------------------------------------------------

    async def expire_stale_reservations(self, now: datetime | None = None) -> int:
        """
        Expire PendingPayment seats older than the reservation window.

        The freed capacity is offered at the next position; expired
        positions are never reused.

        Returns:
            Number of seats expired
        """
        now = now or utc_now()
        try:
            expired = await self.participant_repo.expire_pending_before(
                self.window_start(now)
            )
            await self.commit()
        except Exception:
            await self.rollback()
            raise

        if expired:
            self.logger.info(f"Expired {expired} unpaid reservations")
        return expired

    # ------------------------------------------------------------------

    def _check_transition(self, group: Group, target: GroupState) -> None:
        current = GroupState(group.state)
        if not can_transition_group(current, target):
            self.logger.critical(
                f"Illegal group transition {current} -> {target} "
                f"for group {group.id}"
            )
            raise InvariantViolation(
                f"Group {group.id}: {current} -> {target} is not allowed"
            )

    def _check_payment_transition(
        self, participant: Participant, target: PaymentStatus
    ) -> None:
        current = PaymentStatus(participant.payment_status)
        if not can_transition_payment(current, target):
            self.logger.critical(
                f"Illegal payment transition {current} -> {target} "
                f"for participant {participant.id}"
            )
            raise InvariantViolation(
                f"Participant {participant.id}: {current} -> {target} "
                f"is not allowed"
            )
