"""
Group read models.

Status of a single group and a user's participation history with simple
statistics.
"""

from dataclasses import dataclass, field
from datetime import timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from contempla.config.settings import settings
from contempla.models.enums import GroupState, PaymentStatus
from contempla.models.group import Group
from contempla.models.participant import Participant
from contempla.repositories.group_repository import GroupRepository
from contempla.repositories.participant_repository import ParticipantRepository
from contempla.utils.datetime_utils import ensure_utc, utc_now
from contempla.utils.exceptions import GroupNotFound


@dataclass
class GroupStatus:
    group: Group
    participants: list[Participant]
    active_count: int
    paid_count: int

    @property
    def vacancies(self) -> int:
        if self.group.state in (GroupState.CONTEMPLATING, GroupState.COMPLETED):
            return 0
        return max(0, self.group.capacity - self.active_count)


@dataclass
class Participation:
    participant: Participant
    group: Group

    @property
    def won(self) -> bool:
        return self.group.contemplated_participant_id == self.participant.id


@dataclass
class UserGroupHistory:
    user_id: int
    participations: list[Participation] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.participations)

    @property
    def active(self) -> int:
        return sum(
            1 for p in self.participations
            if p.group.state in (GroupState.FORMING, GroupState.FULL)
            and p.participant.payment_status
            in (PaymentStatus.PENDING_PAYMENT, PaymentStatus.PAID)
        )

    @property
    def completed(self) -> int:
        return sum(
            1 for p in self.participations
            if p.group.state == GroupState.COMPLETED
        )

    @property
    def won(self) -> int:
        return sum(1 for p in self.participations if p.won)


class GroupQueryService:
    """Read-only group queries."""

    def __init__(self, session: AsyncSession) -> None:
        self.group_repo = GroupRepository(session)
        self.participant_repo = ParticipantRepository(session)

    async def get_group_status(self, group_id: int) -> GroupStatus:
        """
        Snapshot of a group with its seats.

        Raises:
            GroupNotFound: Unknown group
        """
        group = await self.group_repo.get_by_id(group_id)
        if group is None:
            raise GroupNotFound(f"Group {group_id} not found")

        window_start = utc_now() - timedelta(
            minutes=settings.reservation_expiry_minutes
        )
        participants = await self.participant_repo.list_by_group(group.id)
        active = [p for p in participants if _is_active(p, window_start)]

        return GroupStatus(
            group=group,
            participants=participants,
            active_count=len(active),
            paid_count=sum(1 for p in participants if p.is_paid),
        )

    async def get_user_history(
        self, user_id: int, limit: int = 20
    ) -> UserGroupHistory:
        """A user's latest participations."""
        participants = await self.participant_repo.list_by_user(
            user_id, limit=limit
        )
        groups = {
            g.id: g
            for g in await self.group_repo.get_many(
                sorted({p.group_id for p in participants})
            )
        }
        return UserGroupHistory(
            user_id=user_id,
            participations=[
                Participation(participant=p, group=groups[p.group_id])
                for p in participants
            ],
        )


def _is_active(participant: Participant, window_start) -> bool:
    if participant.payment_status == PaymentStatus.PAID:
        return True
    return (
        participant.payment_status == PaymentStatus.PENDING_PAYMENT
        and ensure_utc(participant.enrolled_at) >= window_start
    )
