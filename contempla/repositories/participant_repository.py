"""
Participant repository.

Data access layer for Participant model. "Active" means Paid, or
PendingPayment enrolled at or after ``window_start``; only active seats
count toward group capacity.
"""

from datetime import datetime

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.elements import ColumnElement

from contempla.models.enums import PaymentStatus
from contempla.models.participant import Participant
from contempla.repositories.base import BaseRepository


def active_clause(window_start: datetime) -> ColumnElement[bool]:
    """SQL condition selecting seats that hold capacity."""
    return or_(
        Participant.payment_status == PaymentStatus.PAID.value,
        and_(
            Participant.payment_status == PaymentStatus.PENDING_PAYMENT.value,
            Participant.enrolled_at >= window_start,
        ),
    )


class ParticipantRepository(BaseRepository[Participant]):
    """Participant repository with specific queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize participant repository."""
        super().__init__(Participant, session)

    async def count_active(self, group_id: int, window_start: datetime) -> int:
        """
        Count seats holding capacity in a group.

        Args:
            group_id: Group ID
            window_start: Oldest enrolment time a pending seat may have

        Returns:
            Active participant count
        """
        stmt = (
            select(func.count())
            .select_from(Participant)
            .where(Participant.group_id == group_id, active_clause(window_start))
        )
        result = await self.session.execute(stmt)
        return result.scalar() or 0

    async def list_active(
        self, group_id: int, window_start: datetime
    ) -> list[Participant]:
        """Get active seats of a group ordered by position."""
        stmt = (
            select(Participant)
            .where(Participant.group_id == group_id, active_clause(window_start))
            .order_by(Participant.position)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_by_group(self, group_id: int) -> list[Participant]:
        """Get every seat of a group, including expired ones."""
        stmt = (
            select(Participant)
            .where(Participant.group_id == group_id)
            .order_by(Participant.position)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_by_user(
        self, user_id: int, limit: int = 20
    ) -> list[Participant]:
        """Get a user's seats, newest first."""
        stmt = (
            select(Participant)
            .where(Participant.user_id == user_id)
            .order_by(Participant.enrolled_at.desc(), Participant.id.desc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def next_position(self, group_id: int) -> int:
        """
        Next free position: highest assigned position + 1.

        Expired seats keep their number, so positions are never reused.
        """
        stmt = select(func.max(Participant.position)).where(
            Participant.group_id == group_id
        )
        result = await self.session.execute(stmt)
        return (result.scalar() or 0) + 1

    async def get_creator(self, group_id: int) -> Participant | None:
        """Get the seat at position 1."""
        return await self.get_by(group_id=group_id, position=1)

    async def has_active_membership(
        self, group_id: int, user_id: int, window_start: datetime
    ) -> bool:
        """Check whether a user already holds an active seat in the group."""
        stmt = (
            select(func.count())
            .select_from(Participant)
            .where(
                Participant.group_id == group_id,
                Participant.user_id == user_id,
                active_clause(window_start),
            )
        )
        result = await self.session.execute(stmt)
        return (result.scalar() or 0) > 0

    async def expire_pending_before(self, cutoff: datetime) -> int:
        """
        Mark PendingPayment seats enrolled before ``cutoff`` as Expired.

        Args:
            cutoff: Enrolment time threshold

        Returns:
            Number of seats expired
        """
        stmt = (
            update(Participant)
            .where(
                Participant.payment_status
                == PaymentStatus.PENDING_PAYMENT.value,
                Participant.enrolled_at < cutoff,
            )
            .values(payment_status=PaymentStatus.EXPIRED.value)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount or 0
