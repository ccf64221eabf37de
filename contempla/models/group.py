"""
Group model.

One formation instance of a Plan.
"""

from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from contempla.models.base import Base
from contempla.models.enums import GroupState


if TYPE_CHECKING:
    from contempla.models.participant import Participant
    from contempla.models.plan import Plan


class Group(Base):
    """
    Group entity.

    Lifecycle: forming -> full -> contemplating -> completed, never
    backwards. ``version`` is bumped on every admission and every state
    change so concurrent writers can detect each other.

    Attributes:
        id: Primary key
        plan_id: Plan this group sells
        referral_code: Unique code new joiners use to attach to the group
        capacity: Group size copied from the plan at creation
        state: GroupState value
        version: Optimistic concurrency counter
        created_by_user_id: User who created the group
        created_at: When the group was created
        contemplated_participant_id: Participant granted the full service
        contemplated_at: When contemplation happened
    """

    __tablename__ = "groups"
    __table_args__ = (
        CheckConstraint("capacity >= 2", name="capacity_min"),
        CheckConstraint("version >= 0", name="version_non_negative"),
        Index("idx_groups_plan_state", "plan_id", "state"),
    )

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    plan_id: Mapped[int] = mapped_column(
        ForeignKey("plans.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    referral_code: Mapped[str] = mapped_column(
        String(20), nullable=False, unique=True, index=True
    )
    capacity: Mapped[int] = mapped_column(Integer, nullable=False)

    state: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=GroupState.FORMING.value,
        index=True,
    )
    version: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )

    created_by_user_id: Mapped[int] = mapped_column(
        BigInteger, nullable=False, index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )

    # Audit pointer, kept without FK to avoid a groups <-> participants cycle
    contemplated_participant_id: Mapped[int | None] = mapped_column(
        Integer, nullable=True
    )
    contemplated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    plan: Mapped["Plan"] = relationship("Plan", back_populates="groups")
    participants: Mapped[list["Participant"]] = relationship(
        "Participant",
        back_populates="group",
        order_by="Participant.position",
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<Group(id={self.id}, code={self.referral_code}, "
            f"state={self.state}, capacity={self.capacity})>"
        )
