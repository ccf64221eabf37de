"""
Participant model.

A user's seat in a Group. Created at reservation, updated on payment,
never deleted.
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
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from contempla.models.base import Base
from contempla.models.enums import PaymentStatus


if TYPE_CHECKING:
    from contempla.models.group import Group


class Participant(Base):
    """
    Participant entity.

    ``position`` is assigned at reservation time, 1-based, and never reused:
    an expired seat leaves a gap and the next joiner takes the next number.

    Attributes:
        id: Primary key
        group_id: Owning group
        user_id: External user identifier
        position: Assignment order inside the group
        payment_status: PaymentStatus value
        referred_by: Participant whose referral brought this one in
        external_payment_ref: Payment reference that confirmed the seat
        enrolled_at: Reservation time (starts the expiry window)
        paid_at: Payment confirmation time
    """

    __tablename__ = "participants"
    __table_args__ = (
        UniqueConstraint(
            "group_id", "position", name="uq_participants_group_position"
        ),
        CheckConstraint("position >= 1", name="position_positive"),
        Index("idx_participants_group_status", "group_id", "payment_status"),
        Index("idx_participants_status_enrolled", "payment_status", "enrolled_at"),
    )

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    group_id: Mapped[int] = mapped_column(
        ForeignKey("groups.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[int] = mapped_column(
        BigInteger, nullable=False, index=True
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)

    payment_status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=PaymentStatus.PENDING_PAYMENT.value,
    )

    referred_by: Mapped[int | None] = mapped_column(
        ForeignKey("participants.id", ondelete="RESTRICT"),
        nullable=True,
        index=True,
    )
    external_payment_ref: Mapped[str | None] = mapped_column(
        String(255), nullable=True
    )

    enrolled_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )
    paid_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    group: Mapped["Group"] = relationship(
        "Group", back_populates="participants"
    )
    referrer: Mapped["Participant | None"] = relationship(
        "Participant", remote_side="Participant.id"
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<Participant(id={self.id}, group_id={self.group_id}, "
            f"user_id={self.user_id}, position={self.position}, "
            f"status={self.payment_status})>"
        )

    @property
    def is_paid(self) -> bool:
        """Whether the entry fee was confirmed."""
        return self.payment_status == PaymentStatus.PAID
