"""
Plan model.

Immutable catalog entry describing a service sold through group formation.
"""

from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import CheckConstraint, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from contempla.models.base import Base
from contempla.models.types import MoneyType


if TYPE_CHECKING:
    from contempla.models.group import Group


class Plan(Base):
    """
    Plan entity.

    Created by an administrator and never mutated once groups reference it.

    Attributes:
        id: Primary key
        name: Display name
        full_price: Price of the full service
        entry_price: Entry fee paid to join a group (fraction of full_price)
        capacity: Fixed group size
        duration_days: Optional formation window, informational
        created_at: When the plan was created
    """

    __tablename__ = "plans"
    __table_args__ = (
        CheckConstraint("entry_price > 0", name="entry_price_positive"),
        CheckConstraint(
            "entry_price <= full_price", name="entry_price_not_above_full"
        ),
        CheckConstraint("capacity >= 2", name="capacity_min"),
    )

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    full_price: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    entry_price: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    duration_days: Mapped[int | None] = mapped_column(
        Integer, nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )

    groups: Mapped[list["Group"]] = relationship(
        "Group", back_populates="plan"
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<Plan(id={self.id}, name={self.name!r}, "
            f"entry={self.entry_price}, capacity={self.capacity})>"
        )
