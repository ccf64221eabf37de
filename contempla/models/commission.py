"""
Commission model.

One row per (source payment, payee, level). The unique triple is what
makes the commission cascade idempotent.
"""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from contempla.models.base import Base
from contempla.models.types import MoneyType


class Commission(Base):
    """
    Commission entity.

    Attributes:
        id: Primary key
        source_payment_id: External payment reference that produced it
        payer_participant_id: Participant whose payment produced it
        payee_participant_id: Ancestor participant receiving the commission
        payee_user_id: User behind the payee participant
        level: Distance from the payer (1 = direct referrer)
        rate: Rate applied at this level
        amount: Credited amount
        created_at: When the commission was recorded
    """

    __tablename__ = "commissions"
    __table_args__ = (
        UniqueConstraint(
            "source_payment_id",
            "payee_user_id",
            "level",
            name="uq_commissions_source_payee_level",
        ),
        # A participant pays the entry fee once, so one payout per level
        UniqueConstraint(
            "payer_participant_id",
            "level",
            name="uq_commissions_payer_level",
        ),
        CheckConstraint("level >= 1", name="level_positive"),
        CheckConstraint("amount > 0", name="amount_positive"),
    )

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    source_payment_id: Mapped[str] = mapped_column(
        String(255), nullable=False, index=True
    )
    payer_participant_id: Mapped[int] = mapped_column(
        ForeignKey("participants.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    payee_participant_id: Mapped[int] = mapped_column(
        ForeignKey("participants.id", ondelete="RESTRICT"),
        nullable=False,
    )
    payee_user_id: Mapped[int] = mapped_column(
        BigInteger, nullable=False, index=True
    )
    level: Mapped[int] = mapped_column(Integer, nullable=False)
    rate: Mapped[Decimal] = mapped_column(Numeric(5, 4), nullable=False)
    amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<Commission(id={self.id}, source={self.source_payment_id}, "
            f"payee={self.payee_user_id}, level={self.level}, "
            f"amount={self.amount})>"
        )
