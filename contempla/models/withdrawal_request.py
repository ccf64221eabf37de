"""
WithdrawalRequest model.

A user's request to cash out credit balance. The amount is debited from the
ledger when the request is created and refunded if it is rejected.
"""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    Index,
    Integer,
    String,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from contempla.models.base import Base
from contempla.models.enums import WithdrawalStatus
from contempla.models.types import MoneyType


class WithdrawalRequest(Base):
    """
    WithdrawalRequest entity.

    Attributes:
        id: Primary key
        user_id: Requesting user
        amount: Requested amount
        pix_key: Payout destination key
        status: WithdrawalStatus value
        reason: Rejection reason
        payout_ref: External reference of the payout once paid
        created_at: Request time
        processed_at: When the request was paid or rejected
    """

    __tablename__ = "withdrawal_requests"
    __table_args__ = (
        CheckConstraint("amount > 0", name="amount_positive"),
        # At most one pending request per user
        Index(
            "uq_withdrawal_requests_user_pending",
            "user_id",
            unique=True,
            postgresql_where=text("status = 'pending'"),
            sqlite_where=text("status = 'pending'"),
        ),
    )

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    user_id: Mapped[int] = mapped_column(
        BigInteger, nullable=False, index=True
    )
    amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    pix_key: Mapped[str | None] = mapped_column(String(255), nullable=True)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=WithdrawalStatus.PENDING.value,
        index=True,
    )
    reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    payout_ref: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )
    processed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<WithdrawalRequest(id={self.id}, user_id={self.user_id}, "
            f"amount={self.amount}, status={self.status})>"
        )
