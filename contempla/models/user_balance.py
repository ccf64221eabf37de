"""
UserBalance model.

Materialised running balance per user. Always equal to the sum of the
user's credit transactions.
"""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import BigInteger, CheckConstraint, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from contempla.models.base import Base
from contempla.models.types import MoneyType


class UserBalance(Base):
    """
    UserBalance entity.

    Only ever changed through an atomic ``balance = balance + amount``
    update issued together with the matching CreditTransaction insert.

    Attributes:
        user_id: Primary key, external user identifier
        balance: Current credit balance
        updated_at: Last change time
    """

    __tablename__ = "user_balances"
    __table_args__ = (
        CheckConstraint("balance >= 0", name="balance_non_negative"),
    )

    user_id: Mapped[int] = mapped_column(
        BigInteger, primary_key=True, autoincrement=False
    )
    balance: Mapped[Decimal] = mapped_column(
        MoneyType, nullable=False, default=Decimal("0.00")
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
        nullable=False,
    )

    def __repr__(self) -> str:
        """String representation."""
        return f"<UserBalance(user_id={self.user_id}, balance={self.balance})>"
