"""
CreditTransaction model.

Append-only ledger entry. Positive amounts credit, negative amounts debit.
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
)
from sqlalchemy.orm import Mapped, mapped_column

from contempla.models.base import Base
from contempla.models.types import MoneyType


class CreditTransaction(Base):
    """
    CreditTransaction entity.

    Rows are never updated or deleted.

    Attributes:
        id: Primary key
        user_id: Balance owner
        kind: CreditTransactionKind value
        amount: Signed amount (credit > 0, debit < 0)
        balance_after: Balance right after this entry was applied
        reference: External reference (payment ref, withdrawal id, order id)
        description: Free-form note
        created_at: Entry time
    """

    __tablename__ = "credit_transactions"
    __table_args__ = (
        CheckConstraint("amount <> 0", name="amount_non_zero"),
        Index("idx_credit_transactions_user_created", "user_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    user_id: Mapped[int] = mapped_column(
        BigInteger, nullable=False, index=True
    )
    kind: Mapped[str] = mapped_column(String(30), nullable=False)
    amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    balance_after: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    reference: Mapped[str | None] = mapped_column(
        String(255), nullable=True, index=True
    )
    description: Mapped[str | None] = mapped_column(
        String(500), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<CreditTransaction(id={self.id}, user_id={self.user_id}, "
            f"kind={self.kind}, amount={self.amount})>"
        )
