"""
ProcessedPaymentRef model.

Deduplication record for payment confirmations. The primary key on the
external reference guarantees a reference is processed at most once.
"""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from contempla.models.base import Base
from contempla.models.enums import PaymentRefStatus
from contempla.models.types import MoneyType


class ProcessedPaymentRef(Base):
    """
    ProcessedPaymentRef entity.

    Attributes:
        external_ref: Payment provider reference (primary key)
        participant_id: Participant the confirmation targeted
        amount: Amount reported by the provider, if any
        status: PaymentRefStatus value
        outcome: ConfirmationOutcome value once processed
        error: Error text of the last failed attempt
        attempts: How many times processing was started
        created_at: First time the reference was seen
        updated_at: Last status change
    """

    __tablename__ = "processed_payment_refs"
    __table_args__ = (
        Index("idx_processed_payment_refs_status_updated", "status", "updated_at"),
    )

    external_ref: Mapped[str] = mapped_column(String(255), primary_key=True)
    participant_id: Mapped[int] = mapped_column(Integer, nullable=False)
    amount: Mapped[Decimal | None] = mapped_column(MoneyType, nullable=True)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=PaymentRefStatus.PROCESSING.value,
    )
    outcome: Mapped[str | None] = mapped_column(String(40), nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<ProcessedPaymentRef(ref={self.external_ref}, "
            f"status={self.status}, attempts={self.attempts})>"
        )
