"""
OutboxEvent model.

Facts recorded in the same transaction as the state change that produced
them and published later by the outbox relay.
"""

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from contempla.models.base import Base


class OutboxEvent(Base):
    """
    OutboxEvent entity.

    Attributes:
        id: Primary key
        event_type: OutboxEventType value
        aggregate_id: Id of the entity the fact is about
        payload: JSON body
        created_at: When the fact was recorded
        published_at: When the relay delivered it (None while pending)
        attempts: Delivery attempts so far
    """

    __tablename__ = "outbox_events"
    __table_args__ = (
        Index("idx_outbox_events_pending", "published_at", "id"),
    )

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    event_type: Mapped[str] = mapped_column(String(40), nullable=False)
    aggregate_id: Mapped[int] = mapped_column(Integer, nullable=False)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )
    published_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<OutboxEvent(id={self.id}, type={self.event_type}, "
            f"aggregate={self.aggregate_id})>"
        )
