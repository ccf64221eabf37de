"""
Outbound facts.

Events are written to the outbox table inside the transaction that
produced them and published later by the outbox relay.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any

from contempla.models.enums import OutboxEventType
from contempla.models.outbox_event import OutboxEvent
from contempla.repositories.outbox_repository import OutboxRepository


@dataclass(frozen=True)
class ContemplationEvent:
    """A group completed and one participant was contemplated."""

    group_id: int
    contemplated_participant_id: int
    contemplated_at: datetime

    event_type = OutboxEventType.CONTEMPLATION

    @property
    def aggregate_id(self) -> int:
        return self.group_id

    def to_payload(self) -> dict[str, Any]:
        return {
            "group_id": self.group_id,
            "contemplated_participant_id": self.contemplated_participant_id,
            "contemplated_at": self.contemplated_at.isoformat(),
        }


@dataclass(frozen=True)
class CommissionCredited:
    """A commission was credited to a referrer's ledger."""

    payee_user_id: int
    amount: Decimal
    level: int
    source_payment_id: str

    event_type = OutboxEventType.COMMISSION_CREDITED

    @property
    def aggregate_id(self) -> int:
        return self.payee_user_id

    def to_payload(self) -> dict[str, Any]:
        # Decimal goes out as a string to keep cents exact
        return {
            "payee_user_id": self.payee_user_id,
            "amount": str(self.amount),
            "level": self.level,
            "source_payment_id": self.source_payment_id,
        }


async def record_event(
    outbox: OutboxRepository,
    event: ContemplationEvent | CommissionCredited,
) -> OutboxEvent:
    """Write ``event`` to the outbox in the caller's transaction."""
    return await outbox.add(
        event_type=event.event_type.value,
        aggregate_id=event.aggregate_id,
        payload=event.to_payload(),
    )
