"""
Outbox repository.

Data access layer for OutboxEvent model.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from contempla.models.outbox_event import OutboxEvent
from contempla.repositories.base import BaseRepository


class OutboxRepository(BaseRepository[OutboxEvent]):
    """Outbox repository."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize outbox repository."""
        super().__init__(OutboxEvent, session)

    async def add(
        self, event_type: str, aggregate_id: int, payload: dict[str, Any]
    ) -> OutboxEvent:
        """Record an event in the current transaction."""
        event = OutboxEvent(
            event_type=event_type,
            aggregate_id=aggregate_id,
            payload=payload,
        )
        self.session.add(event)
        await self.session.flush()
        return event

    async def list_unpublished(self, limit: int = 100) -> list[OutboxEvent]:
        """Pending events in insertion order."""
        stmt = (
            select(OutboxEvent)
            .where(OutboxEvent.published_at.is_(None))
            .order_by(OutboxEvent.id)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_by_type(self, event_type: str) -> list[OutboxEvent]:
        """All events of one type in insertion order."""
        stmt = (
            select(OutboxEvent)
            .where(OutboxEvent.event_type == event_type)
            .order_by(OutboxEvent.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def mark_published(self, event_id: int, at: datetime) -> None:
        """Stamp an event as delivered."""
        await self.session.execute(
            update(OutboxEvent)
            .where(OutboxEvent.id == event_id)
            .values(published_at=at, attempts=OutboxEvent.attempts + 1)
            .execution_options(synchronize_session=False)
        )

    async def record_failed_attempt(self, event_id: int) -> None:
        """Count a failed delivery."""
        await self.session.execute(
            update(OutboxEvent)
            .where(OutboxEvent.id == event_id)
            .values(attempts=OutboxEvent.attempts + 1)
            .execution_options(synchronize_session=False)
        )
