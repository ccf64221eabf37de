"""
Outbox relay.

Publishes recorded facts to the configured event sink. Delivery is at
least once: an event is stamped only after the sink accepted it.
"""

import aiohttp
from sqlalchemy.ext.asyncio import AsyncSession

from contempla.config.settings import settings
from contempla.models.outbox_event import OutboxEvent
from contempla.repositories.outbox_repository import OutboxRepository
from contempla.services.base_service import BaseService
from contempla.utils.datetime_utils import ensure_utc, utc_now


def event_envelope(event: OutboxEvent) -> dict:
    """JSON body sent to the sink."""
    return {
        "id": event.id,
        "type": event.event_type,
        "aggregate_id": event.aggregate_id,
        "payload": event.payload,
        "created_at": ensure_utc(event.created_at).isoformat(),
    }


class OutboxRelay(BaseService):
    """Moves outbox events to the event sink."""

    def __init__(
        self,
        session: AsyncSession,
        sink_url: str | None = None,
        http_session: aiohttp.ClientSession | None = None,
    ) -> None:
        super().__init__(session)
        self.repo = OutboxRepository(session)
        self.sink_url = sink_url if sink_url is not None else settings.event_sink_url
        self.http_session = http_session

    async def relay(self, batch_size: int | None = None) -> int:
        """
        Publish one batch of pending events.

        Stops at the first delivery failure so events stay in order.

        Returns:
            Number of events published
        """
        batch_size = batch_size or settings.outbox_batch_size
        events = await self.repo.list_unpublished(limit=batch_size)
        if not events:
            await self.rollback()
            return 0

        owns_http = self.sink_url and self.http_session is None
        http = (
            aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=10))
            if owns_http
            else self.http_session
        )

        published = 0
        try:
            for event in events:
                try:
                    await self._publish(http, event)
                except (aiohttp.ClientError, TimeoutError) as e:
                    self.logger.warning(
                        f"Outbox event {event.id} delivery failed: {e}"
                    )
                    await self.repo.record_failed_attempt(event.id)
                    break

                await self.repo.mark_published(event.id, utc_now())
                published += 1

            await self.commit()
        except Exception:
            await self.rollback()
            raise
        finally:
            if owns_http:
                await http.close()

        if published:
            self.logger.info(f"Published {published} outbox event(s)")
        return published

    async def _publish(
        self, http: aiohttp.ClientSession | None, event: OutboxEvent
    ) -> None:
        body = event_envelope(event)
        if not self.sink_url:
            self.logger.info(
                f"Event {event.event_type} #{event.id}",
                extra={"event": body},
            )
            return

        async with http.post(self.sink_url, json=body) as response:
            response.raise_for_status()
