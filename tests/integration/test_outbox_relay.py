"""
Integration tests for outbox publishing.
"""

from decimal import Decimal

import aiohttp
import pytest

from contempla.repositories.outbox_repository import OutboxRepository
from contempla.services.events import CommissionCredited, record_event
from contempla.services.outbox_relay import OutboxRelay, event_envelope


class FakeResponse:
    def __init__(self, status: int) -> None:
        self.status = status

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    def raise_for_status(self) -> None:
        if self.status >= 400:
            raise aiohttp.ClientError(f"HTTP {self.status}")


class FakeSink:
    """Stands in for aiohttp.ClientSession.post."""

    def __init__(self, statuses: list[int]) -> None:
        self.statuses = statuses
        self.posted: list[dict] = []

    def post(self, url: str, json: dict) -> FakeResponse:
        self.posted.append(json)
        return FakeResponse(self.statuses.pop(0))


@pytest.fixture
def record_commissions(session_maker):
    """Write n CommissionCredited events."""

    async def _record(n: int) -> None:
        async with session_maker() as s:
            outbox = OutboxRepository(s)
            for level in range(1, n + 1):
                await record_event(
                    outbox,
                    CommissionCredited(
                        payee_user_id=10 + level,
                        amount=Decimal("10.00"),
                        level=level,
                        source_payment_id="pay-1",
                    ),
                )
            await s.commit()

    return _record


class TestOutboxRelay:
    """Test at-least-once publishing."""

    @pytest.mark.asyncio
    async def test_nothing_to_publish(self, session):
        assert await OutboxRelay(session).relay() == 0

    @pytest.mark.asyncio
    async def test_log_only_without_sink(self, session, record_commissions):
        await record_commissions(2)

        published = await OutboxRelay(session, sink_url="").relay()

        assert published == 2
        assert await OutboxRepository(session).list_unpublished() == []

    @pytest.mark.asyncio
    async def test_posts_envelopes_in_order(self, session, record_commissions):
        await record_commissions(2)
        sink = FakeSink([200, 200])

        published = await OutboxRelay(
            session, sink_url="http://sink.local/events", http_session=sink
        ).relay()

        assert published == 2
        assert [body["payload"]["level"] for body in sink.posted] == [1, 2]
        assert sink.posted[0]["type"] == CommissionCredited.event_type.value

    @pytest.mark.asyncio
    async def test_stops_at_first_failure(
        self, session, session_maker, record_commissions
    ):
        """A failed delivery keeps the event and everything after it."""
        await record_commissions(3)
        sink = FakeSink([200, 503])

        published = await OutboxRelay(
            session, sink_url="http://sink.local/events", http_session=sink
        ).relay()

        assert published == 1
        assert len(sink.posted) == 2
        async with session_maker() as s:
            pending = await OutboxRepository(s).list_unpublished()
        assert [e.payload["level"] for e in pending] == [2, 3]
        assert pending[0].attempts == 1

    @pytest.mark.asyncio
    async def test_batch_size(self, session, record_commissions):
        await record_commissions(3)

        assert await OutboxRelay(session, sink_url="").relay(batch_size=2) == 2
        assert await OutboxRelay(session, sink_url="").relay(batch_size=2) == 1

    @pytest.mark.asyncio
    async def test_envelope(self, session, record_commissions):
        await record_commissions(1)

        event = (await OutboxRepository(session).list_unpublished())[0]
        body = event_envelope(event)

        assert body["id"] == event.id
        assert body["aggregate_id"] == 11
        assert body["payload"]["amount"] == "10.00"
        assert body["created_at"].endswith("+00:00")
