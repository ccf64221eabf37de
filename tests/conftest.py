"""Pytest configuration and shared fixtures for all tests."""

import os
import sys
import tempfile
from pathlib import Path

# Minimal environment for settings validation
os.environ.setdefault(
    "DATABASE_URL",
    f"sqlite+aiosqlite:///{Path(tempfile.gettempdir()) / 'contempla-test.db'}",
)
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("BROKER_BACKEND", "stub")
os.environ.setdefault("RESERVATION_EXPIRY_MINUTES", "60")
os.environ.setdefault("CONFLICT_BACKOFF_SECONDS", "0.01")

# Add project root to PYTHONPATH
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from datetime import timedelta  # noqa: E402
from decimal import Decimal  # noqa: E402
from unittest.mock import AsyncMock, MagicMock  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy import update  # noqa: E402

from contempla.config.database import build_engine, build_session_maker  # noqa: E402
from contempla.models import Base, Participant  # noqa: E402
from contempla.services.plan_service import PlanService  # noqa: E402
from contempla.utils.datetime_utils import utc_now  # noqa: E402


@pytest.fixture
def mock_session():
    """Mock AsyncSession for tests without a database."""
    session = AsyncMock()
    session.execute = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.flush = AsyncMock()
    session.close = AsyncMock()
    session.add = MagicMock()
    session.refresh = AsyncMock()
    return session


@pytest_asyncio.fixture
async def engine(tmp_path):
    """SQLite engine on a fresh database file with the schema created."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'contempla.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    """Session factory bound to the test engine."""
    return build_session_maker(engine)


@pytest_asyncio.fixture
async def session(session_maker):
    """Database session for a single test."""
    async with session_maker() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def plan(session):
    """Default plan: 1000.00, entry fee 100.00, group of 10."""
    return await PlanService(session).create_plan(
        "Plano Casa", Decimal("1000.00")
    )


@pytest_asyncio.fixture
async def small_plan(session):
    """Plan for a group of 3 with a 50.00 entry fee."""
    return await PlanService(session).create_plan(
        "Plano Moto", Decimal("500.00"), capacity=3
    )


@pytest_asyncio.fixture
async def pair_plan(session):
    """Plan for a group of 2 with a 20.00 entry fee."""
    return await PlanService(session).create_plan(
        "Plano Bike", Decimal("200.00"), capacity=2
    )


@pytest.fixture
def age_reservation(session_maker):
    """Move a seat's enrolment time into the past."""

    async def _age(participant_id: int, minutes: int = 120) -> None:
        async with session_maker() as s:
            await s.execute(
                update(Participant)
                .where(Participant.id == participant_id)
                .values(enrolled_at=utc_now() - timedelta(minutes=minutes))
            )
            await s.commit()

    return _age
