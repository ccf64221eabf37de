#!/usr/bin/env python3
"""
Initialize database tables.

Creates the schema straight from the models. Deployments use
``alembic upgrade head``; this is meant for local SQLite databases.
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from loguru import logger  # noqa: E402
from sqlalchemy.pool import NullPool  # noqa: E402

from contempla.config.database import build_engine  # noqa: E402
from contempla.config.settings import settings  # noqa: E402
from contempla.models import Base  # noqa: E402

# Configure logger for script
logger.remove()
logger.add(sys.stderr, level="INFO")


async def init_database() -> None:
    """Create all database tables."""
    logger.info("Connecting to database...")
    engine = build_engine(settings.database_url, poolclass=NullPool)

    async with engine.begin() as conn:
        logger.info("Creating tables (checkfirst=True)...")
        await conn.run_sync(
            Base.metadata.create_all,
            checkfirst=True
        )

    await engine.dispose()
    logger.success("Database tables created successfully!")


if __name__ == "__main__":
    asyncio.run(init_database())
