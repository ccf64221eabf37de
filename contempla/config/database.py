"""
Database engine and session factory.

The engine is created from settings at import; jobs and tests build their
own engines through ``build_engine`` so every event loop gets a pool of its
own.
"""

from typing import Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from contempla.config.settings import settings


def _install_sqlite_transaction_hooks(engine: AsyncEngine) -> None:
    """
    Make SQLite transactions usable for the engine's locking model.

    The stdlib driver defers BEGIN until the first DML statement, which
    breaks SAVEPOINT and lets reads escape the transaction. We take over
    BEGIN and use IMMEDIATE so writers are serialised for the whole unit.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection: Any, connection_record: Any) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn: Any) -> None:
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(
    database_url: str | None = None, **kwargs: Any
) -> AsyncEngine:
    """
    Create an async engine.

    Args:
        database_url: Override for settings.database_url
        **kwargs: Extra create_async_engine arguments (e.g. poolclass)

    Returns:
        Configured AsyncEngine
    """
    url = database_url or settings.database_url
    kwargs.setdefault("echo", settings.database_echo)

    if url.startswith("sqlite"):
        connect_args = kwargs.pop("connect_args", {})
        connect_args.setdefault("timeout", settings.database_busy_timeout)
        engine = create_async_engine(url, connect_args=connect_args, **kwargs)
        _install_sqlite_transaction_hooks(engine)
        return engine

    kwargs.setdefault("pool_pre_ping", True)
    return create_async_engine(url, **kwargs)


def build_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create a session factory bound to ``engine``."""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async_engine = build_engine()
async_session_maker = build_session_maker(async_engine)
