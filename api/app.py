"""
HTTP application factory.

Handlers get a session factory from the app, not a live session; each
handler opens and closes its own session.
"""

from aiohttp import web
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from api.handlers import groups, health, payments, users
from api.keys import SESSION_MAKER, WEBHOOK_SECRET
from api.middlewares import error_middleware, logging_middleware


def create_app(
    session_maker: async_sessionmaker[AsyncSession] | None = None,
    webhook_secret: str | None = None,
) -> web.Application:
    """
    Build the aiohttp application.

    Args:
        session_maker: Session factory (defaults to the configured database)
        webhook_secret: Override for PAYMENT_WEBHOOK_SECRET

    Returns:
        Configured web.Application
    """
    if session_maker is None:
        from contempla.config.database import async_session_maker

        session_maker = async_session_maker

    app = web.Application(middlewares=[logging_middleware, error_middleware])
    app[SESSION_MAKER] = session_maker
    if webhook_secret is not None:
        app[WEBHOOK_SECRET] = webhook_secret

    app.add_routes(health.routes)
    app.add_routes(groups.routes)
    app.add_routes(payments.routes)
    app.add_routes(users.routes)
    return app
