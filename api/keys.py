"""Typed application keys."""

from aiohttp import web
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

SESSION_MAKER = web.AppKey("session_maker", async_sessionmaker[AsyncSession])
WEBHOOK_SECRET = web.AppKey("webhook_secret", str)
