"""SQLAlchemy 2.x async database setup.

This module builds the engine and session factory from explicit settings
and does not hard-code any connection credentials. Nothing connects at
import time.
"""

from __future__ import annotations

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from .config import DatabaseSettings


def build_engine(db_settings: DatabaseSettings) -> AsyncEngine:
    """Create the async engine for ``db_settings.url``."""
    return create_async_engine(db_settings.url, echo=db_settings.echo, future=True)


def build_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory; objects stay readable after commit."""
    return async_sessionmaker(bind=engine, expire_on_commit=False, class_=AsyncSession)


async def check_connection(engine: AsyncEngine) -> None:
    """Round-trip ``SELECT 1``; raises the driver error if the database is unreachable."""
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))
