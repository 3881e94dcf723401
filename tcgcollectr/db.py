"""
TCGCollectr — Database engines

Two engines, two credential tiers:
- read: public role, subject to row-level policies; used by every query.
- service: elevated, server-only; used only for the seed upsert.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import structlog
from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from tcgcollectr.config import settings

logger = structlog.get_logger(__name__)


@dataclass
class Database:
    read_engine: AsyncEngine
    service_engine: AsyncEngine
    read_sessions: async_sessionmaker[AsyncSession]
    service_sessions: async_sessionmaker[AsyncSession]

    async def health_check(self) -> None:
        """Run SELECT 1 on the read engine. Raises on failure."""
        async with self.read_sessions() as session:
            await session.execute(text("SELECT 1"))

    async def dispose(self) -> None:
        await self.read_engine.dispose()
        if self.service_engine is not self.read_engine:
            await self.service_engine.dispose()


def _engine(url: str) -> AsyncEngine:
    kwargs: dict[str, Any] = {"echo": False}
    if make_url(url).get_backend_name() != "sqlite":
        kwargs.update(
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
            pool_pre_ping=True,  # Verify connections before use
        )
    return create_async_engine(url, **kwargs)


def _session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


def create_database(
    read_url: str | None = None,
    service_url: str | None = None,
) -> Database:
    """
    Create the read and service engines with their session factories.

    URLs default to DATABASE_URL and SERVICE_DATABASE_URL from settings.
    """
    read_url = read_url or settings.DATABASE_URL
    service_url = service_url or settings.service_database_url

    logger.info("database_engine_initializing", database_url=make_url(read_url).render_as_string())
    if not settings.SERVICE_DATABASE_URL and service_url == read_url:
        logger.warning(
            "config_service_database_url_missing",
            note="seeding will write through the read credentials",
        )

    read_engine = _engine(read_url)
    service_engine = _engine(service_url)

    logger.info("database_engine_ready")
    return Database(
        read_engine=read_engine,
        service_engine=service_engine,
        read_sessions=_session_factory(read_engine),
        service_sessions=_session_factory(service_engine),
    )
