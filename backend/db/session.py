"""Async SQLAlchemy session management.

PostgreSQL holds ONLY daily aggregates and the consent audit trail.
Raw events and visitor identifiers never reach it.

Writes are small upserts and inserts made inside the request that caused
them; the session commits when the request finishes and rolls back if it
fails.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from app.config import Settings, get_settings
from app.logging_config import get_logger

logger = get_logger(__name__)

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def build_engine(settings: Settings) -> AsyncEngine:
    """Engine tuned for short analytics writes.

    A statement timeout keeps a slow aggregate upsert from holding up event
    ingestion, and the application name makes the pool visible in
    ``pg_stat_activity``.
    """
    return create_async_engine(
        settings.database_url,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
        pool_pre_ping=True,
        pool_recycle=1800,
        echo=settings.debug,
        connect_args={
            "server_settings": {
                "application_name": "portfolio-analytics",
                "statement_timeout": str(settings.database_statement_timeout_ms),
            }
        },
    )


async def init_db() -> None:
    """Create the engine and session factory."""
    global _engine, _session_factory
    settings = get_settings()

    _engine = build_engine(settings)
    _session_factory = async_sessionmaker(
        bind=_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    logger.info(
        "database_engine_initialized",
        pool_size=settings.database_pool_size,
        statement_timeout_ms=settings.database_statement_timeout_ms,
    )


async def close_db() -> None:
    global _engine, _session_factory
    if _engine:
        await _engine.dispose()
        _engine = None
        _session_factory = None
        logger.info("database_engine_closed")


def get_engine() -> AsyncEngine | None:
    return _engine


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped session for aggregate and audit writes."""
    if _session_factory is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")

    async with _session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            logger.warning("database_session_rolled_back")
            raise
