"""Tests for database engine setup."""

import pytest

from db.session import build_engine, get_db_session


def test_build_engine(test_settings):
    engine = build_engine(test_settings)
    assert engine.url.drivername == "postgresql+asyncpg"
    assert engine.url.database == "pa_test"
    assert engine.pool.size() == test_settings.database_pool_size


@pytest.mark.asyncio
async def test_session_requires_init():
    with pytest.raises(RuntimeError, match="Database not initialized"):
        await anext(get_db_session())
