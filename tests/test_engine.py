"""Tests for database engine and session management."""

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from stockwise.config import Settings
from stockwise.database.engine import (
    AsyncSessionLocal,
    build_engine,
    close_db,
    engine,
)


class TestBuildEngine:
    """Tests for build_engine."""

    @pytest.mark.asyncio
    async def test_engine_from_settings(self) -> None:
        """The engine targets the configured database through asyncpg."""
        config = Settings(_env_file=None, postgres_host="db.example", postgres_port=6543, postgres_db="pantry")
        built = build_engine(config)

        try:
            assert isinstance(built, AsyncEngine)
            assert built.url.drivername == "postgresql+asyncpg"
            assert built.url.host == "db.example"
            assert built.url.port == 6543
            assert built.url.database == "pantry"
        finally:
            await built.dispose()

    @pytest.mark.asyncio
    async def test_echo_follows_debug(self) -> None:
        built = build_engine(Settings(_env_file=None, debug=True))

        try:
            assert built.sync_engine.echo is True
        finally:
            await built.dispose()

    def test_pool_pre_ping_enabled(self) -> None:
        """Verify pool_pre_ping is True to detect stale connections."""
        assert engine.pool._pre_ping is True

    def test_pool_recycle_set(self) -> None:
        """Verify pool_recycle=3600 so idle connections are replaced."""
        assert engine.pool._recycle == 3600


class TestSessionFactory:
    """Tests for session factory."""

    def test_bound_to_module_engine(self) -> None:
        assert AsyncSessionLocal.kw["bind"] is engine

    @pytest.mark.asyncio
    async def test_create_session(self) -> None:
        """Creating a session does not open a connection."""
        async with AsyncSessionLocal() as session1:
            async with AsyncSessionLocal() as session2:
                assert isinstance(session1, AsyncSession)
                assert session1 is not session2


class TestCloseDb:
    """Tests for database cleanup."""

    @pytest.mark.asyncio
    async def test_close_db(self) -> None:
        """Disposing an engine with no open connections should not raise."""
        await close_db()
