"""Tests for the search keyword backfill script."""

import importlib.util
from pathlib import Path
from types import ModuleType

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from stockwise.database.crud import create_item, list_items

from conftest import TEST_USER

SCRIPT_PATH = Path(__file__).resolve().parents[1] / "scripts" / "backfill_search_keywords.py"


@pytest.fixture(scope="module")
def backfill_script() -> ModuleType:
    spec = importlib.util.spec_from_file_location("backfill_search_keywords", SCRIPT_PATH)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest.fixture
def script_db(backfill_script: ModuleType, session_factory: async_sessionmaker[AsyncSession], mocker):
    """Point the script at the test database; returns the close_db mock."""
    mocker.patch.object(backfill_script, "AsyncSessionLocal", session_factory)
    return mocker.patch.object(backfill_script, "close_db", mocker.AsyncMock())


async def seed_stale_items(session_factory: async_sessionmaker[AsyncSession]) -> None:
    async with session_factory() as session:
        await create_item(session, TEST_USER, {"name": "Frozen Pizza", "quantity": 1})
        await create_item(session, "user-456", {"name": "Milk", "quantity": 1})


class TestRun:
    """Tests for the script's async entry point."""

    @pytest.mark.asyncio
    async def test_dry_run_counts_without_writing(
        self, backfill_script: ModuleType, script_db, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        await seed_stale_items(session_factory)

        count = await backfill_script.run(None, dry_run=True)

        assert count == 2
        async with session_factory() as session:
            (item,) = await list_items(session, TEST_USER)
        assert item.search_keywords == []
        script_db.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_backfill_one_tenant(
        self, backfill_script: ModuleType, script_db, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        await seed_stale_items(session_factory)

        assert await backfill_script.run(TEST_USER, dry_run=False) == 1

        async with session_factory() as session:
            (item,) = await list_items(session, TEST_USER)
            (other,) = await list_items(session, "user-456")
        assert item.search_keywords == ["frozen", "pizza", "frozen pizza"]
        assert other.search_keywords == []

    @pytest.mark.asyncio
    async def test_closes_engine_on_error(self, backfill_script: ModuleType, script_db, mocker) -> None:
        mocker.patch.object(backfill_script, "backfill_search_keywords", side_effect=RuntimeError("db down"))

        with pytest.raises(RuntimeError, match="db down"):
            await backfill_script.run(None, dry_run=False)

        script_db.assert_awaited_once()


class TestMain:
    """Tests for argument handling and the printed report."""

    def test_dry_run_report(self, backfill_script: ModuleType, mocker, capsys: pytest.CaptureFixture[str]) -> None:
        run = mocker.patch.object(backfill_script, "run", mocker.AsyncMock(return_value=2))

        assert backfill_script.main(["--dry-run", "--user-id", TEST_USER]) == 2

        run.assert_awaited_once_with(TEST_USER, True)
        assert "[DRY RUN] 2 item(s) have stale search keywords" in capsys.readouterr().out

    def test_update_report(self, backfill_script: ModuleType, mocker, capsys: pytest.CaptureFixture[str]) -> None:
        run = mocker.patch.object(backfill_script, "run", mocker.AsyncMock(return_value=5))

        backfill_script.main([])

        run.assert_awaited_once_with(None, False)
        assert "Backfill complete. Items updated: 5" in capsys.readouterr().out
