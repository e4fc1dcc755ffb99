"""Pytest configuration and shared fixtures."""

from datetime import datetime, timezone
from typing import Any, AsyncGenerator, Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from stockwise.config import Settings
from stockwise.database.models import Base
from stockwise.exceptions import AuditError, StoreError
from stockwise.reconciler import InventoryReconciler
from stockwise.schemas import AuditLogEntry, InventoryItem

FIXED_NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

TEST_USER = "user-123"


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """Create test settings isolated from any local .env file."""
    return Settings(_env_file=None, debug=True)


@pytest_asyncio.fixture(scope="function")
async def test_engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create an in-memory SQLite engine with all tables."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test engine."""
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async with session_factory() as session:
        yield session
        await session.rollback()


class FakeCatalogStore:
    """In-memory catalog store.

    ``fail_names`` makes create/update raise StoreError for those item names;
    ``list_failures`` makes the next N ``list_all`` calls raise.
    """

    def __init__(self) -> None:
        self.items: dict[str, dict[int, dict[str, Any]]] = {}
        self.fail_names: set[str] = set()
        self.list_failures = 0
        self.list_calls = 0
        self._next_id = 1

    def seed(self, tenant_id: str, name: str, quantity: float, **fields: Any) -> int:
        item = InventoryItem(name=name, quantity=quantity, **fields)
        item_id = self._next_id
        self._next_id += 1
        self.items.setdefault(tenant_id, {})[item_id] = item.model_dump(exclude={"id"})
        return item_id

    def get(self, tenant_id: str, item_id: int) -> InventoryItem:
        return InventoryItem(id=item_id, **self.items[tenant_id][item_id])

    def all(self, tenant_id: str) -> list[InventoryItem]:
        return [InventoryItem(id=i, **fields) for i, fields in self.items.get(tenant_id, {}).items()]

    async def list_all(self, tenant_id: str) -> list[InventoryItem]:
        self.list_calls += 1
        if self.list_failures:
            self.list_failures -= 1
            raise StoreError("catalog unavailable")
        return self.all(tenant_id)

    async def create(self, tenant_id: str, fields: dict[str, Any]) -> int:
        if fields["name"] in self.fail_names:
            raise StoreError(f"write rejected for {fields['name']}")
        item_id = self._next_id
        self._next_id += 1
        self.items.setdefault(tenant_id, {})[item_id] = dict(fields)
        return item_id

    async def update(self, tenant_id: str, item_id: int, fields: dict[str, Any]) -> None:
        stored = self.items[tenant_id][item_id]
        if stored["name"] in self.fail_names:
            raise StoreError(f"write rejected for {stored['name']}")
        stored.update(fields)


class FakeAuditSink:
    """In-memory audit sink; set ``error`` to make appends fail."""

    def __init__(self) -> None:
        self.entries: list[tuple[str, AuditLogEntry]] = []
        self.error: Optional[Exception] = None

    async def append(self, tenant_id: str, entry: AuditLogEntry) -> None:
        if self.error is not None:
            raise self.error
        self.entries.append((tenant_id, entry))


@pytest.fixture
def catalog() -> FakeCatalogStore:
    return FakeCatalogStore()


@pytest.fixture
def audit_sink() -> FakeAuditSink:
    return FakeAuditSink()


@pytest.fixture
def reconciler(catalog: FakeCatalogStore, audit_sink: FakeAuditSink, test_settings: Settings) -> InventoryReconciler:
    """Reconciler over the in-memory collaborators with a frozen clock."""
    return InventoryReconciler(catalog, audit_sink, clock=lambda: FIXED_NOW, settings=test_settings)


@pytest.fixture
def failing_audit_error() -> AuditError:
    return AuditError("audit store offline")
