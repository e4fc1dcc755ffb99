"""Catalog store and audit sink collaborators used by the reconciler.

The reconciler only talks to the ``CatalogStore`` and ``AuditSink``
protocols, so it holds no process-wide database state and can be exercised
against any substitute implementation. The SQL implementations below run on
an explicitly passed ``async_sessionmaker``.
"""

import logging
from typing import Any, Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .database import crud
from .exceptions import AuditError, StoreError
from .schemas import AuditLogEntry, InventoryItem

logger = logging.getLogger(__name__)


class CatalogStore(Protocol):
    async def list_all(self, tenant_id: str) -> list[InventoryItem]:
        """Return the tenant's items in a stable order."""
        ...

    async def create(self, tenant_id: str, fields: dict[str, Any]) -> int:
        """Store a new item and return its ID."""
        ...

    async def update(self, tenant_id: str, item_id: int, fields: dict[str, Any]) -> None:
        """Write only the supplied fields of an existing item."""
        ...


class AuditSink(Protocol):
    async def append(self, tenant_id: str, entry: AuditLogEntry) -> None:
        ...


class SqlCatalogStore:
    """Catalog store backed by the ``inventory_items`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def list_all(self, tenant_id: str) -> list[InventoryItem]:
        try:
            async with self._session_factory() as session:
                records = await crud.list_items(session, tenant_id)
                return [InventoryItem.model_validate(record) for record in records]
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to load inventory: {e}") from e

    async def create(self, tenant_id: str, fields: dict[str, Any]) -> int:
        try:
            async with self._session_factory() as session:
                record = await crud.create_item(session, tenant_id, fields)
                return record.id
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to create item: {e}") from e

    async def update(self, tenant_id: str, item_id: int, fields: dict[str, Any]) -> None:
        try:
            async with self._session_factory() as session:
                record = await crud.update_item(session, tenant_id, item_id, fields)
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to update item {item_id}: {e}") from e
        if record is None:
            raise StoreError(f"Item with id={item_id} not found")


class SqlAuditSink:
    """Audit sink backed by the ``audit_logs`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def append(self, tenant_id: str, entry: AuditLogEntry) -> None:
        payload = entry.model_dump(mode="json")
        try:
            async with self._session_factory() as session:
                await crud.append_audit_log(
                    session,
                    user_id=tenant_id,
                    action=entry.action.value,
                    description=entry.description,
                    item_ids=entry.item_ids,
                    details=payload["metadata"],
                    timestamp=entry.timestamp,
                )
        except SQLAlchemyError as e:
            raise AuditError(f"Failed to write audit log: {e}") from e
