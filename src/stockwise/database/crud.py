"""CRUD operations for inventory management."""

import logging
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..utils import generate_search_keywords
from .models import AuditLogRecord, ItemRecord

logger = logging.getLogger(__name__)


# ===== Inventory Item Operations =====


async def list_items(session: AsyncSession, user_id: str) -> list[ItemRecord]:
    """List every item in a tenant's catalog.

    Args:
        session: Database session
        user_id: ID of the owning tenant

    Returns:
        All items of the tenant in insertion (id) order
    """
    result = await session.execute(
        select(ItemRecord).where(ItemRecord.user_id == user_id).order_by(ItemRecord.id.asc())
    )
    return list(result.scalars().all())


async def get_item(session: AsyncSession, user_id: str, item_id: int) -> Optional[ItemRecord]:
    """Get an inventory item by ID.

    Args:
        session: Database session
        user_id: ID of the owning tenant (prevents cross-tenant access)
        item_id: ID of the item to retrieve

    Returns:
        The item if found and owned by the tenant, None otherwise
    """
    result = await session.execute(
        select(ItemRecord).where(
            ItemRecord.id == item_id,
            ItemRecord.user_id == user_id,
        )
    )
    return result.scalar_one_or_none()


async def create_item(session: AsyncSession, user_id: str, fields: dict[str, Any]) -> ItemRecord:
    """Create a new inventory item.

    Args:
        session: Database session
        user_id: ID of the owning tenant
        fields: Column values for the new item

    Returns:
        The created item
    """
    item = ItemRecord(user_id=user_id, **fields)
    session.add(item)
    await session.commit()
    await session.refresh(item)
    logger.info(f"Created item: {item.name} (id={item.id}, user_id={user_id})")
    return item


async def update_item(
    session: AsyncSession,
    user_id: str,
    item_id: int,
    changes: dict[str, Any],
) -> Optional[ItemRecord]:
    """Apply a partial update to an inventory item.

    Only the keys present in ``changes`` are written; a value of None clears
    the column.

    Args:
        session: Database session
        user_id: ID of the owning tenant
        item_id: ID of the item to update
        changes: Column values to overwrite

    Returns:
        The updated item if found, None otherwise
    """
    item = await get_item(session, user_id, item_id)
    if not item:
        return None

    for column, value in changes.items():
        if not hasattr(ItemRecord, column):
            raise ValueError(f"Unknown inventory item field: {column}")
        setattr(item, column, value)

    await session.commit()
    await session.refresh(item)
    logger.info(f"Updated item: {item.name} (id={item.id}, fields={sorted(changes)})")
    return item


async def backfill_search_keywords(
    session: AsyncSession,
    user_id: Optional[str] = None,
    dry_run: bool = False,
) -> int:
    """Regenerate search keywords that are missing or stale.

    Args:
        session: Database session
        user_id: Restrict the backfill to one tenant (all tenants if None)
        dry_run: Count stale items without writing

    Returns:
        Number of items whose keywords were (or would be) rewritten
    """
    query = select(ItemRecord).order_by(ItemRecord.id.asc())
    if user_id is not None:
        query = query.where(ItemRecord.user_id == user_id)

    result = await session.execute(query)
    updated = 0
    for item in result.scalars().all():
        keywords = generate_search_keywords(item.name or "")
        if not keywords:
            continue
        if sorted(item.search_keywords or []) != sorted(keywords):
            updated += 1
            if not dry_run:
                item.search_keywords = keywords

    if updated and not dry_run:
        await session.commit()
    logger.info(f"Search keyword backfill: {updated} item(s) {'stale' if dry_run else 'updated'}")
    return updated


# ===== Audit Log Operations =====


async def append_audit_log(
    session: AsyncSession,
    user_id: str,
    action: str,
    description: str,
    item_ids: Optional[list[int]] = None,
    details: Optional[dict[str, Any]] = None,
    timestamp: Optional[datetime] = None,
) -> AuditLogRecord:
    """Append an entry to a tenant's audit trail.

    Args:
        session: Database session
        user_id: ID of the tenant the batch was applied to
        action: Provenance tag of the batch
        description: Human readable summary
        item_ids: IDs of the items the batch touched
        details: JSON-serializable metadata (summary, results, ...)
        timestamp: When the batch ran (database time if omitted)

    Returns:
        The created audit log entry
    """
    entry = AuditLogRecord(
        user_id=user_id,
        action=action,
        description=description,
        item_ids=item_ids or [],
        details=details,
    )
    if timestamp is not None:
        entry.timestamp = timestamp
    session.add(entry)
    await session.commit()
    await session.refresh(entry)
    logger.info(f"Logged audit entry: {action} (id={entry.id}, user_id={user_id})")
    return entry


async def list_audit_logs(
    session: AsyncSession,
    user_id: str,
    limit: int = 100,
    action: Optional[str] = None,
) -> list[AuditLogRecord]:
    """Get a tenant's audit log entries, newest first.

    Args:
        session: Database session
        user_id: ID of the tenant
        limit: Maximum number of entries to return
        action: Optional provenance tag filter

    Returns:
        List of audit log entries
    """
    query = select(AuditLogRecord).where(AuditLogRecord.user_id == user_id)

    if action:
        query = query.where(AuditLogRecord.action == action)

    query = query.order_by(AuditLogRecord.timestamp.desc(), AuditLogRecord.id.desc()).limit(limit)

    result = await session.execute(query)
    return list(result.scalars().all())
