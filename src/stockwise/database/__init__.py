"""Database package initialization."""

from .crud import (
    append_audit_log,
    backfill_search_keywords,
    create_item,
    get_item,
    list_audit_logs,
    list_items,
    update_item,
)
from .models import AuditLogRecord, Base, ItemRecord

__all__ = [
    # Models
    "Base",
    "ItemRecord",
    "AuditLogRecord",
    # CRUD - Items
    "create_item",
    "get_item",
    "list_items",
    "update_item",
    "backfill_search_keywords",
    # CRUD - Audit
    "append_audit_log",
    "list_audit_logs",
]
