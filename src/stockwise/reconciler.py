"""Reconciliation of update batches into a tenant's inventory catalog.

A batch is processed strictly in order, one item at a time. Each raw update
is validated, matched against the catalog by case-insensitive name, and
either creates a new item or merges into the matched one. A failure on one
item is recorded on that item's result and never stops the batch. Once all
items are processed an audit entry is written; its outcome is reported on
``BatchResult.audit`` and never raised.
"""

import logging
import math
from collections.abc import Callable, Iterable, Mapping, Sequence
from datetime import datetime
from typing import Any, Optional

from .config import Settings
from .config import settings as default_settings
from .exceptions import StockwiseError, UpdateValidationError
from .normalizer import display_name, parse_update
from .schemas import (
    AuditLogEntry,
    AuditOutcome,
    BatchResult,
    BatchSummary,
    InventoryItem,
    ProvenanceTag,
    UpdateAction,
    UpdateCandidate,
    UpdateResult,
)
from .stores import AuditSink, CatalogStore
from .utils import format_quantity, generate_search_keywords, utcnow

logger = logging.getLogger(__name__)

_ACTION_VERBS = {
    UpdateAction.ADD: "Added",
    UpdateAction.SUBTRACT: "Used",
    UpdateAction.SET: "Set",
}

# Cleared by writing None
_NULLABLE_FIELDS = ("location", "brand", "size", "notes", "expiration_date")


class CatalogIndex:
    """A tenant's catalog snapshot with a case-insensitive name -> id index.

    The first item seen for a lower-cased name owns that name, which gives
    the same answer as scanning the snapshot front to back. The index is
    kept current with ``put`` after every write so later updates in a batch
    see earlier ones.
    """

    def __init__(self, items: Iterable[InventoryItem] = ()) -> None:
        self._items: dict[int, InventoryItem] = {}
        self._ids_by_name: dict[str, int] = {}
        for item in items:
            self.put(item)

    def __len__(self) -> int:
        return len(self._items)

    def find(self, name: str) -> Optional[InventoryItem]:
        item_id = self._ids_by_name.get(name.lower())
        if item_id is None:
            return None
        return self._items[item_id]

    def put(self, item: InventoryItem) -> None:
        if item.id is None:
            raise ValueError(f"Cannot index item without an id: {item.name!r}")
        self._items[item.id] = item
        self._ids_by_name.setdefault(item.name.lower(), item.id)


def apply_quantity(action: UpdateAction, current: float, delta: float) -> float:
    """Compute the new stock level. Subtraction never goes below zero."""
    if action == UpdateAction.ADD:
        return current + delta
    if action == UpdateAction.SUBTRACT:
        return max(0.0, current - delta)
    return delta


def _or_default(value: Any, default: Any) -> Any:
    return default if value is None else value


def build_new_item(
    candidate: UpdateCandidate,
    now: datetime,
    config: Optional[Settings] = None,
) -> dict[str, Any]:
    """Field values for an item created from an unmatched candidate."""
    config = config or default_settings
    fields: dict[str, Any] = {
        "name": candidate.name,
        "quantity": candidate.quantity,
        "unit": _or_default(candidate.unit, config.default_unit),
        "category": _or_default(candidate.category, config.default_category),
        "low_stock_threshold": _or_default(candidate.low_stock_threshold, config.default_low_stock_threshold),
        "search_keywords": generate_search_keywords(candidate.name),
        "created_at": now,
        "updated_at": now,
        "last_updated": now,
    }
    for field in _NULLABLE_FIELDS:
        fields[field] = getattr(candidate, field)
    return fields


def build_item_changes(
    candidate: UpdateCandidate,
    existing: InventoryItem,
    now: datetime,
    config: Optional[Settings] = None,
) -> dict[str, Any]:
    """Partial changes merging a candidate into a matched item.

    Only optional fields the candidate supplied are included. Clearing a
    non-nullable field (unit, category, threshold) restores its default.
    """
    config = config or default_settings
    changes: dict[str, Any] = {
        "quantity": apply_quantity(candidate.action, existing.quantity, candidate.quantity),
        "updated_at": now,
        "last_updated": now,
        "search_keywords": generate_search_keywords(existing.name),
    }

    defaults = {
        "unit": config.default_unit,
        "category": config.default_category,
        "low_stock_threshold": config.default_low_stock_threshold,
    }
    for field, default in defaults.items():
        if candidate.is_supplied(field):
            changes[field] = _or_default(getattr(candidate, field), default)

    for field in _NULLABLE_FIELDS:
        if candidate.is_supplied(field):
            changes[field] = getattr(candidate, field)

    return changes


def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    return number if math.isfinite(number) else None


def _as_provenance(value: ProvenanceTag | str) -> ProvenanceTag:
    try:
        return ProvenanceTag(value)
    except ValueError:
        logger.warning(f"Unknown provenance tag {value!r}, recording batch as {ProvenanceTag.INVENTORY_UPDATE.value}")
        return ProvenanceTag.INVENTORY_UPDATE


def _project_request(update: Any) -> dict[str, Any]:
    """Keep only the audit-relevant, well-typed parts of a raw update."""
    if not isinstance(update, Mapping):
        update = {}

    def text(key: str) -> Optional[str]:
        value = update.get(key)
        return value if isinstance(value, str) else None

    return {
        "name": text("name"),
        "action": text("action"),
        "quantity": _as_number(update.get("quantity")),
        "unit": text("unit"),
        "category": text("category"),
    }


def build_audit_entry(
    actor_id: str,
    provenance: ProvenanceTag,
    updates: Sequence[Any],
    results: Sequence[UpdateResult],
    summary: BatchSummary,
    validation_errors: Sequence[str],
    now: datetime,
    config: Optional[Settings] = None,
) -> AuditLogEntry:
    """Summarize a processed batch as a size-bounded audit entry.

    Lists are cut to ``audit_max_entries`` and the description to
    ``audit_description_max_length`` characters.
    """
    config = config or default_settings
    cap = config.audit_max_entries
    description = f"Processed {summary.successful}/{summary.total} inventory updates ({provenance.value})"

    return AuditLogEntry(
        action=provenance,
        timestamp=now,
        user_id=actor_id,
        item_ids=[r.id for r in results if r.success and r.id is not None],
        description=description[: config.audit_description_max_length],
        metadata={
            "summary": summary.model_dump(),
            "validation_errors": list(validation_errors[:cap]),
            "results": [r.model_dump(mode="json") for r in results[:cap]],
            "requested_updates": [_project_request(u) for u in list(updates)[:cap]],
        },
    )


class InventoryReconciler:
    """Applies batches of inventory updates to a tenant's catalog.

    Args:
        catalog: Store holding the tenants' items
        audit_sink: Destination for one audit entry per batch
        clock: Source of the current time for timestamps
        settings: Defaults and audit bounds (module settings if omitted)
    """

    def __init__(
        self,
        catalog: CatalogStore,
        audit_sink: AuditSink,
        clock: Callable[[], datetime] = utcnow,
        settings: Optional[Settings] = None,
    ) -> None:
        self.catalog = catalog
        self.audit_sink = audit_sink
        self._clock = clock
        self._settings = settings or default_settings

    async def apply_updates(
        self,
        actor_id: str,
        updates: Sequence[Any],
        provenance: ProvenanceTag | str = ProvenanceTag.INVENTORY_UPDATE,
    ) -> BatchResult:
        """Apply an ordered batch of raw updates for one actor.

        Args:
            actor_id: Already authenticated tenant/actor identifier
            updates: Raw update requests, processed in order
            provenance: How the batch originated, recorded in the audit entry;
                unknown tags are recorded as ``inventory_update``

        Returns:
            Per-item results, the batch summary, one ``"<name>: <error>"``
            string per failed item, and the audit outcome
        """
        provenance = _as_provenance(provenance)
        updates = list(updates)
        results: list[UpdateResult] = []
        index: Optional[CatalogIndex] = None

        for raw in updates:
            name = display_name(raw)
            try:
                candidate = parse_update(raw)
                if index is None:
                    index = CatalogIndex(await self.catalog.list_all(actor_id))
                result = await self._reconcile(actor_id, candidate, index)
            except UpdateValidationError as e:
                logger.warning(f"Rejected update for {name!r} (field={e.field}): {e}")
                result = UpdateResult.failure(name, str(e))
            except StockwiseError as e:
                logger.warning(f"Failed to apply update for {name!r}: {e}")
                result = UpdateResult.failure(name, str(e))
            except Exception as e:  # Intentionally broad: one bad item must not abort the batch
                logger.exception(f"Unexpected error applying update for {name!r}")
                result = UpdateResult.failure(name, str(e) or "Failed to process update")
            results.append(result)

        successful = sum(1 for r in results if r.success)
        summary = BatchSummary(total=len(results), successful=successful, failed=len(results) - successful)
        validation_errors = [f"{r.name}: {r.error}" for r in results if not r.success and r.error]

        audit = await self._record_audit(actor_id, provenance, updates, results, summary, validation_errors)

        logger.info(
            f"Applied {summary.successful}/{summary.total} inventory updates "
            f"for user_id={actor_id} ({provenance.value})"
        )
        return BatchResult(
            results=results,
            summary=summary,
            validation_errors=validation_errors,
            audit=audit,
        )

    async def _reconcile(
        self,
        actor_id: str,
        candidate: UpdateCandidate,
        index: CatalogIndex,
    ) -> UpdateResult:
        existing = index.find(candidate.name)
        now = self._clock()

        if existing is None:
            fields = build_new_item(candidate, now, self._settings)
            item_id = await self.catalog.create(actor_id, fields)
            item = InventoryItem(id=item_id, **fields)
            index.put(item)
            return UpdateResult(
                id=item_id,
                name=candidate.name,
                success=True,
                action="created",
                quantity=item.quantity,
                expiration_date=item.expiration_date,
                message=f"Added {candidate.name}: {format_quantity(item.quantity)} {item.unit}",
            )

        changes = build_item_changes(candidate, existing, now, self._settings)
        await self.catalog.update(actor_id, existing.id, changes)
        item = existing.model_copy(update=changes)
        index.put(item)
        verb = _ACTION_VERBS[candidate.action]
        return UpdateResult(
            id=item.id,
            name=candidate.name,
            success=True,
            action="updated",
            quantity=item.quantity,
            expiration_date=item.expiration_date,
            message=f"{verb} {candidate.name}: now {format_quantity(item.quantity)} {item.unit}",
        )

    async def _record_audit(
        self,
        actor_id: str,
        provenance: ProvenanceTag,
        updates: Sequence[Any],
        results: list[UpdateResult],
        summary: BatchSummary,
        validation_errors: list[str],
    ) -> AuditOutcome:
        try:
            entry = build_audit_entry(
                actor_id,
                provenance,
                updates,
                results,
                summary,
                validation_errors,
                now=self._clock(),
                config=self._settings,
            )
            await self.audit_sink.append(actor_id, entry)
        except Exception as e:  # Intentionally broad: audit is best-effort
            logger.error(f"Failed to record audit log entry for user_id={actor_id}: {e}")
            return AuditOutcome(recorded=False, error=str(e) or type(e).__name__)
        return AuditOutcome(recorded=True)
