"""Pydantic models shared by the reconciliation and view engines."""

import enum
from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .config import settings
from .utils import to_utc, utcnow


class StockStatus(str, enum.Enum):
    """Derived stock classification of an item. Never persisted."""

    GOOD = "good"
    LOW = "low"
    OUT = "out"


class UpdateAction(str, enum.Enum):
    ADD = "add"
    SUBTRACT = "subtract"
    SET = "set"


class ProvenanceTag(str, enum.Enum):
    """How a batch of updates originated. Used only for audit categorization."""

    INVENTORY_UPDATE = "inventory_update"
    INVENTORY_APPLY = "inventory_apply"
    INVENTORY_AGENT = "inventory_agent"


# ===== Catalog =====


class InventoryItem(BaseModel):
    """Point-in-time snapshot of a stored inventory item."""

    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    name: str
    quantity: float = 0.0
    unit: str = Field(default_factory=lambda: settings.default_unit)
    category: str = Field(default_factory=lambda: settings.default_category)
    location: Optional[str] = None
    low_stock_threshold: float = Field(default_factory=lambda: settings.default_low_stock_threshold)
    notes: Optional[str] = None
    brand: Optional[str] = None
    size: Optional[str] = None
    expiration_date: Optional[datetime] = None
    search_keywords: list[str] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    last_updated: Optional[datetime] = None

    @field_validator("expiration_date", "created_at", "updated_at", "last_updated")
    @classmethod
    def _as_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        # Some backends (SQLite) hand back naive datetimes
        return to_utc(value) if value is not None else None

    @field_validator("search_keywords", mode="before")
    @classmethod
    def _keywords_default(cls, value: Any) -> Any:
        return [] if value is None else value

    @property
    def stock_status(self) -> StockStatus:
        if self.quantity <= 0:
            return StockStatus.OUT
        if self.quantity <= self.low_stock_threshold:
            return StockStatus.LOW
        return StockStatus.GOOD

    def days_until_expiration(self, now: Optional[datetime] = None) -> Optional[int]:
        """Whole days until expiration, truncated toward zero. None if undated."""
        if self.expiration_date is None:
            return None
        now = to_utc(now) if now is not None else utcnow()
        return int((self.expiration_date - now).total_seconds() / 86400)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        days = self.days_until_expiration(now)
        return days is not None and days < 0

    def is_expiring_soon(self, now: Optional[datetime] = None, window_days: Optional[int] = None) -> bool:
        days = self.days_until_expiration(now)
        if window_days is None:
            window_days = settings.expiring_soon_days
        return days is not None and 0 <= days <= window_days


# ===== Reconciliation =====


class UpdateCandidate(BaseModel):
    """A validated update request.

    Optional fields carry tri-state semantics through ``model_fields_set``:
    a field that was never supplied is left unchanged on merge, a supplied
    ``None`` clears the stored value, and a supplied value overwrites it.
    """

    name: str
    quantity: float
    action: UpdateAction
    unit: Optional[str] = None
    category: Optional[str] = None
    location: Optional[str] = None
    brand: Optional[str] = None
    size: Optional[str] = None
    notes: Optional[str] = None
    low_stock_threshold: Optional[float] = None
    expiration_date: Optional[datetime] = None

    def is_supplied(self, field: str) -> bool:
        return field in self.model_fields_set


class UpdateResult(BaseModel):
    id: Optional[int] = None
    name: str
    success: bool
    action: Optional[Literal["created", "updated"]] = None
    quantity: Optional[float] = None
    expiration_date: Optional[datetime] = None
    message: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def failure(cls, name: str, error: str) -> "UpdateResult":
        return cls(name=name, success=False, error=error)


class BatchSummary(BaseModel):
    total: int = 0
    successful: int = 0
    failed: int = 0


class AuditOutcome(BaseModel):
    """Whether the audit entry for a batch was recorded.

    Reported next to the batch result instead of raised, so a failed audit
    write never changes what the caller receives.
    """

    recorded: bool
    error: Optional[str] = None


class BatchResult(BaseModel):
    results: list[UpdateResult] = Field(default_factory=list)
    summary: BatchSummary = Field(default_factory=BatchSummary)
    validation_errors: list[str] = Field(default_factory=list)
    audit: AuditOutcome = Field(default_factory=lambda: AuditOutcome(recorded=False))

    def to_response(self) -> dict[str, Any]:
        """The primary ``{results, summary, validation_errors}`` payload."""
        return self.model_dump(mode="json", include={"results", "summary", "validation_errors"})


class AuditLogEntry(BaseModel):
    action: ProvenanceTag
    timestamp: datetime
    user_id: str
    item_ids: list[int] = Field(default_factory=list)
    description: str
    metadata: dict[str, Any] = Field(default_factory=dict)


# ===== Views =====


class FilterOperator(str, enum.Enum):
    EQUALS = "equals"
    NOT_EQUALS = "notEquals"
    GREATER_THAN = "greaterThan"
    LESS_THAN = "lessThan"
    CONTAINS = "contains"
    IS_EMPTY = "isEmpty"
    IS_NOT_EMPTY = "isNotEmpty"


class ViewType(str, enum.Enum):
    ALL = "all"
    LOCATION = "location"
    LOW_STOCK = "lowStock"
    EXPIRED = "expired"
    EXPIRING_SOON = "expiringSoon"
    CATEGORY = "category"
    CUSTOM = "custom"


class FilterRule(BaseModel):
    field: str
    operator: FilterOperator = FilterOperator.EQUALS
    value: Any = None


class SortConfig(BaseModel):
    field: str
    ascending: bool = True


class InventoryView(BaseModel):
    """A saved presentation of the catalog: AND-ed filters, sort, grouping.

    Accepts camelCase keys (``sortConfig``, ``groupBy``) when loaded from
    stored JSON.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    name: str
    type: ViewType = ViewType.ALL
    filters: list[FilterRule] = Field(default_factory=list)
    sort_config: Optional[SortConfig] = None
    group_by: Optional[str] = None
    is_default: bool = False
