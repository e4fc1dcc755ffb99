"""Filtering, sorting, grouping and search over a catalog snapshot.

Every function here is a pure transformation of the items it is given; the
catalog is never read or written. Field names may be given in snake_case or
in the camelCase used by stored view definitions (``lowStockThreshold``).
Besides the stored attributes, four derived fields can be used anywhere a
field is named: ``stock_status``, ``days_until_expiration``, ``is_expired``
and ``is_expiring_soon``.
"""

import functools
from collections.abc import Iterable, Sequence
from datetime import datetime
from typing import Any, Optional

from dateutil import parser

from .config import Settings
from .config import settings as default_settings
from .schemas import FilterOperator, FilterRule, InventoryItem, InventoryView, SortConfig, ViewType
from .utils import to_utc, utcnow

_FIELD_ALIASES = {
    "lowStockThreshold": "low_stock_threshold",
    "expirationDate": "expiration_date",
    "searchKeywords": "search_keywords",
    "createdAt": "created_at",
    "updatedAt": "updated_at",
    "lastUpdated": "last_updated",
    "stockStatus": "stock_status",
    "daysUntilExpiration": "days_until_expiration",
    "isExpired": "is_expired",
    "isExpiringSoon": "is_expiring_soon",
}

_STORED_FIELDS = frozenset(InventoryItem.model_fields)

DEFAULT_VIEWS: list[InventoryView] = [
    InventoryView(
        id="all-items",
        name="All Items",
        type=ViewType.ALL,
        sort_config=SortConfig(field="name", ascending=True),
        is_default=True,
    ),
    InventoryView(
        id="fridge",
        name="Fridge",
        type=ViewType.LOCATION,
        filters=[FilterRule(field="location", operator=FilterOperator.EQUALS, value="Fridge")],
    ),
    InventoryView(
        id="larder",
        name="Larder",
        type=ViewType.LOCATION,
        filters=[FilterRule(field="location", operator=FilterOperator.EQUALS, value="Larder")],
    ),
    InventoryView(
        id="indoor-freezer",
        name="Indoor Freezer",
        type=ViewType.LOCATION,
        filters=[FilterRule(field="location", operator=FilterOperator.EQUALS, value="Indoor Freezer")],
    ),
    InventoryView(
        id="outdoor-freezer",
        name="Outdoor Freezer",
        type=ViewType.LOCATION,
        filters=[FilterRule(field="location", operator=FilterOperator.EQUALS, value="Outdoor Freezer")],
    ),
    InventoryView(
        id="low-stock",
        name="Low Stock",
        type=ViewType.LOW_STOCK,
        filters=[FilterRule(field="stock_status", operator=FilterOperator.EQUALS, value="low")],
    ),
    InventoryView(
        id="expired",
        name="Expired",
        type=ViewType.EXPIRED,
        filters=[FilterRule(field="is_expired", operator=FilterOperator.EQUALS, value=True)],
    ),
    InventoryView(
        id="expiring-soon",
        name="Expiring Soon",
        type=ViewType.EXPIRING_SOON,
        filters=[FilterRule(field="is_expiring_soon", operator=FilterOperator.EQUALS, value=True)],
    ),
]


def get_field_value(
    item: InventoryItem,
    field: str,
    now: Optional[datetime] = None,
    settings: Optional[Settings] = None,
) -> Any:
    """Resolve a stored or derived field of an item. Unknown fields give None."""
    field = _FIELD_ALIASES.get(field, field)
    if field == "stock_status":
        return item.stock_status.value
    if field == "days_until_expiration":
        return item.days_until_expiration(now)
    if field == "is_expired":
        return item.is_expired(now)
    if field == "is_expiring_soon":
        window = (settings or default_settings).expiring_soon_days
        return item.is_expiring_soon(now, window_days=window)
    if field in _STORED_FIELDS:
        return getattr(item, field)
    return None


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _as_datetime(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return to_utc(value)
    if isinstance(value, str):
        try:
            return to_utc(parser.isoparse(value))
        except (ValueError, OverflowError):
            return None
    return None


def _equals(value: Any, target: Any) -> bool:
    if isinstance(value, bool) != isinstance(target, bool):
        return False
    if isinstance(value, datetime):
        return value == _as_datetime(target)
    return value == target


def _order(value: Any, target: Any) -> Optional[int]:
    """-1/0/1 for comparable numbers or datetimes, None otherwise."""
    if _is_number(value) and _is_number(target):
        return (value > target) - (value < target)
    if isinstance(value, datetime):
        other = _as_datetime(target)
        if other is not None:
            return (value > other) - (value < other)
    return None


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (str, list)):
        return len(value) == 0
    if _is_number(value):
        return value == 0
    return False


def matches_rule(value: Any, rule: FilterRule) -> bool:
    """Whether a resolved field value satisfies one filter rule."""
    operator = rule.operator
    if operator == FilterOperator.EQUALS:
        return _equals(value, rule.value)
    if operator == FilterOperator.NOT_EQUALS:
        return not _equals(value, rule.value)
    if operator == FilterOperator.CONTAINS:
        if isinstance(value, str) and isinstance(rule.value, str):
            return rule.value.lower() in value.lower()
        if isinstance(value, list):
            return rule.value in value
        return False
    if operator == FilterOperator.GREATER_THAN:
        return _order(value, rule.value) == 1
    if operator == FilterOperator.LESS_THAN:
        return _order(value, rule.value) == -1
    if operator == FilterOperator.IS_EMPTY:
        return _is_empty(value)
    if operator == FilterOperator.IS_NOT_EMPTY:
        return not _is_empty(value)
    return False


def _compare_values(a: Any, b: Any) -> int:
    if (_is_number(a) and _is_number(b)) or (isinstance(a, datetime) and isinstance(b, datetime)):
        return (a > b) - (a < b)
    if isinstance(a, bool) and isinstance(b, bool):
        return int(a) - int(b)
    a_text, b_text = str(a), str(b)
    return (a_text > b_text) - (a_text < b_text)


def sort_items(
    items: Iterable[InventoryItem],
    sort_config: SortConfig,
    now: Optional[datetime] = None,
    settings: Optional[Settings] = None,
) -> list[InventoryItem]:
    """Stable sort on one field. Missing values go last ascending, first descending."""
    now = now or utcnow()
    keyed = [(get_field_value(item, sort_config.field, now, settings), item) for item in items]

    def compare(left: tuple[Any, InventoryItem], right: tuple[Any, InventoryItem]) -> int:
        a, b = left[0], right[0]
        if a is None and b is None:
            return 0
        if a is None:
            return 1 if sort_config.ascending else -1
        if b is None:
            return -1 if sort_config.ascending else 1
        result = _compare_values(a, b)
        return result if sort_config.ascending else -result

    return [item for _, item in sorted(keyed, key=functools.cmp_to_key(compare))]


def apply_view(
    items: Iterable[InventoryItem],
    view: InventoryView,
    now: Optional[datetime] = None,
    settings: Optional[Settings] = None,
) -> list[InventoryItem]:
    """Filter items by every rule of a view (AND), then sort if configured.

    Args:
        items: Catalog snapshot
        view: View definition
        now: Reference time for expiration-derived fields
        settings: Source of the expiring-soon window

    Returns:
        Matching items, in input order unless the view sorts them
    """
    now = now or utcnow()
    filtered = [
        item
        for item in items
        if all(matches_rule(get_field_value(item, rule.field, now, settings), rule) for rule in view.filters)
    ]
    if view.sort_config is not None:
        filtered = sort_items(filtered, view.sort_config, now, settings)
    return filtered


def group_items(
    items: Iterable[InventoryItem],
    field: str,
    now: Optional[datetime] = None,
    settings: Optional[Settings] = None,
) -> dict[str, list[InventoryItem]]:
    """Group items by the string form of a field, keeping input order.

    Items without a value land in the ``"Other"`` group.
    """
    now = now or utcnow()
    groups: dict[str, list[InventoryItem]] = {}
    for item in items:
        value = get_field_value(item, field, now, settings)
        key = "Other" if value is None else str(value)
        groups.setdefault(key, []).append(item)
    return groups


def group_view(
    items: Iterable[InventoryItem],
    view: InventoryView,
    now: Optional[datetime] = None,
    settings: Optional[Settings] = None,
) -> dict[str, list[InventoryItem]]:
    """Apply a view and group the result by its ``group_by`` field."""
    now = now or utcnow()
    filtered = apply_view(items, view, now, settings)
    if not view.group_by:
        return {"All": filtered}
    return group_items(filtered, view.group_by, now, settings)


def _is_subsequence(pattern: str, text: str) -> bool:
    remaining = iter(text)
    return all(char in remaining for char in pattern)


def _edit_distance(a: str, b: str, limit: int) -> int:
    """Optimal string alignment distance, capped at ``limit + 1``."""
    if abs(len(a) - len(b)) > limit:
        return limit + 1
    before: list[int] = []
    previous = list(range(len(b) + 1))
    for i in range(1, len(a) + 1):
        current = [i] + [0] * len(b)
        for j in range(1, len(b) + 1):
            cost = 0 if a[i - 1] == b[j - 1] else 1
            current[j] = min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost)
            if i > 1 and j > 1 and a[i - 1] == b[j - 2] and a[i - 2] == b[j - 1]:
                current[j] = min(current[j], before[j - 2] + 1)
        if min(current) > limit:
            return limit + 1
        before, previous = previous, current
    return previous[-1]


def _text_matches(text: str, query: str, fuzzy: bool, max_typo_length: int) -> bool:
    words = query.split()
    if query in text or all(word in text for word in words):
        return True
    if not fuzzy:
        return False
    if _is_subsequence(query, text) or all(_is_subsequence(word, text) for word in words):
        return True
    if len(query) > max_typo_length:
        return False
    limit = 1 if len(query) <= 4 else 2
    return any(_edit_distance(query, candidate, limit) <= limit for candidate in [*text.split(), text])


def search_items(
    items: Iterable[InventoryItem],
    query: str,
    search_fields: Sequence[str] = ("name",),
    fuzzy: bool = True,
    settings: Optional[Settings] = None,
) -> list[InventoryItem]:
    """Case-insensitive search with typo tolerance.

    An item matches when the query (or every word of it) is a substring of
    one of the searched fields. With ``fuzzy`` enabled, the query may also
    match as an in-order subsequence ("mlk" -> "milk"), and short queries
    may be a small edit distance away from a word of the field ("mjlk" ->
    "milk").

    Args:
        items: Catalog snapshot
        query: Search text; blank returns every item
        search_fields: Fields to search, name only by default
        fuzzy: Enable subsequence and edit-distance matching
        settings: Source of the typo-tolerance length limit

    Returns:
        Matching items in input order
    """
    query = query.strip().lower()
    if not query:
        return list(items)

    max_typo_length = (settings or default_settings).fuzzy_max_query_length
    results = []
    for item in items:
        for field in search_fields:
            value = get_field_value(item, field)
            if value is None:
                continue
            if _text_matches(str(value).lower(), query, fuzzy, max_typo_length):
                results.append(item)
                break
    return results


def filter_by_multiple_categories(items: Iterable[InventoryItem], categories: Iterable[str]) -> list[InventoryItem]:
    """Items in any of the given categories (OR). No categories selects everything."""
    selected = set(categories)
    if not selected:
        return list(items)
    return [item for item in items if item.category in selected]


def filter_by_multiple_locations(items: Iterable[InventoryItem], locations: Iterable[str]) -> list[InventoryItem]:
    """Items in any of the given locations (OR). No locations selects everything."""
    selected = set(locations)
    if not selected:
        return list(items)
    return [item for item in items if item.location in selected]


def filter_by_date_range(
    items: Iterable[InventoryItem],
    start: datetime,
    end: datetime,
    date_field: str = "updated_at",
) -> list[InventoryItem]:
    """Items whose date field falls strictly between ``start`` and ``end``."""
    start, end = to_utc(start), to_utc(end)
    results = []
    for item in items:
        value = get_field_value(item, date_field)
        if isinstance(value, datetime) and start < value < end:
            results.append(item)
    return results
