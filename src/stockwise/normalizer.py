"""Validation and coercion of raw inventory update requests.

Raw requests arrive loosely typed from several sources (manual entry, parsed
shopping lists, agents). ``parse_update`` turns one of them into an
``UpdateCandidate`` or raises ``UpdateValidationError`` naming the offending
field. Optional fields keep their tri-state meaning:

- key absent            -> leave the stored value unchanged
- ``None`` or ``""``    -> clear the stored value
- any other valid value -> overwrite the stored value
"""

import math
import numbers
from collections.abc import Mapping
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Optional

from dateutil import parser

from .exceptions import UpdateValidationError
from .schemas import UpdateAction, UpdateCandidate
from .utils import to_utc

MISSING_FIELDS_MESSAGE = "Missing required fields: name, quantity, action"

EXPIRATION_FIELD = "expirationDate"

# Optional free-text fields copied as-is when supplied
OPTIONAL_STRING_FIELDS = ("unit", "category", "location", "brand", "size", "notes")


class _Unset:
    """Marker for a key that is not present in the raw payload."""

    def __repr__(self) -> str:
        return "UNSET"


UNSET: Any = _Unset()


def _lookup(raw: Mapping[str, Any], *keys: str) -> Any:
    """Return the value of the first key present in ``raw``, else UNSET."""
    for key in keys:
        if key in raw:
            return raw[key]
    return UNSET


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _to_non_negative_number(value: Any) -> Optional[float]:
    """Coerce real numbers (including ``Decimal``) and numeric strings to a finite float >= 0."""
    if isinstance(value, bool):
        return None
    try:
        if isinstance(value, (numbers.Real, Decimal)):
            number = float(value)
        elif isinstance(value, str):
            number = float(value.strip())
        else:
            return None
    except (ValueError, OverflowError):
        return None
    if not math.isfinite(number) or number < 0:
        return None
    return number


def _from_epoch_millis(milliseconds: float) -> Optional[datetime]:
    try:
        return datetime.fromtimestamp(milliseconds / 1000, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def _timestamp_parts(value: Any) -> Optional[tuple[Any, Any]]:
    """Extract (seconds, nanoseconds) from a store-timestamp-shaped value."""
    for seconds_key, nanos_key in (("seconds", "nanoseconds"), ("_seconds", "_nanoseconds")):
        if isinstance(value, Mapping):
            if seconds_key in value:
                return value[seconds_key], value.get(nanos_key, 0)
        elif hasattr(value, seconds_key):
            return getattr(value, seconds_key), getattr(value, nanos_key, 0)
    return None


def normalize_expiration_date(value: Any) -> Optional[datetime]:
    """Normalize an expiration date of any accepted shape to an aware UTC datetime.

    Shapes are checked in order: blank (clears), ISO-8601 string, epoch
    milliseconds, ``datetime``, ``date``, and finally a mapping or object
    exposing ``seconds``/``nanoseconds`` (or ``_seconds``/``_nanoseconds``).

    Args:
        value: Raw expiration date value

    Returns:
        The canonical instant, or None when the value asks to clear the date

    Raises:
        UpdateValidationError: If the value has a recognised shape but cannot
            be parsed, or has no recognised shape at all
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        return None

    if isinstance(value, bool):
        raise UpdateValidationError(
            "Invalid expiration date format: provide ISO string or timestamp", field=EXPIRATION_FIELD
        )

    if isinstance(value, str):
        try:
            return to_utc(parser.isoparse(value.strip()))
        except (ValueError, OverflowError):
            raise UpdateValidationError(
                f'Invalid expiration date: "{value}" (expected ISO 8601 format)', field=EXPIRATION_FIELD
            ) from None

    if isinstance(value, (int, float)):
        parsed = _from_epoch_millis(value)
        if parsed is None:
            raise UpdateValidationError(
                "Invalid expiration date: numeric value could not be parsed", field=EXPIRATION_FIELD
            )
        return parsed

    if isinstance(value, datetime):
        return to_utc(value)

    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)

    parts = _timestamp_parts(value)
    if parts is not None:
        seconds, nanoseconds = parts
        if nanoseconds is None:
            nanoseconds = 0
        numeric = all(isinstance(n, (int, float)) and not isinstance(n, bool) for n in (seconds, nanoseconds))
        parsed = _from_epoch_millis(seconds * 1000 + nanoseconds / 1e6) if numeric else None
        if parsed is None:
            raise UpdateValidationError(
                "Invalid expiration date: timestamp value could not be parsed", field=EXPIRATION_FIELD
            )
        return parsed

    raise UpdateValidationError(
        "Invalid expiration date format: provide ISO string or timestamp", field=EXPIRATION_FIELD
    )


def _parse_optional_string(field: str, value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise UpdateValidationError(f"{field} must be a string", field=field)
    return value


def _parse_threshold(value: Any) -> Optional[float]:
    if _is_blank(value):
        return None
    threshold = _to_non_negative_number(value)
    if threshold is None:
        raise UpdateValidationError(
            "Low stock threshold must be a non-negative number", field="lowStockThreshold"
        )
    return threshold


def display_name(raw: Any) -> str:
    """Best-effort name of a raw update for result and error reporting."""
    if isinstance(raw, Mapping):
        name = raw.get("name")
        if name is not None and str(name).strip():
            return str(name).strip()
    return "unknown"


def parse_update(raw: Any) -> UpdateCandidate:
    """Validate one raw update request.

    Args:
        raw: Loosely typed update, e.g. ``{"name": "Milk", "quantity": "2",
            "action": "ADD", "expirationDate": "2026-03-01"}``

    Returns:
        The typed candidate. Only the optional fields present in ``raw`` end
        up in ``model_fields_set``.

    Raises:
        UpdateValidationError: On the first invalid field
    """
    if not isinstance(raw, Mapping):
        raise UpdateValidationError("Invalid update payload", field="payload")

    raw_name = raw.get("name")
    name = str(raw_name).strip() if raw_name is not None else ""
    quantity_value = raw.get("quantity")
    raw_action = raw.get("action")
    action_text = str(raw_action).strip().lower() if raw_action is not None else ""

    if not name:
        raise UpdateValidationError(MISSING_FIELDS_MESSAGE, field="name")
    if _is_blank(quantity_value):
        raise UpdateValidationError(MISSING_FIELDS_MESSAGE, field="quantity")
    if not action_text:
        raise UpdateValidationError(MISSING_FIELDS_MESSAGE, field="action")

    try:
        action = UpdateAction(action_text)
    except ValueError:
        raise UpdateValidationError(
            f'Invalid action "{action_text}". Use add, subtract, or set.', field="action"
        ) from None

    quantity = _to_non_negative_number(quantity_value)
    if quantity is None:
        raise UpdateValidationError("Quantity must be a non-negative number", field="quantity")

    fields: dict[str, Any] = {"name": name, "quantity": quantity, "action": action}

    expiration = _lookup(raw, "expirationDate", "expiration_date", "expiryDate")
    if expiration is not UNSET:
        fields["expiration_date"] = normalize_expiration_date(expiration)

    for field in OPTIONAL_STRING_FIELDS:
        value = raw.get(field, UNSET)
        if value is not UNSET:
            fields[field] = _parse_optional_string(field, value)

    threshold = _lookup(raw, "lowStockThreshold", "low_stock_threshold")
    if threshold is not UNSET:
        fields["low_stock_threshold"] = _parse_threshold(threshold)

    return UpdateCandidate(**fields)
