"""Utility functions for stockwise application."""

import re
from datetime import datetime, timezone

_NON_KEYWORD_CHARS = re.compile(r"[^a-z0-9\s]")


def generate_search_keywords(name: str) -> list[str]:
    """
    Generate search keywords for an item name.

    The name is lower-cased, every character outside ``[a-z0-9]`` and
    whitespace is replaced with a space, and the result is split into tokens.
    The keywords are the unique tokens plus the full normalized phrase, which
    supports prefix and substring lookup without a dedicated text index.

    Args:
        name: Display name of the item

    Returns:
        Unique keywords in first-seen order, phrase last

    Examples:
        >>> generate_search_keywords("Semi-Skimmed Milk!")
        ['semi', 'skimmed', 'milk', 'semi skimmed milk']

        >>> generate_search_keywords("Eggs")
        ['eggs']

        >>> generate_search_keywords("!!!")
        []
    """
    tokens = _NON_KEYWORD_CHARS.sub(" ", name.lower()).split()

    keywords: dict[str, None] = {}
    for token in tokens:
        keywords.setdefault(token, None)

    phrase = " ".join(tokens)
    if phrase:
        keywords.setdefault(phrase, None)

    return list(keywords)


def utcnow() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def to_utc(value: datetime) -> datetime:
    """Convert a datetime to aware UTC, treating naive values as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def format_quantity(quantity: float) -> str:
    """Render a quantity for messages without a trailing ``.0``.

    Examples:
        >>> format_quantity(2.0)
        '2'
        >>> format_quantity(1.5)
        '1.5'
    """
    if float(quantity).is_integer():
        return str(int(quantity))
    return str(quantity)
