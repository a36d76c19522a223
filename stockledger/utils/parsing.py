"""Lenient parsers for values arriving from forms, query strings and JSON."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

__all__ = ["clean_string", "safe_int", "safe_decimal", "parse_date"]


def clean_string(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def safe_int(value: Any) -> Optional[int]:
    """Return an int only for whole numbers; ``"2.5"`` and ``True`` are rejected."""
    if value in (None, "", "null") or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None


def safe_decimal(value: Any) -> Optional[Decimal]:
    if value in (None, "", "null") or isinstance(value, bool):
        return None
    try:
        return Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None


def parse_date(value: Any) -> Optional[date]:
    """Accept ``date`` objects, datetimes and ISO ``YYYY-MM-DD`` strings."""
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return None
