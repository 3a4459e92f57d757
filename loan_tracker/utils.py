"""Utility functions for the loan tracker.

This module provides helpers for normalizing dates to calendar days, counting
days between them, and parsing user input (ISO or DD/MM/YYYY dates, amounts
with thousands separators, rate types) into Python data types.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal, InvalidOperation, getcontext
from typing import Union

from .data_models import RATE_TYPES

getcontext().prec = 28  # increase decimal precision to avoid rounding errors

DateLike = Union[date, datetime]


def start_of_day(value: DateLike) -> date:
    """Truncate ``value`` to its calendar day.

    Time-of-day is never significant to the engine, so ``datetime`` values are
    reduced to their ``date`` component. Plain dates are returned unchanged.
    """
    if isinstance(value, datetime):
        return value.date()
    return value


def days_between(start: DateLike, end: DateLike) -> int:
    """Return the number of calendar days from ``start`` to ``end``.

    The result is negative when ``end`` precedes ``start``.
    """
    return (start_of_day(end) - start_of_day(start)).days


def parse_date(value: str) -> date:
    """Parse a date string into a ``date`` object.

    Accepts ISO dates (``YYYY-MM-DD``, a trailing time component is ignored)
    and the display format ``DD/MM/YYYY``.

    Raises
    ------
    ValueError
        If the string is not a valid date.
    """
    text = value.strip()
    try:
        if "/" in text:
            return datetime.strptime(text, "%d/%m/%Y").date()
        return date.fromisoformat(text[:10])
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid date: {value}") from exc


def decimal_from_str(value: str) -> Decimal:
    """Convert a numeric string into a ``Decimal``.

    The function strips any commas and surrounding whitespace. It raises
    ``ValueError`` if conversion fails or the value is not finite (NaN,
    infinity).
    """
    try:
        cleaned = str(value).replace(",", "").strip()
        result = Decimal(cleaned)
    except (InvalidOperation, ValueError) as exc:
        raise ValueError(f"Invalid numeric value: {value}") from exc
    if not result.is_finite():
        raise ValueError(f"Invalid numeric value: {value}")
    return result


def parse_rate_type(value: str) -> str:
    typ = value.strip().lower()
    if typ not in RATE_TYPES:
        raise ValueError(f"Rate type must be 'fixed' or 'float'; got {value}")
    return typ


def format_date_for_display(value: DateLike) -> str:
    """Format a date as DD/MM/YYYY."""
    return start_of_day(value).strftime("%d/%m/%Y")
