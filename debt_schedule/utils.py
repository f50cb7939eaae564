"""Utility functions for the debt schedule generator.

This module provides helpers for parsing user input into Python data types
and for calendar arithmetic: adding months, counting whole months between two
dates and placing an installment on its due day. It uses Python's
``datetime`` and ``calendar`` modules for month lengths.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal, getcontext
import calendar

getcontext().prec = 28  # increase decimal precision to avoid rounding errors


def parse_date(value: str) -> date:
    """Parse an ISO date string into a ``date`` object.

    Accepts ``"YYYY-MM-DD"`` as well as ``"YYYY-MM"``; the latter maps to the
    first day of the month.

    Raises
    ------
    ValueError
        If the string is not a valid date.
    """
    try:
        parts = value.strip().split("-")
        if len(parts) == 2:
            return date(int(parts[0]), int(parts[1]), 1)
        if len(parts) == 3:
            return date(int(parts[0]), int(parts[1]), int(parts[2]))
        raise ValueError
    except Exception as exc:
        raise ValueError(f"Invalid date string: {value}") from exc


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def add_months(dt: date, months: int) -> date:
    """Return a new date a number of months after ``dt``.

    The day of the month is clamped to the last valid day if needed (e.g.,
    adding one month to Jan 31 yields Feb 28 or 29).
    """
    year = dt.year + (dt.month - 1 + months) // 12
    month = (dt.month - 1 + months) % 12 + 1
    day = min(dt.day, days_in_month(year, month))
    return date(year, month, day)


def months_between(start: date, end: date) -> int:
    """Whole calendar months from ``start`` to ``end``, ignoring the day."""
    return (end.year - start.year) * 12 + (end.month - start.month)


def tenor_months(start: date, end: date) -> int:
    """Number of monthly periods in a contract; never less than one."""
    return max(1, months_between(start, end))


def due_date_for(start: date, period: int, due_day: int) -> date:
    """Due date of ``period`` (1-indexed) for a contract starting on ``start``.

    The installment falls in the month ``period - 1`` months after the start
    month, on ``due_day`` or on the last day of that month when it is shorter.
    """
    first_of_month = add_months(date(start.year, start.month, 1), period - 1)
    day = min(due_day, days_in_month(first_of_month.year, first_of_month.month))
    return first_of_month.replace(day=day)


def decimal_from_str(value: str) -> Decimal:
    """Convert a numeric string into a ``Decimal``.

    The function strips any commas and handles both integer and float-like
    strings. It raises ``ValueError`` if conversion fails.
    """
    try:
        cleaned = str(value).replace(",", "").strip()
        return Decimal(cleaned)
    except Exception as exc:
        raise ValueError(f"Invalid numeric value: {value}") from exc
