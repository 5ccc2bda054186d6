"""Calendar helpers shared by the syntax parser and time-context resolver.

Weeks start on Monday. Month arithmetic clamps the day to the target month's
length (Jan 31 + 1 month = Feb 28/29).
"""

from __future__ import annotations

import calendar
import re
from datetime import date, datetime, timedelta

_RELATIVE_RE = re.compile(r"^([+-]?)(\d+)([dwmy])$", re.IGNORECASE)
_US_RE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")
_INTL_RE = re.compile(r"^(\d{4})[/.](\d{1,2})[/.](\d{1,2})$")
_ISO_RE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$")


def add_months(d: date, months: int) -> date:
    total = d.year * 12 + (d.month - 1) + months
    year, month0 = divmod(total, 12)
    month = month0 + 1
    day = min(d.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def week_bounds(d: date, offset: int = 0) -> tuple[date, date]:
    start = d - timedelta(days=d.weekday()) + timedelta(weeks=offset)
    return start, start + timedelta(days=6)


def month_bounds(d: date, offset: int = 0) -> tuple[date, date]:
    first = add_months(d.replace(day=1), offset)
    last = first.replace(day=calendar.monthrange(first.year, first.month)[1])
    return first, last


def year_bounds(d: date, offset: int = 0) -> tuple[date, date]:
    y = d.year + offset
    return date(y, 1, 1), date(y, 12, 31)


def period_bounds(unit: str, today: date, offset: int = 0) -> tuple[date, date]:
    if unit == "week":
        return week_bounds(today, offset)
    if unit == "month":
        return month_bounds(today, offset)
    if unit == "year":
        return year_bounds(today, offset)
    raise ValueError(f"unknown period unit: {unit!r}")


def parse_relative(value: str, today: date) -> date | None:
    """Parse signed offsets like 3d, +2w, -1m, 1y relative to today."""
    m = _RELATIVE_RE.match((value or "").strip())
    if not m:
        return None
    sign = -1 if m.group(1) == "-" else 1
    amount = int(m.group(2)) * sign
    unit = m.group(3).lower()
    if unit == "d":
        return today + timedelta(days=amount)
    if unit == "w":
        return today + timedelta(weeks=amount)
    if unit == "m":
        return add_months(today, amount)
    return add_months(today, amount * 12)


def parse_date_literal(value: str) -> date | None:
    """Parse YYYY-MM-DD, YYYY/MM/DD or MM/DD/YYYY; None when invalid."""
    v = (value or "").strip()
    try:
        m = _ISO_RE.match(v) or _INTL_RE.match(v)
        if m:
            return date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
        m = _US_RE.match(v)
        if m:
            return date(int(m.group(3)), int(m.group(1)), int(m.group(2)))
    except ValueError:
        return None
    try:
        return datetime.fromisoformat(v).date()
    except ValueError:
        return None
