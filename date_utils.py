from __future__ import annotations

from datetime import date, timedelta
from typing import List, Tuple

_DAYS_IN_MONTH = (31, 28, 31, 30, 31, 30, 31, 31, 30, 31, 30, 31)


def is_leap_year(year: int) -> bool:
    return year % 4 == 0 and (year % 100 != 0 or year % 400 == 0)


def days_in_month(year: int, month: int) -> int:
    """Number of days in the given month (1-12), honoring leap years."""
    if month == 2 and is_leap_year(year):
        return 29
    return _DAYS_IN_MONTH[month - 1]


def month_start(d: date) -> date:
    return date(d.year, d.month, 1)


def month_end(d: date) -> date:
    return date(d.year, d.month, days_in_month(d.year, d.month))


def add_months(d: date, months: int) -> date:
    """
    Shift a date by whole months.

    The day of month is clamped to the target month length, so
    2024-01-31 + 1 month == 2024-02-29.
    """
    idx = d.year * 12 + (d.month - 1) + months
    year, month0 = divmod(idx, 12)
    month = month0 + 1
    return date(year, month, min(d.day, days_in_month(year, month)))


def iter_days(start: date, end: date) -> List[date]:
    """All days in [start, end], inclusive. Empty when end < start."""
    out: List[date] = []
    cur = start
    while cur <= end:
        out.append(cur)
        cur += timedelta(days=1)
    return out


def day_span_inclusive(start: date, end: date) -> int:
    """
    Inclusive end-date semantics:
      - A same-day stage spans 1 day.
      - end < start yields 0.
    """
    return max((end - start).days + 1, 0)


def clamp_range(start: date, end: date, lo: date, hi: date) -> Tuple[date, date]:
    """Clamp [start, end] into [lo, hi]. Caller guarantees the ranges intersect."""
    return max(start, lo), min(end, hi)
