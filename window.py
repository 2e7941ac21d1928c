from __future__ import annotations

from datetime import date, timedelta
from typing import List, Optional, Sequence, Tuple

from calendar_models import DayHeader, Granularity, MonthGroup, VisibleWindow
from date_utils import add_months, iter_days, month_end, month_start

MONTH_NAMES = {
    "ru": [
        "январь", "февраль", "март", "апрель", "май", "июнь",
        "июль", "август", "сентябрь", "октябрь", "ноябрь", "декабрь",
    ],
    "en": [
        "January", "February", "March", "April", "May", "June",
        "July", "August", "September", "October", "November", "December",
    ],
}

WEEKDAY_SHORT = {
    "ru": ["пн", "вт", "ср", "чт", "пт", "сб", "вс"],
    "en": ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"],
}

# Months moved by one navigation step.
_STEP_MONTHS = {"month": 1, "quarter": 3, "halfyear": 6, "year": 12}


def _names(table: dict, locale: str) -> List[str]:
    return table.get(locale) or table["ru"]


def period_bounds(reference: date, granularity: Granularity, *, month_padding: str = "months") -> Tuple[date, date]:
    """
    First and last visible day for a reference date.

    Month view deliberately shows the full previous, current and next month so
    the consuming UI can scroll horizontally across month boundaries without a
    jump. With month_padding="weeks" the current month is padded to whole
    Monday-first weeks instead. Quarter / halfyear / year views cover exactly
    their period.
    """
    if granularity == "month":
        if month_padding == "weeks":
            first = month_start(reference)
            last = month_end(reference)
            return first - timedelta(days=first.weekday()), last + timedelta(days=6 - last.weekday())
        return month_start(add_months(reference, -1)), month_end(add_months(reference, 1))

    if granularity == "quarter":
        first_month = ((reference.month - 1) // 3) * 3 + 1
        start = date(reference.year, first_month, 1)
        return start, month_end(add_months(start, 2))

    if granularity == "halfyear":
        first_month = ((reference.month - 1) // 6) * 6 + 1
        start = date(reference.year, first_month, 1)
        return start, month_end(add_months(start, 5))

    if granularity == "year":
        return date(reference.year, 1, 1), date(reference.year, 12, 31)

    raise ValueError(f"Unknown granularity: {granularity!r}")


def month_label(year: int, month: int, locale: str = "ru") -> str:
    return f"{_names(MONTH_NAMES, locale)[month - 1]} {year}"


def build_month_groups(days: Sequence[date], locale: str = "ru") -> List[MonthGroup]:
    """Group consecutive days sharing (month, year). Used for header labels only."""
    out: List[MonthGroup] = []
    current: Optional[Tuple[int, int]] = None
    start_idx = 0

    for idx, d in enumerate(days):
        key = (d.year, d.month)
        if key != current:
            if current is not None:
                out.append(
                    MonthGroup(
                        label=month_label(current[0], current[1], locale),
                        year=current[0],
                        month=current[1],
                        start_column=start_idx,
                        day_count=idx - start_idx,
                    )
                )
            current = key
            start_idx = idx

    if current is not None:
        out.append(
            MonthGroup(
                label=month_label(current[0], current[1], locale),
                year=current[0],
                month=current[1],
                start_column=start_idx,
                day_count=len(days) - start_idx,
            )
        )
    return out


def build_window(
    reference: date,
    granularity: Granularity,
    *,
    month_padding: str = "months",
    locale: str = "ru",
) -> VisibleWindow:
    start, end = period_bounds(reference, granularity, month_padding=month_padding)
    days = iter_days(start, end)
    return VisibleWindow(
        granularity=granularity,
        reference_date=reference,
        days=tuple(days),
        month_groups=tuple(build_month_groups(days, locale)),
    )


def empty_window(reference: date, granularity: Granularity = "month") -> VisibleWindow:
    """A degenerate window with no day cells."""
    return VisibleWindow(granularity=granularity, reference_date=reference)


def shift_reference(reference: date, granularity: Granularity, steps: int = 1) -> date:
    """Move the reference date by whole periods (negative steps go back)."""
    if granularity not in _STEP_MONTHS:
        raise ValueError(f"Unknown granularity: {granularity!r}")
    return add_months(reference, _STEP_MONTHS[granularity] * steps)


def period_title(reference: date, granularity: Granularity, locale: str = "ru") -> str:
    """Navigation title, e.g. 'март 2025', '1 квартал 2025', '2 полугодие 2025', '2025'."""
    if granularity == "month":
        return month_label(reference.year, reference.month, locale)
    if granularity == "quarter":
        q = (reference.month - 1) // 3 + 1
        return f"{q} квартал {reference.year}" if locale == "ru" else f"Q{q} {reference.year}"
    if granularity == "halfyear":
        h = (reference.month - 1) // 6 + 1
        return f"{h} полугодие {reference.year}" if locale == "ru" else f"H{h} {reference.year}"
    return str(reference.year)


def day_headers(window: VisibleWindow, today: Optional[date] = None, locale: str = "ru") -> List[DayHeader]:
    weekdays = _names(WEEKDAY_SHORT, locale)
    return [
        DayHeader(
            column=idx,
            day=d,
            weekday_label=weekdays[d.weekday()],
            day_number=d.day,
            is_today=(today is not None and d == today),
        )
        for idx, d in enumerate(window.days)
    ]
