from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Tuple

from calendar_models import Interval, PositionedInterval, VisibleWindow
from date_utils import clamp_range


class InvalidInterval(ValueError):
    """Raised when an interval's start date falls after its end date."""

    def __init__(self, interval: Interval):
        self.interval = interval
        super().__init__(
            f"{interval.id}: start_date {interval.start_date} is after end_date {interval.end_date}."
        )


def position_interval(interval: Interval, window: VisibleWindow) -> Optional[PositionedInterval]:
    """
    Map an interval's absolute dates onto window columns.

    Returns None when the interval is unscheduled (either date missing), when
    the window is empty, or when the interval does not intersect the window.
    Dates outside the window are clipped to its first/last column and flagged
    with clipped_left / clipped_right.
    """
    if interval.start_date is None or interval.end_date is None:
        return None
    if interval.start_date > interval.end_date:
        raise InvalidInterval(interval)
    if window.is_empty:
        return None

    w_start, w_end = window.start, window.end
    if interval.end_date < w_start or interval.start_date > w_end:
        return None

    clipped_left = interval.start_date < w_start
    clipped_right = interval.end_date > w_end
    start, end = clamp_range(interval.start_date, interval.end_date, w_start, w_end)
    start_col = window.column_of(start)
    end_col = window.column_of(end)

    return PositionedInterval(
        interval_id=interval.id,
        group_id=interval.group_id,
        project_label=interval.project_label,
        start_column=start_col,
        column_span=end_col - start_col + 1,
        clipped_left=clipped_left,
        clipped_right=clipped_right,
    )


def position_intervals(
    intervals: Iterable[Interval],
    window: VisibleWindow,
) -> Tuple[List[PositionedInterval], Dict[str, List[str]]]:
    """
    Position every interval; invalid ones are skipped with a warning.

    Returns (positioned, warnings) where warnings maps a category to messages:
    invalid_interval, unscheduled, out_of_window.
    """
    warnings: Dict[str, List[str]] = {"invalid_interval": [], "unscheduled": [], "out_of_window": []}
    out: List[PositionedInterval] = []

    for iv in intervals:
        if not iv.is_scheduled:
            warnings["unscheduled"].append(f"{iv.id}: '{iv.label}' has no start/end date (not shown).")
            continue
        try:
            p = position_interval(iv, window)
        except InvalidInterval as e:
            warnings["invalid_interval"].append(f"{e} Skipped.")
            continue
        if p is None:
            warnings["out_of_window"].append(f"{iv.id}: '{iv.label}' is outside the visible window.")
            continue
        out.append(p)

    return out, warnings
