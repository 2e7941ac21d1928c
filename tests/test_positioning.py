from datetime import date

import pytest

from calendar_models import Interval
from positioning import InvalidInterval, position_interval, position_intervals
from window import build_window, empty_window


def _iv(iid, start, end, group="G1", project="P1"):
    return Interval(id=iid, group_id=group, project_label=project, start_date=start, end_date=end, label=iid)


def test_inside_window_is_not_clipped(five_days):
    p = position_interval(_iv("A", date(2025, 1, 2), date(2025, 1, 4)), five_days)
    assert (p.start_column, p.column_span, p.end_column) == (1, 3, 4)
    assert not p.clipped_left and not p.clipped_right
    assert p.row_index is None


def test_single_day_interval_spans_one_column(five_days):
    p = position_interval(_iv("A", date(2025, 1, 5), date(2025, 1, 5)), five_days)
    assert (p.start_column, p.column_span) == (4, 1)


def test_left_clipping(five_days):
    p = position_interval(_iv("A", date(2024, 12, 28), date(2025, 1, 2)), five_days)
    assert p.clipped_left is True
    assert p.start_column == 0
    assert p.column_span == 2
    assert p.clipped_right is False


def test_right_clipping(five_days):
    p = position_interval(_iv("A", date(2025, 1, 4), date(2025, 1, 10)), five_days)
    assert (p.start_column, p.column_span) == (3, 2)
    assert p.clipped_right is True
    assert p.clipped_left is False


def test_clipped_on_both_sides_covers_whole_window(five_days):
    p = position_interval(_iv("A", date(2024, 12, 1), date(2025, 2, 1)), five_days)
    assert (p.start_column, p.column_span) == (0, 5)
    assert p.clipped_left and p.clipped_right


def test_outside_window_is_dropped(five_days):
    assert position_interval(_iv("A", date(2024, 12, 1), date(2024, 12, 31)), five_days) is None
    assert position_interval(_iv("A", date(2025, 1, 6), date(2025, 1, 9)), five_days) is None


def test_unscheduled_is_dropped(five_days):
    assert position_interval(_iv("A", None, date(2025, 1, 2)), five_days) is None
    assert position_interval(_iv("A", date(2025, 1, 2), None), five_days) is None


def test_empty_window_positions_nothing():
    assert position_interval(_iv("A", date(2025, 1, 2), date(2025, 1, 3)), empty_window(date(2025, 1, 1))) is None


def test_start_after_end_raises(five_days):
    with pytest.raises(InvalidInterval) as exc:
        position_interval(_iv("BAD", date(2025, 1, 4), date(2025, 1, 2)), five_days)
    assert exc.value.interval.id == "BAD"
    assert isinstance(exc.value, ValueError)


def test_month_window_clips_at_previous_month_start():
    w = build_window(date(2025, 3, 15), "month")
    p = position_interval(_iv("A", date(2025, 1, 20), date(2025, 2, 3)), w)
    assert (p.start_column, p.column_span) == (0, 3)
    assert p.clipped_left and not p.clipped_right


def test_position_intervals_skips_bad_records_with_warnings(five_days):
    intervals = [
        _iv("OK", date(2025, 1, 1), date(2025, 1, 2)),
        _iv("BAD", date(2025, 1, 4), date(2025, 1, 2)),
        _iv("NODATE", None, None),
        _iv("FAR", date(2026, 1, 1), date(2026, 1, 2)),
    ]
    positioned, warnings = position_intervals(intervals, five_days)

    assert [p.interval_id for p in positioned] == ["OK"]
    assert len(warnings["invalid_interval"]) == 1 and "BAD" in warnings["invalid_interval"][0]
    assert len(warnings["unscheduled"]) == 1 and "NODATE" in warnings["unscheduled"][0]
    assert len(warnings["out_of_window"]) == 1 and "FAR" in warnings["out_of_window"][0]
