from __future__ import annotations

from datetime import date

import matplotlib.pyplot as plt
from matplotlib.patches import FancyBboxPatch, Rectangle

from calendar_models import CalendarDataset, Interval, LayoutSettings, ProductGroup
from layout import compute_layout, resolve_groups
from renderer import chip_segments, hatch_segments, progress_extent, render_calendar


def _iv(iid, group, start, end, progress=0):
    return Interval(
        id=iid, group_id=group, project_label="P1", start_date=start, end_date=end, label=iid, progress=progress
    )


def _split_group_layout(make_window):
    """
    G1: A [0,3). G2: B [1,6), C [2,4), D [4,8).
    Packed: A and D share row 0, B and C go to row 1; G2's merged overlap is [2,6).
    """
    ds = CalendarDataset(
        intervals=(
            _iv("A", "G1", date(2025, 1, 1), date(2025, 1, 3)),
            _iv("B", "G2", date(2025, 1, 2), date(2025, 1, 6)),
            _iv("C", "G2", date(2025, 1, 3), date(2025, 1, 4)),
            _iv("D", "G2", date(2025, 1, 5), date(2025, 1, 8)),
        ),
        groups=(
            ProductGroup(id="G1", project_label="P1", product_label="G1"),
            ProductGroup(id="G2", project_label="P1", product_label="G2"),
        ),
    )
    return ds, compute_layout(ds, make_window(date(2025, 1, 1), 10))


def test_split_group_packs_as_expected(make_window):
    _, layout = _split_group_layout(make_window)
    assert {p.interval_id: p.row_index for p in layout.intervals} == {"A": 0, "B": 1, "C": 1, "D": 0}
    assert [(r.group_id, r.start_column, r.end_column) for r in layout.intersections] == [("G2", 2, 6)]


def test_hatch_stays_under_own_group_bars(make_window):
    _, layout = _split_group_layout(make_window)
    segments = hatch_segments(layout)
    assert segments == [(0, 4, 6), (1, 2, 6)]

    a = next(p for p in layout.intervals if p.interval_id == "A")
    for row, start, end in segments:
        if row == a.row_index:
            assert end <= a.start_column or start >= a.end_column


def test_chips_do_not_cover_other_products(make_window):
    _, layout = _split_group_layout(make_window)
    assert chip_segments(layout) == [("G1", 0, 0, 3), ("G2", 0, 4, 8), ("G2", 1, 1, 6)]


def test_chip_splits_around_other_product_in_same_row(make_window):
    ds = CalendarDataset(
        intervals=(
            _iv("A", "G1", date(2025, 1, 1), date(2025, 1, 2)),
            _iv("B", "G1", date(2025, 1, 7), date(2025, 1, 8)),
            _iv("C", "G2", date(2025, 1, 4), date(2025, 1, 5)),
        ),
        groups=(
            ProductGroup(id="G1", project_label="P1", product_label="G1"),
            ProductGroup(id="G2", project_label="P1", product_label="G2"),
        ),
    )
    layout = compute_layout(ds, make_window(date(2025, 1, 1), 10))
    assert layout.row_count == 1
    assert chip_segments(layout) == [("G1", 0, 0, 2), ("G1", 0, 6, 8), ("G2", 0, 3, 5)]


def test_rendered_hatches_match_segments(make_window):
    ds, layout = _split_group_layout(make_window)
    groups, _ = resolve_groups(ds)
    fig, _ = render_calendar(layout, groups, {iv.id: iv for iv in ds.intervals}, LayoutSettings(), preview=True)
    try:
        ax_main = fig.axes[2]
        hatches = sorted(
            (round(p.get_y()), p.get_x(), p.get_x() + p.get_width())
            for p in ax_main.patches
            if isinstance(p, Rectangle) and p.get_hatch()
        )
        chips = [p for p in ax_main.patches if isinstance(p, FancyBboxPatch)]
    finally:
        plt.close(fig)
    assert hatches == [(0, 4, 6), (1, 2, 6)]
    assert len(chips) == 3


def test_progress_extent(make_window):
    window = make_window(date(2025, 1, 1), 10)
    ds = CalendarDataset(
        intervals=(
            _iv("HALF", "G1", date(2025, 1, 1), date(2025, 1, 10), progress=50),
            _iv("NONE", "G2", date(2025, 1, 1), date(2025, 1, 4)),
            _iv("EARLY", "G3", date(2024, 12, 27), date(2025, 1, 5), progress=50),
            _iv("LATE", "G4", date(2024, 12, 27), date(2025, 1, 5), progress=80),
        )
    )
    layout = compute_layout(ds, window)
    by_id = {iv.id: iv for iv in ds.intervals}
    extents = {p.interval_id: progress_extent(p, by_id[p.interval_id], window) for p in layout.intervals}

    assert extents["HALF"] == (0.0, 5.0)
    assert extents["NONE"] is None
    # Done part ends exactly at the window start
    assert extents["EARLY"] is None
    assert extents["LATE"] == (0.0, 3.0)
