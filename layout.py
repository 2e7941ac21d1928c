from __future__ import annotations

import hashlib
from datetime import date
from typing import Dict, List, Optional, Tuple

from calendar_models import CalendarDataset, CalendarLayout, LayoutSettings, ProductGroup, VisibleWindow
from groups import compute_group_boxes
from intersections import compute_label_ranges, resolve_intersections
from positioning import position_intervals
from scheduler import assign_rows, validate_rows
from window import build_window

WARNING_CATEGORIES = (
    "invalid_interval",
    "unknown_group",
    "group_project_conflict",
    "empty_window",
    "unscheduled",
    "out_of_window",
)


def _empty_warnings() -> Dict[str, List[str]]:
    return {k: [] for k in WARNING_CATEGORIES}


def resolve_groups(dataset: CalendarDataset) -> Tuple[Dict[str, ProductGroup], List[str]]:
    """
    Product records by id, plus a synthesized singleton group for every
    interval that references an unknown product.

    Returns (groups, warnings).
    """
    groups = dataset.group_map()
    warnings: List[str] = []
    for iv in dataset.intervals:
        if iv.group_id in groups:
            continue
        groups[iv.group_id] = ProductGroup(
            id=iv.group_id,
            project_label=iv.project_label,
            product_label=iv.group_id,
        )
        warnings.append(f"{iv.id}: unknown product '{iv.group_id}'; laid out as its own group.")
    return groups, warnings


def group_project_conflicts(dataset: CalendarDataset) -> List[str]:
    """
    Products whose stages (or product record) carry more than one project label.

    Such a product is packed per label but gets a single box.
    """
    labels: Dict[str, set] = {g.id: {g.project_label} for g in dataset.groups}
    for iv in dataset.intervals:
        labels.setdefault(iv.group_id, set()).add(iv.project_label)
    return [
        f"Product '{gid}' appears under several projects: {', '.join(sorted(found))}; its box takes the alphabetically first label among its visible stages."
        for gid, found in sorted(labels.items())
        if len(found) > 1
    ]


def compute_layout(dataset: CalendarDataset, window: VisibleWindow) -> CalendarLayout:
    """
    Pure layout computation for one (dataset, window) pair.

    Steps: position each interval (clipping at the window edges), pack rows,
    derive per-product bounding boxes, merge same-product overlaps and pick a
    label-safe range per interval. Bad records are skipped and reported in
    CalendarLayout.warnings; nothing here raises for data problems.
    """
    warnings = _empty_warnings()

    if window.is_empty:
        warnings["empty_window"].append("The visible window has no days; nothing to lay out.")
        return CalendarLayout(window=window, warnings=warnings)

    _, group_warnings = resolve_groups(dataset)
    warnings["unknown_group"].extend(group_warnings)
    warnings["group_project_conflict"].extend(group_project_conflicts(dataset))

    positioned, position_warnings = position_intervals(dataset.intervals, window)
    for category, messages in position_warnings.items():
        warnings[category].extend(messages)

    packed = assign_rows(positioned)
    boxes = compute_group_boxes(packed)
    intersections = resolve_intersections(packed)
    label_ranges = compute_label_ranges(packed, intersections)

    return CalendarLayout(
        window=window,
        intervals=tuple(packed),
        groups=tuple(boxes),
        intersections=tuple(intersections),
        label_ranges=tuple(label_ranges),
        warnings=warnings,
    )


def layout_for_settings(
    dataset: CalendarDataset,
    settings: LayoutSettings,
    *,
    today: Optional[date] = None,
) -> CalendarLayout:
    """Build the window described by settings (reference date defaults to today) and lay out the dataset."""
    reference = settings.reference_date or settings.today_date or today or date.today()
    window = build_window(
        reference,
        settings.granularity,
        month_padding=settings.month_padding,
        locale=settings.locale,
    )
    return compute_layout(dataset, window)


def dataset_version(dataset: CalendarDataset) -> str:
    """Content hash of a dataset; with VisibleWindow.key it identifies a layout for memoization."""
    payload = dataset.model_dump_json().encode("utf-8")
    return hashlib.sha1(payload).hexdigest()[:16]


def validate_layout(layout: CalendarLayout) -> Tuple[bool, str]:
    """
    Utility for tests/debug: row rules plus bounding-box containment and
    disjoint, maximal intersection ranges.

    Returns (ok, message).
    """
    ok, msg = validate_rows(layout.intervals)
    if not ok:
        return ok, msg

    boxes = {g.group_id: g for g in layout.groups}
    for p in layout.intervals:
        box = boxes.get(p.group_id)
        if box is None:
            return False, f"Group {p.group_id} of interval {p.interval_id} has no bounding box."
        if p.start_column < box.start_column or p.end_column > box.end_column:
            return False, f"Interval {p.interval_id} sticks out of group {p.group_id}."

    by_group: Dict[str, List[Tuple[int, int]]] = {}
    for r in layout.intersections:
        by_group.setdefault(r.group_id, []).append((r.start_column, r.end_column))
    for group_id, ranges in by_group.items():
        ranges.sort()
        for (_, a_end), (b_start, _) in zip(ranges, ranges[1:]):
            if b_start <= a_end:
                return False, f"Intersections of group {group_id} are not maximal at column {b_start}."

    return True, "ok"
