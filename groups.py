from __future__ import annotations

from datetime import date
from typing import Dict, Iterable, List, Optional, Tuple

from calendar_models import Interval, PositionedGroup, PositionedInterval

DateSpan = Tuple[Optional[date], Optional[date]]


def compute_group_boxes(positioned: Iterable[PositionedInterval]) -> List[PositionedGroup]:
    """
    One bounding box per group: min start column to max end column over its
    members, regardless of how many packed rows the members occupy.

    A box edge is clipped only when a member that reaches that edge is itself
    clipped; starting on column 0 is not enough. Members filed under more than
    one project label give the box the smallest label.
    Output is ordered by (project_label, group_id).
    """
    members: Dict[str, List[PositionedInterval]] = {}
    for p in positioned:
        members.setdefault(p.group_id, []).append(p)

    out: List[PositionedGroup] = []
    for group_id, items in members.items():
        start = min(p.start_column for p in items)
        end = max(p.end_column for p in items)
        rows = [p.row_index for p in items if p.row_index is not None]
        out.append(
            PositionedGroup(
                group_id=group_id,
                project_label=min(p.project_label for p in items),
                start_column=start,
                column_span=end - start,
                clipped_left=any(p.clipped_left for p in items if p.start_column == start),
                clipped_right=any(p.clipped_right for p in items if p.end_column == end),
                first_row=min(rows) if rows else 0,
                last_row=max(rows) if rows else 0,
            )
        )

    out.sort(key=lambda g: (g.project_label, g.group_id))
    return out


def _span(items: List[Interval]) -> DateSpan:
    starts = [iv.start_date for iv in items if iv.start_date is not None]
    ends = [iv.end_date for iv in items if iv.end_date is not None]
    return (min(starts) if starts else None, max(ends) if ends else None)


def compute_product_spans(intervals: Iterable[Interval]) -> Dict[str, DateSpan]:
    """Earliest start / latest end per group. Missing dates are ignored independently."""
    by_group: Dict[str, List[Interval]] = {}
    for iv in intervals:
        by_group.setdefault(iv.group_id, []).append(iv)
    return {gid: _span(items) for gid, items in by_group.items()}


def compute_project_spans(intervals: Iterable[Interval]) -> Dict[str, DateSpan]:
    """
    Earliest start / latest end per project label.

    Derived from the product spans, so a product with no dated stage does not
    affect its project. (None, None) when the project has no dates at all.
    """
    items = list(intervals)
    project_of = {iv.group_id: iv.project_label for iv in items}
    product_spans = compute_product_spans(items)

    out: Dict[str, DateSpan] = {}
    for gid, (start, end) in product_spans.items():
        label = project_of[gid]
        cur_start, cur_end = out.get(label, (None, None))
        if start is not None:
            cur_start = start if cur_start is None else min(cur_start, start)
        if end is not None:
            cur_end = end if cur_end is None else max(cur_end, end)
        out[label] = (cur_start, cur_end)
    return out
