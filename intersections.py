from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from calendar_models import IntersectionRange, LabelRange, PositionedInterval

ColumnRange = Tuple[int, int]  # [start, end)


def merge_ranges(ranges: Iterable[ColumnRange]) -> List[ColumnRange]:
    """
    Standard sorted-interval merge on half-open ranges.

    Ranges are merged when next.start <= current.end, so touching ranges
    collapse into one. Empty ranges are dropped.
    """
    out: List[ColumnRange] = []
    for start, end in sorted(r for r in ranges if r[1] > r[0]):
        if out and start <= out[-1][1]:
            out[-1] = (out[-1][0], max(out[-1][1], end))
        else:
            out.append((start, end))
    return out


def pairwise_overlaps(ranges: Sequence[ColumnRange]) -> List[ColumnRange]:
    """Every non-empty pairwise overlap between the given ranges."""
    out: List[ColumnRange] = []
    for i, (a_start, a_end) in enumerate(ranges):
        for b_start, b_end in ranges[i + 1 :]:
            start = max(a_start, b_start)
            end = min(a_end, b_end)
            if end > start:
                out.append((start, end))
    return out


def resolve_group_intersections(group_id: str, members: Sequence[PositionedInterval]) -> List[IntersectionRange]:
    ranges = [(p.start_column, p.end_column) for p in members]
    merged = merge_ranges(pairwise_overlaps(ranges))
    return [IntersectionRange(group_id=group_id, start_column=s, end_column=e) for s, e in merged]


def resolve_intersections(positioned: Iterable[PositionedInterval]) -> List[IntersectionRange]:
    """Merged same-group overlaps for every group, ordered by (group_id, start_column)."""
    by_group: Dict[str, List[PositionedInterval]] = {}
    for p in positioned:
        by_group.setdefault(p.group_id, []).append(p)

    out: List[IntersectionRange] = []
    for group_id in sorted(by_group):
        out.extend(resolve_group_intersections(group_id, by_group[group_id]))
    return out


def subtract_ranges(base: ColumnRange, holes: Iterable[ColumnRange]) -> List[ColumnRange]:
    """Segments of base not covered by any hole, left to right."""
    start, end = base
    out: List[ColumnRange] = []
    cursor = start
    for h_start, h_end in merge_ranges(holes):
        if h_end <= cursor or h_start >= end:
            continue
        if h_start > cursor:
            out.append((cursor, h_start))
        cursor = max(cursor, h_end)
        if cursor >= end:
            break
    if cursor < end:
        out.append((cursor, end))
    return out


def label_safe_range(
    interval: PositionedInterval,
    intersections: Iterable[IntersectionRange],
) -> Optional[LabelRange]:
    """
    The longest part of the interval free of hatched overlap, for label centering.

    Ties go to the leftmost segment. None when the whole interval lies under
    intersections of its own group.
    """
    holes = [
        (r.start_column, r.end_column)
        for r in intersections
        if r.group_id == interval.group_id
        and r.start_column < interval.end_column
        and interval.start_column < r.end_column
    ]
    segments = subtract_ranges((interval.start_column, interval.end_column), holes)
    if not segments:
        return None

    best = segments[0]
    for seg in segments[1:]:
        if seg[1] - seg[0] > best[1] - best[0]:
            best = seg
    return LabelRange(interval_id=interval.interval_id, start_column=best[0], end_column=best[1])


def compute_label_ranges(
    positioned: Iterable[PositionedInterval],
    intersections: Iterable[IntersectionRange],
) -> List[LabelRange]:
    by_group: Dict[str, List[IntersectionRange]] = {}
    for r in intersections:
        by_group.setdefault(r.group_id, []).append(r)

    out: List[LabelRange] = []
    for p in positioned:
        lr = label_safe_range(p, by_group.get(p.group_id, []))
        if lr is not None:
            out.append(lr)
    return out
