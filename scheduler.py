from __future__ import annotations

from collections.abc import Iterable
from typing import Dict, List, Tuple

from calendar_models import PositionedInterval


def packing_order_key(p: PositionedInterval) -> Tuple[str, str, int, str]:
    return (p.project_label, p.group_id, p.start_column, p.interval_id)


def _overlaps(a: PositionedInterval, b: PositionedInterval) -> bool:
    """Half-open column ranges [start, start + span) intersect."""
    return a.start_column < b.end_column and b.start_column < a.end_column


def row_accepts(row: List[PositionedInterval], candidate: PositionedInterval) -> bool:
    """
    A row accepts a candidate iff every occupant belongs to the candidate's
    project, and no occupant from a different group overlaps it.

    Occupants of the same group never block: stages of one product may
    overlap and are hatched later by the intersection resolver.
    """
    for occupant in row:
        if occupant.project_label != candidate.project_label:
            return False
        if occupant.group_id != candidate.group_id and _overlaps(occupant, candidate):
            return False
    return True


def assign_rows(positioned: Iterable[PositionedInterval]) -> List[PositionedInterval]:
    """
    Deterministic greedy first-fit row packing.

    Input is sorted by (project_label, group_id, start_column, interval_id),
    then each interval goes to the lowest-index row that accepts it; a new row
    is appended when none does. Output follows the packing order.

    Worst case O(rows * n); realistic windows hold at most a few hundred stages.
    """
    ordered = sorted(positioned, key=packing_order_key)
    rows: List[List[PositionedInterval]] = []
    out: List[PositionedInterval] = []

    for p in ordered:
        assigned_row = None
        for row_idx, row in enumerate(rows):
            if row_accepts(row, p):
                assigned_row = row_idx
                break

        if assigned_row is None:
            assigned_row = len(rows)
            rows.append([])

        placed = p.model_copy(update={"row_index": assigned_row})
        rows[assigned_row].append(placed)
        out.append(placed)

    return out


def rows_by_index(positioned: Iterable[PositionedInterval]) -> Dict[int, List[PositionedInterval]]:
    by_row: Dict[int, List[PositionedInterval]] = {}
    for p in positioned:
        if p.row_index is None:
            continue
        by_row.setdefault(int(p.row_index), []).append(p)
    return by_row


def validate_rows(positioned: Iterable[PositionedInterval]) -> Tuple[bool, str]:
    """
    Utility for tests/debug: confirms each row holds a single project and that
    different groups sharing a row never overlap.

    Returns (ok, message).
    """
    items = list(positioned)
    for p in items:
        if p.row_index is None:
            return False, f"Interval {p.interval_id} has no row assigned."

    for row_idx, row in rows_by_index(items).items():
        projects = {p.project_label for p in row}
        if len(projects) > 1:
            return False, f"Row {row_idx} mixes projects: {', '.join(sorted(projects))}"

        row_sorted = sorted(row, key=lambda p: (p.start_column, p.interval_id))
        for i, a in enumerate(row_sorted):
            for b in row_sorted[i + 1 :]:
                if b.start_column >= a.end_column:
                    break
                if a.group_id != b.group_id:
                    return False, f"Overlap detected in row {row_idx}: {a.interval_id} vs {b.interval_id}"

    return True, "ok"
