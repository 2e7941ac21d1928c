from calendar_models import IntersectionRange, PositionedInterval
from intersections import (
    compute_label_ranges,
    label_safe_range,
    merge_ranges,
    pairwise_overlaps,
    resolve_intersections,
    subtract_ranges,
)


def _p(iid, group, start, span, project="P1"):
    return PositionedInterval(
        interval_id=iid, group_id=group, project_label=project, row_index=0, start_column=start, column_span=span
    )


def test_merge_ranges_collapses_overlapping_and_touching():
    assert merge_ranges([(1, 3), (7, 8), (2, 5), (5, 6)]) == [(1, 6), (7, 8)]
    assert merge_ranges([(3, 3)]) == []
    assert merge_ranges([]) == []


def test_pairwise_overlaps():
    assert pairwise_overlaps([(0, 4), (2, 6), (5, 9)]) == [(2, 4), (5, 6)]
    assert pairwise_overlaps([(0, 2), (2, 4)]) == []


def test_same_group_overlap_yields_one_range():
    # Columns [0,2] and [1,3] -> hatched columns 1..2
    ranges = resolve_intersections([_p("A", "G1", 0, 3), _p("B", "G1", 1, 3)])
    assert ranges == [IntersectionRange(group_id="G1", start_column=1, end_column=3)]


def test_overlaps_between_groups_are_not_intersections():
    assert resolve_intersections([_p("A", "G1", 0, 3), _p("B", "G2", 1, 3)]) == []


def test_disjoint_members_have_no_intersections():
    assert resolve_intersections([_p("A", "G1", 0, 2), _p("B", "G1", 2, 2)]) == []


def test_ranges_are_maximal_and_ordered_by_group():
    positioned = [
        _p("A", "G2", 0, 4),
        _p("B", "G2", 2, 4),
        _p("C", "G2", 5, 4),
        _p("D", "G1", 0, 10),
        _p("E", "G1", 1, 2),
        _p("F", "G1", 3, 2),
    ]
    ranges = resolve_intersections(positioned)
    assert [(r.group_id, r.start_column, r.end_column) for r in ranges] == [
        ("G1", 1, 5),
        ("G2", 2, 4),
        ("G2", 5, 6),
    ]


def test_subtract_ranges():
    assert subtract_ranges((0, 10), [(2, 4), (6, 7)]) == [(0, 2), (4, 6), (7, 10)]
    assert subtract_ranges((0, 10), [(0, 10)]) == []
    assert subtract_ranges((3, 6), [(0, 1), (8, 9)]) == [(3, 6)]


def test_label_range_prefers_longest_free_segment():
    lr = label_safe_range(_p("A", "G1", 0, 10), [IntersectionRange(group_id="G1", start_column=2, end_column=4)])
    assert (lr.start_column, lr.end_column) == (4, 10)


def test_label_range_tie_goes_left():
    lr = label_safe_range(_p("A", "G1", 0, 6), [IntersectionRange(group_id="G1", start_column=2, end_column=4)])
    assert (lr.start_column, lr.end_column) == (0, 2)


def test_label_range_ignores_other_groups_and_handles_full_cover():
    other = [IntersectionRange(group_id="G2", start_column=0, end_column=6)]
    lr = label_safe_range(_p("A", "G1", 0, 6), other)
    assert (lr.start_column, lr.end_column) == (0, 6)

    own = [IntersectionRange(group_id="G1", start_column=0, end_column=6)]
    assert label_safe_range(_p("A", "G1", 1, 3), own) is None


def test_compute_label_ranges_skips_fully_hatched_members():
    positioned = [_p("A", "G1", 0, 3), _p("B", "G1", 1, 3), _p("C", "G1", 1, 2)]
    ranges = resolve_intersections(positioned)
    labels = {lr.interval_id: (lr.start_column, lr.end_column) for lr in compute_label_ranges(positioned, ranges)}
    assert labels == {"A": (0, 1), "B": (3, 4)}
