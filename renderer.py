from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Dict, List, Optional, Tuple

import matplotlib
import matplotlib.pyplot as plt
from matplotlib.patches import FancyBboxPatch, Polygon, Rectangle

from calendar_models import CalendarLayout, Interval, LayoutSettings, PositionedInterval, ProductGroup, VisibleWindow
from date_utils import day_span_inclusive
from intersections import merge_ranges
from window import day_headers, period_title

# Product colors keyed by status; groups without a status cycle the palette.
STATUS_COLORS = {
    "InProject": "#90A4AE",
    "InProgress": "#1F77B4",
    "Done": "#2CA02C",
    "HasProblems": "#D62728",
}

DEFAULT_PALETTE = [
    "#1F77B4",  # blue
    "#FF7F0E",  # orange
    "#2CA02C",  # green
    "#9467BD",  # purple
    "#8C564B",  # brown
    "#E377C2",  # pink
    "#17BECF",  # cyan
    "#BCBD22",  # olive
]

# Day cells get their own header row only while they stay legible.
MAX_COLUMNS_WITH_DAY_ROW = 100


@dataclass(frozen=True)
class ProjectBand:
    project_label: str
    first_row: int
    last_row: int


def _font_family_available(family: str) -> bool:
    family = (family or "").strip()
    if not family:
        return False
    fam_lower = family.lower()
    from matplotlib import font_manager as fm
    for f in fm.fontManager.ttflist:
        if f.name.lower() == fam_lower:
            return True
    return False


def resolve_font_family(preferred: str) -> str:
    """
    Returns a font family name that matplotlib can actually render.
    Priority:
      1) preferred, if available
      2) DejaVu Sans (matplotlib default, has Cyrillic)
    """
    preferred = (preferred or "").strip()
    if preferred and _font_family_available(preferred):
        return preferred
    return "DejaVu Sans"


def compute_project_bands(layout: CalendarLayout) -> List[ProjectBand]:
    """
    Contiguous row ranges per project.

    Rows are opened in (project_label, ...) order and never accept another
    project, so each project's rows form one block.
    """
    spans: Dict[str, Tuple[int, int]] = {}
    for p in layout.intervals:
        if p.row_index is None:
            continue
        lo, hi = spans.get(p.project_label, (p.row_index, p.row_index))
        spans[p.project_label] = (min(lo, p.row_index), max(hi, p.row_index))
    bands = [ProjectBand(label, lo, hi) for label, (lo, hi) in spans.items()]
    return sorted(bands, key=lambda b: b.first_row)


def pick_group_colors(groups: Dict[str, ProductGroup]) -> Dict[str, str]:
    out: Dict[str, str] = {}
    i = 0
    for gid in sorted(groups):
        status = groups[gid].status
        if status in STATUS_COLORS:
            out[gid] = STATUS_COLORS[status]
        else:
            out[gid] = DEFAULT_PALETTE[i % len(DEFAULT_PALETTE)]
            i += 1
    return out


def chip_segments(layout: CalendarLayout) -> List[Tuple[str, int, int, int]]:
    """
    Product chips as (group_id, row, start_column, end_column).

    One chip per run of a product's bars within a row, so a chip never spans
    another product's bar sitting between them.
    """
    by_key: Dict[Tuple[str, int], List[Tuple[int, int]]] = {}
    for p in layout.intervals:
        if p.row_index is None:
            continue
        by_key.setdefault((p.group_id, p.row_index), []).append((p.start_column, p.end_column))

    out: List[Tuple[str, int, int, int]] = []
    for (group_id, row), ranges in sorted(by_key.items()):
        out.extend((group_id, row, s, e) for s, e in merge_ranges(ranges))
    return out


def hatch_segments(layout: CalendarLayout) -> List[Tuple[int, int, int]]:
    """
    Hatched overlays as (row, start_column, end_column).

    An intersection range is drawn only under bars of its own group, clipped
    to each bar, in the row that bar occupies.
    """
    members: Dict[str, List[PositionedInterval]] = {}
    for p in layout.intervals:
        members.setdefault(p.group_id, []).append(p)

    per_row: Dict[int, List[Tuple[int, int]]] = {}
    for r in layout.intersections:
        for p in members.get(r.group_id, []):
            start = max(r.start_column, p.start_column)
            end = min(r.end_column, p.end_column)
            if end > start and p.row_index is not None:
                per_row.setdefault(p.row_index, []).append((start, end))

    out: List[Tuple[int, int, int]] = []
    for row in sorted(per_row):
        out.extend((row, s, e) for s, e in merge_ranges(per_row[row]))
    return out


def progress_extent(
    p: PositionedInterval, interval: Interval, window: VisibleWindow
) -> Optional[Tuple[float, float]]:
    """
    Columns [x0, x1) of the done part of a bar.

    Progress is measured over the stage's full date range, then clipped to the
    visible bar. None when nothing of the done part is visible.
    """
    if not interval.progress or not interval.is_scheduled or window.is_empty:
        return None
    total = day_span_inclusive(interval.start_date, interval.end_date)
    done_x = (interval.start_date - window.start).days + total * interval.progress / 100.0
    x0 = float(p.start_column)
    x1 = min(done_x, float(p.end_column))
    if x1 <= x0:
        return None
    return x0, x1


def _fit_label(text: str, columns: int, chars_per_column: float) -> str:
    max_chars = int(columns * chars_per_column)
    if max_chars <= 0:
        return ""
    if len(text) <= max_chars:
        return text
    if max_chars <= 1:
        return text[:max_chars]
    return text[: max_chars - 1] + "…"


def render_calendar(
    layout: CalendarLayout,
    groups: Dict[str, ProductGroup],
    intervals: Dict[str, Interval],
    settings: LayoutSettings,
    *,
    today: Optional[date] = None,
    preview: bool = False,
    preview_dpi: int = 150,
) -> Tuple[plt.Figure, Dict[str, List[str]]]:
    """
    Draw a computed layout. Returns (fig, warnings).

    Columns map to x (one unit per day), packed rows map to y (one unit per
    row). The layout itself is never altered here.
    """
    matplotlib.rcParams["font.family"] = resolve_font_family(settings.font_family)

    window = layout.window
    n_cols = max(window.column_count, 1)
    n_rows = max(layout.row_count, 1)
    today = settings.today_date or today

    if settings.page_size == "A4":
        fig_w, fig_h = 11.69, 8.27
    else:  # A3
        fig_w, fig_h = 16.54, 11.69

    fig = plt.figure(figsize=(fig_w, fig_h), dpi=preview_dpi if preview else settings.output_dpi)
    gs = fig.add_gridspec(
        nrows=2,
        ncols=2,
        height_ratios=[0.08, 0.92],
        width_ratios=[0.18, 0.82],
        wspace=0.01,
        hspace=0.04,
    )
    ax_header = fig.add_subplot(gs[0, :])
    ax_labels = fig.add_subplot(gs[1, 0])
    ax_main = fig.add_subplot(gs[1, 1], sharey=ax_labels)
    ax_header.axis("off")

    ax_header.text(
        0.0, 0.65, settings.chart_title,
        fontsize=18 if not preview else 15,
        fontweight="bold",
        ha="left",
        va="center",
        transform=ax_header.transAxes,
    )
    ax_header.text(
        0.0, 0.15, period_title(window.reference_date, window.granularity, settings.locale),
        fontsize=11 if not preview else 10,
        ha="left",
        va="center",
        color="#333333",
        transform=ax_header.transAxes,
    )

    show_days = window.column_count <= MAX_COLUMNS_WITH_DAY_ROW
    header_rows = 2 if show_days else 1
    header_row_h = 0.8
    header_h = header_rows * header_row_h

    ax_main.set_xlim(0, n_cols)
    ax_main.set_ylim(n_rows, -header_h)
    ax_labels.set_xlim(0, 1)
    for ax in (ax_main, ax_labels):
        ax.spines[:].set_visible(False)
        ax.set_xticks([])
        ax.set_yticks([])
    ax_labels.set_facecolor("#F6F8FB")

    border = "#DADADA"
    fs_small = 6 if window.column_count > 62 else 7

    # Month header band
    for i, mg in enumerate(layout.window.month_groups):
        ax_main.add_patch(
            Rectangle(
                (mg.start_column, -header_h), mg.day_count, header_row_h,
                facecolor="#F5F5F5" if i % 2 == 0 else "#FFFFFF",
                edgecolor=border, linewidth=0.8, zorder=2,
            )
        )
        ax_main.text(
            mg.start_column + mg.day_count / 2.0, -header_h + header_row_h / 2.0, mg.label,
            ha="center", va="center", fontsize=9 if not preview else 8, color="#666666", zorder=3,
        )
        ax_main.axvline(x=mg.start_column, color="#C8C8C8", linewidth=1.0, zorder=1)

    # Day cells
    if show_days:
        y_day = -header_h + header_row_h
        for h in day_headers(window, today=today, locale=settings.locale):
            ax_main.add_patch(
                Rectangle((h.column, y_day), 1, header_row_h, facecolor="white", edgecolor="#EFEFEF", linewidth=0.5, zorder=2)
            )
            ax_main.text(
                h.column + 0.5, y_day + header_row_h * 0.5, f"{h.weekday_label}\n{h.day_number}",
                ha="center", va="center", fontsize=fs_small,
                fontweight="bold" if h.is_today else "normal", color="#000000" if h.is_today else "#666666",
                zorder=3,
            )

    # Project bands
    bands = compute_project_bands(layout)
    for i, band in enumerate(bands):
        y0, y1 = band.first_row, band.last_row + 1
        if i % 2 == 0:
            ax_main.add_patch(Rectangle((0, y0), n_cols, y1 - y0, facecolor="#FAFAFA", edgecolor="none", zorder=0))
        ax_main.hlines([y0, y1], 0, n_cols, colors="#D0D0D0", linewidth=1.0, zorder=1)
        ax_labels.hlines([y0, y1], 0, 1, colors="#D0D0D0", linewidth=1.0, zorder=1)
        ax_labels.text(
            0.04, y0 + 0.5, band.project_label or "—",
            ha="left", va="center", fontsize=10 if not preview else 9, fontweight="bold", color="#222222",
        )

    colors = pick_group_colors(groups)

    # Product chips, one per run of a product's bars in a row
    for group_id, row, start, end in chip_segments(layout):
        color = colors.get(group_id, DEFAULT_PALETTE[0])
        ax_main.add_patch(
            FancyBboxPatch(
                (start + 0.04, row + 0.06),
                end - start - 0.08,
                1.0 - 0.12,
                boxstyle="round,pad=0,rounding_size=0.15",
                facecolor=color, alpha=0.10, edgecolor=color, linewidth=0.8, zorder=2,
            )
        )

    # Stage bars
    label_ranges = {lr.interval_id: lr for lr in layout.label_ranges}
    chars_per_column = 0.9 if window.column_count <= 62 else 0.35
    truncated: List[str] = []
    bar_pad = 0.18
    for p in layout.intervals:
        color = colors.get(p.group_id, DEFAULT_PALETTE[0])
        y0 = p.row_index + bar_pad
        h = 1.0 - 2 * bar_pad
        ax_main.add_patch(
            Rectangle((p.start_column, y0), p.column_span, h, facecolor=color, alpha=0.85, edgecolor="#3A3A3A", linewidth=0.6, zorder=3)
        )
        src = intervals.get(p.interval_id)
        done = progress_extent(p, src, window) if src is not None else None
        if done is not None:
            ax_main.add_patch(
                Rectangle((done[0], y0 + h * 0.75), done[1] - done[0], h * 0.25, facecolor="#000000", alpha=0.3, edgecolor="none", zorder=3.5)
            )

        tri_w = min(0.4, p.column_span / 2.0)
        if p.clipped_left:
            ax_main.add_patch(
                Polygon(
                    [(p.start_column, y0), (p.start_column + tri_w, y0 + h / 2.0), (p.start_column, y0 + h)],
                    closed=True, facecolor="white", edgecolor="none", zorder=5,
                )
            )
        if p.clipped_right:
            x1 = p.end_column
            ax_main.add_patch(
                Polygon(
                    [(x1, y0), (x1 - tri_w, y0 + h / 2.0), (x1, y0 + h)],
                    closed=True, facecolor="white", edgecolor="none", zorder=5,
                )
            )

        lr = label_ranges.get(p.interval_id)
        if lr is None or src is None:
            continue
        text = src.label or src.id
        fitted = _fit_label(text, lr.end_column - lr.start_column, chars_per_column)
        if fitted != text:
            truncated.append(p.interval_id)
        if fitted:
            ax_main.text(
                (lr.start_column + lr.end_column) / 2.0, p.row_index + 0.5, fitted,
                ha="center", va="center", fontsize=fs_small + 1, color="white", zorder=6,
            )

    # Hatched overlays under the same-group bars they belong to
    for row, start, end in hatch_segments(layout):
        ax_main.add_patch(
            Rectangle(
                (start, row + bar_pad), end - start, 1.0 - 2 * bar_pad,
                facecolor="none", edgecolor="#222222", hatch="////", linewidth=0.0, zorder=4,
            )
        )

    # Today line
    if settings.show_today_line and today is not None and not window.is_empty and window.start <= today <= window.end:
        x = window.column_of(today) + 0.5
        ax_main.axvline(x=x, color="#111111", linewidth=1.2, linestyle="--", zorder=7)

    warnings = {k: list(v) for k, v in layout.warnings.items()}
    warnings["labels_truncated"] = [f"{iid}: label shortened to fit its bar." for iid in truncated]
    return fig, warnings
