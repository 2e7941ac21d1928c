from __future__ import annotations

from datetime import date
from io import BytesIO
from typing import Optional

import matplotlib.pyplot as plt

from calendar_models import CalendarDataset, CalendarLayout, LayoutSettings
from excel_io import write_layout_excel_bytes
from layout import resolve_groups
from renderer import render_calendar


def _figure_bytes(
    dataset: CalendarDataset,
    layout: CalendarLayout,
    settings: LayoutSettings,
    *,
    fmt: str,
    dpi: Optional[int],
    preview: bool,
    today: Optional[date],
) -> bytes:
    groups, _ = resolve_groups(dataset)
    intervals = {iv.id: iv for iv in dataset.intervals}
    fig, _ = render_calendar(
        layout,
        groups,
        intervals,
        settings,
        today=today,
        preview=preview,
        preview_dpi=dpi or 150,
    )
    bio = BytesIO()
    try:
        if dpi is None:
            fig.savefig(bio, format=fmt, facecolor="white")
        else:
            fig.savefig(bio, format=fmt, dpi=dpi, facecolor="white")
    finally:
        # Important: close to avoid memory growth in Streamlit
        plt.close(fig)
    return bio.getvalue()


def export_pdf_bytes(
    dataset: CalendarDataset,
    layout: CalendarLayout,
    settings: LayoutSettings,
    *,
    today: Optional[date] = None,
) -> bytes:
    return _figure_bytes(dataset, layout, settings, fmt="pdf", dpi=None, preview=False, today=today)


def export_png_bytes(
    dataset: CalendarDataset,
    layout: CalendarLayout,
    settings: LayoutSettings,
    *,
    dpi: int = 300,
    today: Optional[date] = None,
) -> bytes:
    # The caller chooses the DPI independently of settings.output_dpi
    settings2 = settings.model_copy(update={"output_dpi": dpi})
    return _figure_bytes(dataset, layout, settings2, fmt="png", dpi=dpi, preview=False, today=today)


def preview_png_bytes(
    dataset: CalendarDataset,
    layout: CalendarLayout,
    settings: LayoutSettings,
    *,
    dpi: int = 150,
    today: Optional[date] = None,
) -> bytes:
    return _figure_bytes(dataset, layout, settings, fmt="png", dpi=dpi, preview=True, today=today)


def export_layout_xlsx_bytes(layout: CalendarLayout) -> bytes:
    """The computed layout as a workbook: Intervals, Groups, Intersections, Months, Warnings."""
    return write_layout_excel_bytes(layout)
