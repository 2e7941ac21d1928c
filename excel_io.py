from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from io import BytesIO
from typing import Any, Dict, List, Optional

import pandas as pd
from openpyxl import Workbook, load_workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.worksheet.datavalidation import DataValidation

from calendar_models import GRANULARITIES, STATUS_VALUES, CalendarLayout
from date_utils import day_span_inclusive

SETTINGS_KEYS = [
    "chart_title",
    "granularity",
    "reference_date",
    "month_padding",
    "locale",
    "today_date",
    "show_today_line",
    "output_dpi",
    "page_size",
    "font_family",
]

PROJECT_COLUMNS = ["id", "name", "status", "order_index"]

PRODUCT_COLUMNS = ["id", "project_id", "name", "status", "order_index"]

STAGE_COLUMNS = [
    "id",
    "product_id",
    "project",
    "work_type",
    "assignee",
    "start_date",
    "end_date",
    "duration_days",
    "progress",
    "order_index",
]

_REQUIRED_SHEETS = ("Settings", "Projects", "Products", "Stages")
_DATE_SETTINGS = ("reference_date", "today_date")


@dataclass(frozen=True)
class ExcelPayload:
    settings: Dict[str, Any]
    projects_df: pd.DataFrame
    products_df: pd.DataFrame
    stages_df: pd.DataFrame


def is_blank(value: Any) -> bool:
    """True if value is None/NaN/NaT/pd.NA or an empty/whitespace string."""
    if value is None:
        return True
    try:
        if pd.isna(value):
            return True
    except (TypeError, ValueError):
        pass
    if isinstance(value, str):
        return value.strip() == ""
    return False


def coerce_date(value: Any) -> Optional[date]:
    """Convert a cell value into a Python date (or None). Handles Excel dates, datetimes, strings, and pandas timestamps."""
    if is_blank(value):
        return None
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    if isinstance(value, datetime):
        return value.date()
    # pandas sometimes gives Timestamp
    if hasattr(value, "to_pydatetime"):
        dt = value.to_pydatetime()
        if isinstance(dt, datetime):
            return dt.date()
    if isinstance(value, str):
        v = value.strip()
        if v.lower() in {"none", "null", "nan", "nat"}:
            return None
        # ISO first, then the formats the dashboard and Excel produce
        for fmt in ("%Y-%m-%d", "%Y-%m-%dT%H:%M:%S", "%d.%m.%Y", "%m/%d/%Y", "%d-%b-%Y"):
            try:
                return datetime.strptime(v[:19], fmt).date()
            except ValueError:
                continue
    return None


def _coerce_bool(v: Any) -> Optional[bool]:
    if is_blank(v):
        return None
    if isinstance(v, bool):
        return v
    if isinstance(v, str):
        s = v.strip().lower()
        if s in {"true", "yes", "y", "1", "да"}:
            return True
        if s in {"false", "no", "n", "0", "нет"}:
            return False
    if isinstance(v, (int, float)):
        return bool(v)
    return None


def _style_header(ws) -> None:
    header_fill = PatternFill(start_color="F0F0F0", end_color="F0F0F0", fill_type="solid")
    for c in ws[1]:
        c.font = Font(bold=True)
        c.fill = header_fill
        c.alignment = Alignment(horizontal="left")
    ws.freeze_panes = "A2"


def build_template_workbook() -> Workbook:
    """Create the blank input workbook with the required sheets and dropdown validations."""
    wb = Workbook()
    wb.remove(wb.active)

    # Settings sheet
    ws = wb.create_sheet("Settings")
    ws.append(["key", "value"])
    _style_header(ws)

    defaults: Dict[str, Any] = {
        "chart_title": "Календарь производства",
        "granularity": "month",
        "reference_date": date.today(),
        "month_padding": "months",
        "locale": "ru",
        "today_date": "",
        "show_today_line": True,
        "output_dpi": 300,
        "page_size": "A3",
        "font_family": "DejaVu Sans",
    }
    for key in SETTINGS_KEYS:
        ws.append([key, defaults.get(key, "")])

    ws.column_dimensions["A"].width = 24
    ws.column_dimensions["B"].width = 32

    dv_gran = DataValidation(type="list", formula1='"' + ",".join(GRANULARITIES) + '"', allow_blank=False)
    dv_padding = DataValidation(type="list", formula1='"months,weeks"', allow_blank=False)
    dv_locale = DataValidation(type="list", formula1='"ru,en"', allow_blank=False)
    dv_dpi = DataValidation(type="list", formula1='"150,300,600"', allow_blank=False)
    dv_page = DataValidation(type="list", formula1='"A3,A4"', allow_blank=False)
    dv_bool = DataValidation(type="list", formula1='"TRUE,FALSE"', allow_blank=False)
    for dv in (dv_gran, dv_padding, dv_locale, dv_dpi, dv_page, dv_bool):
        ws.add_data_validation(dv)

    key_to_row = {ws.cell(row=r, column=1).value: r for r in range(2, ws.max_row + 1)}
    dv_gran.add(ws.cell(row=key_to_row["granularity"], column=2))
    dv_padding.add(ws.cell(row=key_to_row["month_padding"], column=2))
    dv_locale.add(ws.cell(row=key_to_row["locale"], column=2))
    dv_dpi.add(ws.cell(row=key_to_row["output_dpi"], column=2))
    dv_page.add(ws.cell(row=key_to_row["page_size"], column=2))
    dv_bool.add(ws.cell(row=key_to_row["show_today_line"], column=2))
    for k in _DATE_SETTINGS:
        ws.cell(row=key_to_row[k], column=2).number_format = "yyyy-mm-dd"

    status_formula = '"' + ",".join(STATUS_VALUES) + '"'

    # Projects sheet
    ws_p = wb.create_sheet("Projects")
    ws_p.append(PROJECT_COLUMNS)
    _style_header(ws_p)
    for col, w in {"A": 38, "B": 34, "C": 14, "D": 12}.items():
        ws_p.column_dimensions[col].width = w
    dv_p_status = DataValidation(type="list", formula1=status_formula, allow_blank=True)
    ws_p.add_data_validation(dv_p_status)
    dv_p_status.add("C2:C1000")

    # Products sheet
    ws_pr = wb.create_sheet("Products")
    ws_pr.append(PRODUCT_COLUMNS)
    _style_header(ws_pr)
    for col, w in {"A": 38, "B": 38, "C": 34, "D": 14, "E": 12}.items():
        ws_pr.column_dimensions[col].width = w
    dv_pr_status = DataValidation(type="list", formula1=status_formula, allow_blank=True)
    ws_pr.add_data_validation(dv_pr_status)
    dv_pr_status.add("D2:D1000")

    # Stages sheet
    ws_s = wb.create_sheet("Stages")
    ws_s.append(STAGE_COLUMNS)
    _style_header(ws_s)
    col_widths = {
        "A": 38,  # id
        "B": 38,  # product_id
        "C": 24,  # project (only used when product_id is unknown)
        "D": 28,  # work_type
        "E": 22,  # assignee
        "F": 14,  # start
        "G": 14,  # end
        "H": 12,  # duration_days
        "I": 10,  # progress
        "J": 12,  # order_index
    }
    for col, w in col_widths.items():
        ws_s.column_dimensions[col].width = w
    for cell_range in ("F2:F1000", "G2:G1000"):
        for row in ws_s[cell_range]:
            for cell in row:
                cell.number_format = "yyyy-mm-dd"

    return wb


def template_bytes() -> bytes:
    """Return the template workbook as raw .xlsx bytes (ready for a download button)."""
    wb = build_template_workbook()
    bio = BytesIO()
    wb.save(bio)
    return bio.getvalue()


def _normalized_frame(df: Optional[pd.DataFrame], columns: List[str]) -> pd.DataFrame:
    df2 = df.copy() if df is not None else pd.DataFrame(columns=columns)
    for c in columns:
        if c not in df2.columns:
            df2[c] = pd.NA
    return df2[columns]


def _append_rows(ws, df: pd.DataFrame, columns: List[str], date_columns: tuple = ()) -> None:
    if ws.max_row > 1:
        ws.delete_rows(2, ws.max_row - 1)

    for _, row in df.iterrows():
        if all(is_blank(row.get(c)) for c in columns):
            continue
        out_row = []
        for c in columns:
            v = row.get(c)
            if is_blank(v):
                out_row.append(None)
            elif c in date_columns:
                out_row.append(coerce_date(v))
            else:
                out_row.append(str(v).strip() if isinstance(v, str) else v)
        ws.append(out_row)

    for c in date_columns:
        col_idx = columns.index(c) + 1
        for r in range(2, ws.max_row + 1):
            ws.cell(row=r, column=col_idx).number_format = "yyyy-mm-dd"


def write_calendar_excel_bytes(
    settings: Dict[str, Any],
    projects_df: pd.DataFrame,
    products_df: pd.DataFrame,
    stages_df: pd.DataFrame,
) -> bytes:
    """Serialize the current (possibly edited) data back into an .xlsx workbook.

    Tolerant of messy UI input (blank strings, NaNs, mixed types) so edits
    round-trip.
    """
    wb = build_template_workbook()

    ws = wb["Settings"]
    key_to_row = {ws.cell(row=r, column=1).value: r for r in range(2, ws.max_row + 1)}
    for k in SETTINGS_KEYS:
        r = key_to_row[k]
        v = settings.get(k)
        if is_blank(v):
            ws.cell(row=r, column=2, value=None)
            continue
        if k in _DATE_SETTINGS:
            ws.cell(row=r, column=2, value=coerce_date(v))
            ws.cell(row=r, column=2).number_format = "yyyy-mm-dd"
            continue
        ws.cell(row=r, column=2, value=v)

    _append_rows(wb["Projects"], _normalized_frame(projects_df, PROJECT_COLUMNS), PROJECT_COLUMNS)
    _append_rows(wb["Products"], _normalized_frame(products_df, PRODUCT_COLUMNS), PRODUCT_COLUMNS)
    _append_rows(
        wb["Stages"],
        _normalized_frame(stages_df, STAGE_COLUMNS),
        STAGE_COLUMNS,
        date_columns=("start_date", "end_date"),
    )

    bio = BytesIO()
    wb.save(bio)
    return bio.getvalue()


def read_calendar_excel(excel_bytes: bytes) -> ExcelPayload:
    """
    Reads the four-sheet input workbook.

    Returns the raw settings dict plus one DataFrame per data sheet.
    Validation happens in extractor.frames_to_dataset so the UI can show
    friendly, row-numbered issues.
    """
    try:
        wb = load_workbook(BytesIO(excel_bytes), data_only=True)
    except Exception as e:
        raise ValueError(f"Unable to read .xlsx file. Make sure it's an Excel workbook (.xlsx). Details: {e}") from e

    missing = set(_REQUIRED_SHEETS) - set(wb.sheetnames)
    if missing:
        raise ValueError(
            f"Missing required sheet(s): {', '.join(sorted(missing))}. Expected: {', '.join(_REQUIRED_SHEETS)}."
        )

    settings: Dict[str, Any] = {}
    for row in wb["Settings"].iter_rows(min_row=2, values_only=True):
        if not row or row[0] is None:
            continue
        key_s = str(row[0]).strip()
        if key_s:
            settings[key_s] = row[1] if len(row) > 1 else None

    buf = BytesIO(excel_bytes)
    frames: Dict[str, pd.DataFrame] = {}
    try:
        for sheet, columns in (("Projects", PROJECT_COLUMNS), ("Products", PRODUCT_COLUMNS), ("Stages", STAGE_COLUMNS)):
            buf.seek(0)
            df = pd.read_excel(buf, sheet_name=sheet, engine="openpyxl")
            frames[sheet] = _normalized_frame(df, columns)
    except Exception as e:
        raise ValueError(f"Unable to parse Projects/Products/Stages sheets. Details: {e}") from e

    stages_df = frames["Stages"]
    for dc in ("start_date", "end_date"):
        stages_df[dc] = stages_df[dc].apply(coerce_date)

    for k in _DATE_SETTINGS:
        if k in settings:
            settings[k] = coerce_date(settings.get(k))
    if "show_today_line" in settings:
        settings["show_today_line"] = _coerce_bool(settings.get("show_today_line"))
    for k in ("chart_title", "granularity", "month_padding", "locale", "page_size", "font_family"):
        if k in settings and settings[k] is not None:
            settings[k] = str(settings[k]).strip()

    return ExcelPayload(
        settings=settings,
        projects_df=frames["Projects"],
        products_df=frames["Products"],
        stages_df=stages_df,
    )


def layout_to_frames(layout: CalendarLayout) -> Dict[str, pd.DataFrame]:
    """Tabular view of a computed layout, one DataFrame per output collection."""
    window = layout.window

    def _day(col: int) -> Optional[date]:
        return window.days[col] if 0 <= col < window.column_count else None

    intervals = pd.DataFrame(
        [
            {
                "interval_id": p.interval_id,
                "group_id": p.group_id,
                "project": p.project_label,
                "row_index": p.row_index,
                "start_column": p.start_column,
                "column_span": p.column_span,
                "first_day": _day(p.start_column),
                "last_day": _day(p.end_column - 1),
                "clipped_left": p.clipped_left,
                "clipped_right": p.clipped_right,
            }
            for p in layout.intervals
        ],
        columns=[
            "interval_id", "group_id", "project", "row_index", "start_column", "column_span",
            "first_day", "last_day", "clipped_left", "clipped_right",
        ],
    )
    groups = pd.DataFrame(
        [g.model_dump() for g in layout.groups],
        columns=[
            "group_id", "project_label", "start_column", "column_span",
            "clipped_left", "clipped_right", "first_row", "last_row",
        ],
    )
    intersections = pd.DataFrame(
        [r.model_dump() for r in layout.intersections],
        columns=["group_id", "start_column", "end_column"],
    )
    months = pd.DataFrame(
        [m.model_dump() for m in window.month_groups],
        columns=["label", "year", "month", "start_column", "day_count"],
    )
    return {"Intervals": intervals, "Groups": groups, "Intersections": intersections, "Months": months}


def write_layout_excel_bytes(layout: CalendarLayout) -> bytes:
    """Export a computed layout as an .xlsx workbook (one sheet per collection)."""
    bio = BytesIO()
    with pd.ExcelWriter(bio, engine="openpyxl") as writer:
        for sheet, df in layout_to_frames(layout).items():
            df.to_excel(writer, sheet_name=sheet, index=False)
        warnings = [(cat, msg) for cat, msgs in layout.warnings.items() for msg in msgs]
        pd.DataFrame(warnings, columns=["category", "message"]).to_excel(writer, sheet_name="Warnings", index=False)
    return bio.getvalue()


def write_sample_workbook(path: str) -> None:
    """Writes a filled-in sample: two projects, overlapping stages, one unscheduled stage."""
    today = date.today()
    base = date(today.year, today.month, 1)

    settings = {
        "chart_title": "Календарь производства",
        "granularity": "month",
        "reference_date": today,
        "month_padding": "months",
        "locale": "ru",
        "show_today_line": True,
        "output_dpi": 300,
        "page_size": "A3",
        "font_family": "DejaVu Sans",
    }
    projects = pd.DataFrame(
        [
            {"id": "P-1", "name": "Насосная станция", "status": "InProgress", "order_index": 0},
            {"id": "P-2", "name": "Котельная", "status": "InProject", "order_index": 1},
        ]
    )
    products = pd.DataFrame(
        [
            {"id": "PR-1", "project_id": "P-1", "name": "Шкаф управления", "status": "InProgress", "order_index": 0},
            {"id": "PR-2", "project_id": "P-1", "name": "Щит питания", "status": "InProject", "order_index": 1},
            {"id": "PR-3", "project_id": "P-2", "name": "Пульт оператора", "status": "InProject", "order_index": 0},
        ]
    )

    def _stage(sid, product, work, who, start_off, end_off, order):
        return {
            "id": sid,
            "product_id": product,
            "work_type": work,
            "assignee": who,
            "start_date": base + timedelta(days=start_off) if start_off is not None else None,
            "end_date": base + timedelta(days=end_off) if end_off is not None else None,
            "duration_days": day_span_inclusive(base + timedelta(days=start_off), base + timedelta(days=end_off)) if start_off is not None else 1,
            "progress": 0,
            "order_index": order,
        }

    stages = pd.DataFrame(
        [
            _stage("S-1", "PR-1", "Проектирование", "Иванов", -10, 5, 0),
            _stage("S-2", "PR-1", "Сборка", "Петров", 3, 14, 1),
            _stage("S-3", "PR-1", "Испытания", "Сидоров", 15, 40, 2),
            _stage("S-4", "PR-2", "Проектирование", "Иванов", 2, 9, 0),
            _stage("S-5", "PR-3", "Закупка", "Орлова", 0, 12, 0),
            _stage("S-6", "PR-3", "Монтаж", None, None, None, 1),
        ]
    )

    with open(path, "wb") as fh:
        fh.write(write_calendar_excel_bytes(settings, projects, products, stages))
