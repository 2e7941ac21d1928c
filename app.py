from __future__ import annotations

import hashlib
from datetime import date
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd
import streamlit as st
from pydantic import ValidationError

from calendar_models import GRANULARITIES, CalendarDataset, CalendarLayout, LayoutSettings
from excel_io import (
    ExcelPayload,
    PRODUCT_COLUMNS,
    PROJECT_COLUMNS,
    STAGE_COLUMNS,
    read_calendar_excel,
    template_bytes,
    write_calendar_excel_bytes,
)
from export import export_layout_xlsx_bytes, export_pdf_bytes, export_png_bytes, preview_png_bytes
from extractor import frames_to_dataset
from groups import compute_project_spans
from layout import compute_layout, dataset_version
from window import build_window, period_title, shift_reference

APP_TITLE = "Главная: календарь производства"

GRANULARITY_LABELS = {
    "month": "Месяц",
    "quarter": "Квартал",
    "halfyear": "Полугодие",
    "year": "Год",
}


# ----------------------------
# Caching helpers
# ----------------------------


@st.cache_data(show_spinner=False)
def _cached_read_excel(excel_bytes: bytes) -> ExcelPayload:
    return read_calendar_excel(excel_bytes)


@st.cache_data(show_spinner=False)
def _cached_template_bytes() -> bytes:
    return template_bytes()


@st.cache_data(show_spinner=False)
def _cached_layout(
    _dataset: CalendarDataset,
    dataset_key: str,
    reference: date,
    granularity: str,
    month_padding: str,
    locale: str,
) -> CalendarLayout:
    """Layouts are memoized by (window, dataset version); the dataset itself is not hashed by streamlit."""
    window = build_window(reference, granularity, month_padding=month_padding, locale=locale)
    return compute_layout(_dataset, window)


def _settings_from_raw(raw: Dict[str, Any]) -> Tuple[Optional[LayoutSettings], List[str]]:
    errors: List[str] = []
    s_dict = {k: v for k, v in (raw or {}).items() if v is not None and v != ""}
    if isinstance(s_dict.get("output_dpi"), (str, float)):
        try:
            s_dict["output_dpi"] = int(float(s_dict["output_dpi"]))
        except ValueError:
            pass
    try:
        return LayoutSettings(**s_dict), errors
    except ValidationError as ve:
        for err in ve.errors():
            loc = ".".join([str(x) for x in err.get("loc", [])])
            errors.append(f"Settings: {loc} — {err.get('msg', 'Invalid value')}")
    return None, errors


def _hard_reset_from_payload(payload: ExcelPayload, upload_hash: str) -> None:
    """Replace all in-app data with the uploaded workbook. No merging."""
    st.session_state["settings_raw"] = dict(payload.settings)
    st.session_state["projects_df"] = payload.projects_df
    st.session_state["products_df"] = payload.products_df
    st.session_state["stages_df"] = payload.stages_df
    st.session_state["upload_hash"] = upload_hash
    reference = payload.settings.get("reference_date")
    st.session_state["reference_date"] = reference if isinstance(reference, date) else date.today()


def _init_state() -> None:
    st.session_state.setdefault("settings_raw", {})
    st.session_state.setdefault("projects_df", pd.DataFrame(columns=PROJECT_COLUMNS))
    st.session_state.setdefault("products_df", pd.DataFrame(columns=PRODUCT_COLUMNS))
    st.session_state.setdefault("stages_df", pd.DataFrame(columns=STAGE_COLUMNS))
    st.session_state.setdefault("reference_date", date.today())


def _navigation(granularity: str, locale: str) -> date:
    reference: date = st.session_state["reference_date"]
    left, mid, right, pick = st.columns([0.08, 0.34, 0.08, 0.5])
    with left:
        if st.button("‹", use_container_width=True):
            st.session_state["reference_date"] = shift_reference(reference, granularity, -1)
            st.rerun()
    with mid:
        st.markdown(f"**{period_title(reference, granularity, locale)}**")
    with right:
        if st.button("›", use_container_width=True):
            st.session_state["reference_date"] = shift_reference(reference, granularity, 1)
            st.rerun()
    with pick:
        picked = st.date_input("Дата", value=reference, label_visibility="collapsed")
        if picked != reference:
            st.session_state["reference_date"] = picked
            st.rerun()
    return st.session_state["reference_date"]


def main() -> None:
    st.set_page_config(page_title=APP_TITLE, layout="wide")
    st.title(APP_TITLE)
    _init_state()

    with st.sidebar:
        st.subheader("Данные")
        st.download_button(
            "Скачать шаблон (.xlsx)",
            data=_cached_template_bytes(),
            file_name="calendar_input_template.xlsx",
            mime="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            use_container_width=True,
        )
        uploaded = st.file_uploader("Загрузить книгу", type=["xlsx"])
        if uploaded is not None:
            raw = uploaded.getvalue()
            upload_hash = hashlib.sha1(raw).hexdigest()
            if st.session_state.get("upload_hash") != upload_hash:
                try:
                    _hard_reset_from_payload(_cached_read_excel(raw), upload_hash)
                except ValueError as e:
                    st.error(str(e))

        st.divider()
        settings_raw: Dict[str, Any] = dict(st.session_state["settings_raw"])
        current = str(settings_raw.get("granularity") or "month").lower()
        settings_raw["granularity"] = st.radio(
            "Вид",
            options=list(GRANULARITIES),
            index=list(GRANULARITIES).index(current) if current in GRANULARITIES else 0,
            format_func=lambda g: GRANULARITY_LABELS[g],
            horizontal=True,
        )
        settings_raw["month_padding"] = st.selectbox(
            "Месяц: поля",
            options=["months", "weeks"],
            index=0 if settings_raw.get("month_padding") != "weeks" else 1,
            help="months: предыдущий, текущий и следующий месяц целиком; weeks: текущий месяц до полных недель.",
        )
        st.session_state["settings_raw"] = settings_raw

    settings, settings_errors = _settings_from_raw(settings_raw)
    dataset, errors, warnings = frames_to_dataset(
        st.session_state["projects_df"],
        st.session_state["products_df"],
        st.session_state["stages_df"],
    )
    errors = settings_errors + errors

    if errors:
        st.error(f"{len(errors)} issue(s) to fix before the calendar can be drawn")
        for e in errors:
            st.write(f"- {e}")
        st.stop()

    reference = _navigation(settings.granularity, settings.locale)
    layout = _cached_layout(
        dataset,
        dataset_version(dataset),
        reference,
        settings.granularity,
        settings.month_padding,
        settings.locale,
    )

    all_warnings = warnings + layout.warning_messages()
    if all_warnings:
        with st.expander(f"Warnings ({len(all_warnings)})", expanded=False):
            for w in dict.fromkeys(all_warnings):
                st.write(f"- {w}")

    try:
        png = preview_png_bytes(dataset, layout, settings, dpi=120, today=date.today())
        st.image(png, use_container_width=True)
    except Exception as e:
        st.error(f"Preview failed: {e}")
        st.stop()

    spans = compute_project_spans(dataset.intervals)
    if spans:
        st.dataframe(
            pd.DataFrame(
                [{"project": label, "start": s, "end": e} for label, (s, e) in sorted(spans.items())]
            ),
            use_container_width=True,
            hide_index=True,
        )

    st.divider()
    col1, col2, col3, col4 = st.columns(4)
    with col1:
        st.download_button(
            "PNG",
            data=export_png_bytes(dataset, layout, settings, dpi=int(settings.output_dpi), today=date.today()),
            file_name="calendar.png",
            mime="image/png",
            use_container_width=True,
        )
    with col2:
        st.download_button(
            "PDF",
            data=export_pdf_bytes(dataset, layout, settings, today=date.today()),
            file_name="calendar.pdf",
            mime="application/pdf",
            use_container_width=True,
        )
    with col3:
        st.download_button(
            "Layout (.xlsx)",
            data=export_layout_xlsx_bytes(layout),
            file_name="calendar_layout.xlsx",
            mime="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            use_container_width=True,
        )
    with col4:
        st.download_button(
            "Data (.xlsx)",
            data=write_calendar_excel_bytes(
                {**settings_raw, "reference_date": reference},
                st.session_state["projects_df"],
                st.session_state["products_df"],
                st.session_state["stages_df"],
            ),
            file_name="calendar_input.xlsx",
            mime="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            use_container_width=True,
        )


if __name__ == "__main__":
    main()
