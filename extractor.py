from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Tuple

import pandas as pd
from pydantic import ValidationError

from calendar_models import CalendarDataset, Interval, Product, ProductGroup, Project
from excel_io import PRODUCT_COLUMNS, PROJECT_COLUMNS, STAGE_COLUMNS, coerce_date, is_blank


def extract_dataset(projects: Iterable[Project]) -> CalendarDataset:
    """
    Flatten Project -> Product -> WorkStage into flat intervals and product groups.

    Projects, products and stages are visited in order_index order (ties keep
    input order). Unscheduled stages are kept; the layout pipeline drops them.
    """
    intervals: List[Interval] = []
    groups: List[ProductGroup] = []

    for project in sorted(projects, key=lambda p: p.order_index):
        for product in sorted(project.products, key=lambda p: p.order_index):
            groups.append(_product_group(project, product))
            for stage in sorted(product.stages, key=lambda s: s.order_index):
                intervals.append(
                    Interval(
                        id=stage.id,
                        group_id=product.id,
                        project_label=project.name,
                        start_date=stage.start_date,
                        end_date=stage.end_date,
                        label=stage.label,
                        assignee_name=stage.assignee_name,
                        duration_days=stage.duration_days,
                        progress=stage.progress,
                    )
                )

    return CalendarDataset(intervals=tuple(intervals), groups=tuple(groups))


def _product_group(project: Project, product: Product) -> ProductGroup:
    return ProductGroup(
        id=product.id,
        project_id=project.id,
        project_label=project.name,
        product_label=product.name,
        status=product.status,
    )


# ----------------------------
# Tabular input (workbook / data editor)
# ----------------------------


def _df_clean(df: Optional[pd.DataFrame], cols: List[str]) -> pd.DataFrame:
    """Ensure expected columns and turn pandas missing sentinels into plain None."""
    df2 = df.copy() if df is not None else pd.DataFrame(columns=cols)
    for c in cols:
        if c not in df2.columns:
            df2[c] = pd.NA
    df2 = df2[cols].astype(object)
    df2 = df2.where(pd.notna(df2), None)
    return df2.reset_index(drop=True)


def _to_str_or_none(value: Any) -> Optional[str]:
    if is_blank(value):
        return None
    s = str(value).strip()
    return s or None


def _to_id(value: Any) -> Optional[str]:
    """Ids read back from Excel may arrive as floats (12.0); keep them textual."""
    if isinstance(value, float) and not is_blank(value) and value.is_integer():
        return str(int(value))
    return _to_str_or_none(value)


def _to_int(value: Any, default: int) -> int:
    if is_blank(value):
        return default
    try:
        return int(float(str(value).strip()))
    except ValueError as e:
        raise ValueError(f"expected a whole number, got {value!r}") from e


def _validation_messages(prefix: str, ve: ValidationError) -> List[str]:
    out = []
    for err in ve.errors():
        loc = ".".join([str(x) for x in err.get("loc", [])])
        msg = err.get("msg", "Invalid value")
        out.append(f"{prefix}: {loc} — {msg}")
    return out


def frames_to_dataset(
    projects_df: Optional[pd.DataFrame],
    products_df: Optional[pd.DataFrame],
    stages_df: Optional[pd.DataFrame],
) -> Tuple[CalendarDataset, List[str], List[str]]:
    """
    Build a dataset from the Projects / Products / Stages tables.

    Returns (dataset, errors, warnings). Rows with errors are left out of the
    dataset; the UI blocks rendering while errors exist. A stage whose product
    id is unknown is kept with a warning and later laid out as its own group.
    """
    errors: List[str] = []
    warnings: List[str] = []

    # -------------------------
    # Projects
    # -------------------------
    project_names: Dict[str, str] = {}
    project_rows = []
    for idx, row in _df_clean(projects_df, PROJECT_COLUMNS).iterrows():
        pid = _to_id(row.get("id"))
        name = _to_str_or_none(row.get("name"))
        if pid is None and name is None:
            continue
        if pid is None:
            errors.append(f"Projects row {idx+2}: id is required.")
            continue
        if pid in project_names:
            errors.append(f"Projects row {idx+2}: duplicate project id '{pid}'.")
            continue
        try:
            order = _to_int(row.get("order_index"), 0)
            project = Project(id=pid, name=name or "", status=_to_str_or_none(row.get("status")))
            project_names[project.id] = project.name
            project_rows.append((order, idx, pid))
        except ValidationError as ve:
            errors.extend(_validation_messages(f"Projects row {idx+2}", ve))
        except ValueError as e:
            errors.append(f"Projects row {idx+2}: order_index {e}")

    labels = list(project_names.values())
    dup_labels = sorted({n for n in labels if labels.count(n) > 1})
    if dup_labels:
        warnings.append(
            "Projects: several projects share a name and will share calendar rows: " + ", ".join(dup_labels)
        )

    # -------------------------
    # Products
    # -------------------------
    groups: Dict[str, ProductGroup] = {}
    product_order: Dict[str, Tuple[int, int]] = {}
    for idx, row in _df_clean(products_df, PRODUCT_COLUMNS).iterrows():
        rec = {c: row.get(c) for c in PRODUCT_COLUMNS}
        if all(is_blank(v) for v in rec.values()):
            continue
        gid = _to_id(rec["id"])
        if gid is None:
            errors.append(f"Products row {idx+2}: id is required.")
            continue
        if gid in groups:
            errors.append(f"Products row {idx+2}: duplicate product id '{gid}'.")
            continue
        project_id = _to_id(rec["project_id"])
        if project_id is None or project_id not in project_names:
            errors.append(f"Products row {idx+2}: unknown project_id '{project_id or ''}'. Add it to Projects.")
            continue
        try:
            group = ProductGroup(
                id=gid,
                project_id=project_id,
                project_label=project_names[project_id],
                product_label=_to_str_or_none(rec["name"]) or gid,
                status=_to_str_or_none(rec["status"]),
            )
            product_order[gid] = (_to_int(rec["order_index"], 0), idx)
            groups[gid] = group
        except ValidationError as ve:
            errors.extend(_validation_messages(f"Products row {idx+2}", ve))
        except ValueError as e:
            errors.append(f"Products row {idx+2}: order_index {e}")

    # -------------------------
    # Stages
    # -------------------------
    intervals: List[Tuple[Tuple[int, int], Interval]] = []
    seen_ids: set[str] = set()
    for idx, row in _df_clean(stages_df, STAGE_COLUMNS).iterrows():
        rec = {c: row.get(c) for c in STAGE_COLUMNS}
        if all(is_blank(v) for v in rec.values()):
            continue
        sid = _to_id(rec["id"])
        if sid is None:
            errors.append(f"Stages row {idx+2}: id is required.")
            continue
        if sid in seen_ids:
            errors.append(f"Stages row {idx+2}: duplicate stage id '{sid}'.")
            continue
        gid = _to_id(rec["product_id"])
        if gid is None:
            errors.append(f"Stages row {idx+2}: product_id is required.")
            continue

        group = groups.get(gid)
        if group is None:
            project_label = _to_str_or_none(rec["project"]) or ""
            warnings.append(f"Stages row {idx+2}: unknown product '{gid}'; shown as a separate product.")
        else:
            project_label = group.project_label

        start = coerce_date(rec["start_date"])
        end = coerce_date(rec["end_date"])
        if start is None and not is_blank(rec["start_date"]):
            warnings.append(f"Stages row {idx+2}: unreadable start_date {rec['start_date']!r}; stage is unscheduled.")
        if end is None and not is_blank(rec["end_date"]):
            warnings.append(f"Stages row {idx+2}: unreadable end_date {rec['end_date']!r}; stage is unscheduled.")

        try:
            iv = Interval(
                id=sid,
                group_id=gid,
                project_label=project_label,
                start_date=start,
                end_date=end,
                label=_to_str_or_none(rec["work_type"]) or "",
                assignee_name=_to_str_or_none(rec["assignee"]),
                duration_days=_to_int(rec["duration_days"], 1),
                progress=_to_int(rec["progress"], 0),
            )
        except ValidationError as ve:
            errors.extend(_validation_messages(f"Stages row {idx+2}", ve))
            continue
        except ValueError as e:
            errors.append(f"Stages row {idx+2}: {e}")
            continue

        seen_ids.add(sid)
        try:
            stage_order = _to_int(rec["order_index"], 0)
        except ValueError as e:
            errors.append(f"Stages row {idx+2}: order_index {e}")
            continue
        intervals.append(((stage_order, idx), iv))

    project_order = {pid: (order, idx) for order, idx, pid in project_rows}
    ordered_groups = sorted(
        groups.values(),
        key=lambda g: (project_order.get(g.project_id or "", (0, 0)), product_order[g.id]),
    )
    # Unknown products go after every known one
    unknown = ((len(project_order), 0), (0, 0))

    def _stage_key(pair):
        (stage_order, idx), iv = pair
        g = groups.get(iv.group_id)
        g_key = unknown if g is None else (project_order.get(g.project_id or "", (0, 0)), product_order[g.id])
        return (g_key, stage_order, idx)

    ordered_intervals = [iv for _, iv in sorted(intervals, key=_stage_key)]

    if not ordered_intervals:
        warnings.append("No stages found. Add rows to the Stages sheet.")

    return CalendarDataset(intervals=tuple(ordered_intervals), groups=tuple(ordered_groups)), errors, warnings
