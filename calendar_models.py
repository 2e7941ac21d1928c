from __future__ import annotations

from collections import Counter
from datetime import date
from typing import Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

Granularity = Literal["month", "quarter", "halfyear", "year"]
GRANULARITIES: Tuple[str, ...] = ("month", "quarter", "halfyear", "year")

Status = Literal["InProject", "InProgress", "Done", "HasProblems"]
STATUS_VALUES: Tuple[str, ...] = ("InProject", "InProgress", "Done", "HasProblems")

MonthPadding = Literal["months", "weeks"]
Locale = Literal["ru", "en"]


def _strip_required(v: str, name: str) -> str:
    v = (v or "").strip()
    if not v:
        raise ValueError(f"{name} is required.")
    return v


def _strip_optional(v: Optional[str]) -> Optional[str]:
    if v is None:
        return None
    v = str(v).strip()
    return v or None


# ---------------------------------------------------------------------------
# Input tree (as delivered by the data layer)
# ---------------------------------------------------------------------------


class WorkStage(BaseModel):
    """One work stage of a product. Null dates mean the stage is unscheduled."""

    id: str
    label: str = Field(default="")  # work type name
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    assignee_name: Optional[str] = None
    duration_days: int = Field(default=1, ge=1)
    progress: int = Field(default=0, ge=0, le=100)
    order_index: int = Field(default=0, ge=0)

    @field_validator("id")
    @classmethod
    def _id_not_empty(cls, v: str) -> str:
        return _strip_required(v, "id")

    @field_validator("label")
    @classmethod
    def _label_strip(cls, v: str) -> str:
        return (v or "").strip()

    @field_validator("assignee_name")
    @classmethod
    def _assignee_strip(cls, v: Optional[str]) -> Optional[str]:
        return _strip_optional(v)


class Product(BaseModel):
    id: str
    name: str
    status: Optional[Status] = None
    order_index: int = Field(default=0, ge=0)
    stages: List[WorkStage] = Field(default_factory=list)

    @field_validator("id")
    @classmethod
    def _id_not_empty(cls, v: str) -> str:
        return _strip_required(v, "id")

    @field_validator("name")
    @classmethod
    def _name_not_empty(cls, v: str) -> str:
        return _strip_required(v, "name")


class Project(BaseModel):
    id: str
    name: str
    status: Optional[Status] = None
    order_index: int = Field(default=0, ge=0)
    products: List[Product] = Field(default_factory=list)

    @field_validator("id")
    @classmethod
    def _id_not_empty(cls, v: str) -> str:
        return _strip_required(v, "id")

    @field_validator("name")
    @classmethod
    def _name_not_empty(cls, v: str) -> str:
        return _strip_required(v, "name")


# ---------------------------------------------------------------------------
# Flat records consumed by the layout pipeline
# ---------------------------------------------------------------------------


class Interval(BaseModel):
    """
    A single stage-chip: one work stage's date range, tagged with its product
    (group_id) and the display name of its project (project_label).

    start_date > end_date is allowed here; the position step rejects it
    per interval so one bad record never fails the whole layout.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    group_id: str
    project_label: str
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    label: str = ""
    assignee_name: Optional[str] = None
    duration_days: Optional[int] = None
    progress: int = Field(default=0, ge=0, le=100)

    @field_validator("id")
    @classmethod
    def _id_not_empty(cls, v: str) -> str:
        return _strip_required(v, "id")

    @field_validator("group_id")
    @classmethod
    def _group_not_empty(cls, v: str) -> str:
        return _strip_required(v, "group_id")

    @field_validator("project_label")
    @classmethod
    def _project_label_strip(cls, v: str) -> str:
        return (v or "").strip()

    @field_validator("assignee_name")
    @classmethod
    def _assignee_strip(cls, v: Optional[str]) -> Optional[str]:
        return _strip_optional(v)

    @property
    def is_scheduled(self) -> bool:
        return self.start_date is not None and self.end_date is not None


class ProductGroup(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    project_id: Optional[str] = None
    project_label: str
    product_label: str
    status: Optional[Status] = None

    @field_validator("id")
    @classmethod
    def _id_not_empty(cls, v: str) -> str:
        return _strip_required(v, "id")


class CalendarDataset(BaseModel):
    """Flattened dataset: every interval plus the product records they reference."""

    model_config = ConfigDict(frozen=True)

    intervals: Tuple[Interval, ...] = ()
    groups: Tuple[ProductGroup, ...] = ()

    @model_validator(mode="after")
    def _unique_ids(self) -> "CalendarDataset":
        # Layout outputs are keyed by interval id and group id
        for kind, ids in (("interval", [iv.id for iv in self.intervals]), ("product", [g.id for g in self.groups])):
            dups = sorted(i for i, n in Counter(ids).items() if n > 1)
            if dups:
                raise ValueError(f"duplicate {kind} id(s): {', '.join(dups)}")
        return self

    def group_map(self) -> Dict[str, ProductGroup]:
        return {g.id: g for g in self.groups}


# ---------------------------------------------------------------------------
# Window
# ---------------------------------------------------------------------------


class MonthGroup(BaseModel):
    model_config = ConfigDict(frozen=True)

    label: str
    year: int
    month: int
    start_column: int
    day_count: int

    @property
    def end_column(self) -> int:
        """Exclusive end column."""
        return self.start_column + self.day_count


class VisibleWindow(BaseModel):
    model_config = ConfigDict(frozen=True)

    granularity: Granularity
    reference_date: date
    days: Tuple[date, ...] = ()
    month_groups: Tuple[MonthGroup, ...] = ()

    @property
    def column_count(self) -> int:
        return len(self.days)

    @property
    def is_empty(self) -> bool:
        return not self.days

    @property
    def start(self) -> Optional[date]:
        return self.days[0] if self.days else None

    @property
    def end(self) -> Optional[date]:
        return self.days[-1] if self.days else None

    @property
    def key(self) -> str:
        """Stable key for memoizing a layout by window."""
        if not self.days:
            return f"{self.granularity}:empty"
        return f"{self.granularity}:{self.days[0].isoformat()}:{self.days[-1].isoformat()}"

    def column_of(self, d: date) -> int:
        """Column index of a day inside the window. Days are contiguous."""
        if not self.days or d < self.days[0] or d > self.days[-1]:
            raise ValueError(f"{d.isoformat()} is outside the visible window.")
        return (d - self.days[0]).days


class DayHeader(BaseModel):
    model_config = ConfigDict(frozen=True)

    column: int
    day: date
    weekday_label: str
    day_number: int
    is_today: bool = False


# ---------------------------------------------------------------------------
# Layout outputs (derived, recomputed per call)
# ---------------------------------------------------------------------------


class PositionedInterval(BaseModel):
    model_config = ConfigDict(frozen=True)

    interval_id: str
    group_id: str
    project_label: str
    row_index: Optional[int] = None  # set by the row packer
    start_column: int = Field(ge=0)
    column_span: int = Field(ge=1)
    clipped_left: bool = False
    clipped_right: bool = False

    @property
    def end_column(self) -> int:
        """Exclusive end column."""
        return self.start_column + self.column_span


class PositionedGroup(BaseModel):
    model_config = ConfigDict(frozen=True)

    group_id: str
    project_label: str
    start_column: int = Field(ge=0)
    column_span: int = Field(ge=1)
    clipped_left: bool = False
    clipped_right: bool = False
    first_row: int = 0
    last_row: int = 0

    @property
    def end_column(self) -> int:
        return self.start_column + self.column_span


class IntersectionRange(BaseModel):
    """Maximal merged overlap among intervals of one group; [start_column, end_column)."""

    model_config = ConfigDict(frozen=True)

    group_id: str
    start_column: int = Field(ge=0)
    end_column: int

    @model_validator(mode="after")
    def _non_empty(self) -> "IntersectionRange":
        if self.end_column <= self.start_column:
            raise ValueError("end_column must be greater than start_column.")
        return self


class LabelRange(BaseModel):
    """Part of an interval's columns not covered by any intersection; [start_column, end_column)."""

    model_config = ConfigDict(frozen=True)

    interval_id: str
    start_column: int
    end_column: int


class CalendarLayout(BaseModel):
    model_config = ConfigDict(frozen=True)

    window: VisibleWindow
    intervals: Tuple[PositionedInterval, ...] = ()
    groups: Tuple[PositionedGroup, ...] = ()
    intersections: Tuple[IntersectionRange, ...] = ()
    label_ranges: Tuple[LabelRange, ...] = ()
    warnings: Dict[str, List[str]] = Field(default_factory=dict)

    @property
    def row_count(self) -> int:
        rows = [p.row_index for p in self.intervals if p.row_index is not None]
        return max(rows) + 1 if rows else 0

    def warning_messages(self) -> List[str]:
        return [msg for msgs in self.warnings.values() for msg in msgs]


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


class LayoutSettings(BaseModel):
    chart_title: str = Field(default="Календарь производства")

    granularity: Granularity = Field(default="month")
    reference_date: Optional[date] = Field(default=None)
    month_padding: MonthPadding = Field(default="months")
    locale: Locale = Field(default="ru")
    today_date: Optional[date] = Field(default=None)

    show_today_line: bool = Field(default=True)
    output_dpi: Literal[150, 300, 600] = Field(default=300)
    page_size: Literal["A3", "A4"] = Field(default="A3")
    font_family: str = Field(default="DejaVu Sans")  # Falls back at render-time if not found.

    @field_validator("chart_title")
    @classmethod
    def _title_not_empty(cls, v: str) -> str:
        return _strip_required(v, "chart_title")

    @field_validator("font_family")
    @classmethod
    def _font_not_empty(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            return "DejaVu Sans"
        return v

    @field_validator("granularity", mode="before")
    @classmethod
    def _normalize_granularity(cls, v):
        if isinstance(v, str):
            s = v.strip().lower().replace("-", "").replace("_", "").replace(" ", "")
            return s or "month"
        return v
