from datetime import date

import pandas as pd
import pytest
from pydantic import ValidationError

from calendar_models import Product, Project, WorkStage
from extractor import extract_dataset, frames_to_dataset


def test_extract_dataset_flattens_tree_in_order():
    projects = [
        Project(
            id="P2",
            name="Котельная",
            order_index=1,
            products=[
                Product(
                    id="PR-3",
                    name="Пульт",
                    status="Done",
                    stages=[WorkStage(id="S-5", label="Закупка", start_date=date(2025, 1, 1), end_date=date(2025, 1, 2))],
                )
            ],
        ),
        Project(
            id="P1",
            name="Насосная",
            order_index=0,
            products=[
                Product(
                    id="PR-2",
                    name="Щит",
                    order_index=1,
                    stages=[WorkStage(id="S-4", label="Сборка")],
                ),
                Product(
                    id="PR-1",
                    name="Шкаф",
                    order_index=0,
                    stages=[
                        WorkStage(id="S-2", label="Сборка", order_index=1, start_date=date(2025, 1, 5), end_date=date(2025, 1, 9)),
                        WorkStage(id="S-1", label="Проект", order_index=0, start_date=date(2025, 1, 1), end_date=date(2025, 1, 4), assignee_name=" Иванов "),
                    ],
                ),
            ],
        ),
    ]
    ds = extract_dataset(projects)

    assert [iv.id for iv in ds.intervals] == ["S-1", "S-2", "S-4", "S-5"]
    assert [g.id for g in ds.groups] == ["PR-1", "PR-2", "PR-3"]
    s1 = ds.intervals[0]
    assert (s1.group_id, s1.project_label, s1.label, s1.assignee_name) == ("PR-1", "Насосная", "Проект", "Иванов")
    assert not ds.intervals[2].is_scheduled
    assert ds.group_map()["PR-3"].status == "Done"
    assert ds.group_map()["PR-3"].project_id == "P2"


def _frames():
    projects = pd.DataFrame(
        [
            {"id": "P1", "name": "Alpha", "status": "InProgress", "order_index": 1},
            {"id": "P2", "name": "Beta", "status": None, "order_index": 0},
        ]
    )
    products = pd.DataFrame(
        [
            {"id": "G1", "project_id": "P1", "name": "Unit 1", "status": "InProject", "order_index": 0},
            {"id": "G2", "project_id": "P2", "name": "Unit 2", "status": None, "order_index": 0},
        ]
    )
    stages = pd.DataFrame(
        [
            {"id": "S1", "product_id": "G1", "work_type": "Design", "start_date": date(2025, 1, 1), "end_date": date(2025, 1, 5), "order_index": 0},
            {"id": "S2", "product_id": "G2", "work_type": "Build", "start_date": "2025-01-03", "end_date": "07.01.2025", "order_index": 0},
        ]
    )
    return projects, products, stages


def test_frames_to_dataset_happy_path():
    ds, errors, warnings = frames_to_dataset(*_frames())
    assert errors == []
    assert warnings == []
    # Beta comes first by project order_index
    assert [g.id for g in ds.groups] == ["G2", "G1"]
    by_id = {iv.id: iv for iv in ds.intervals}
    assert by_id["S1"].project_label == "Alpha"
    assert by_id["S2"].start_date == date(2025, 1, 3)
    assert by_id["S2"].end_date == date(2025, 1, 7)
    assert by_id["S1"].duration_days == 1


def test_frames_to_dataset_reports_row_numbered_errors():
    projects, products, stages = _frames()
    products = pd.concat(
        [products, pd.DataFrame([{"id": "G3", "project_id": "NOPE", "name": "Lost"}, {"id": "G1", "project_id": "P1", "name": "Dup"}])],
        ignore_index=True,
    )
    stages = pd.concat(
        [stages, pd.DataFrame([{"id": "S1", "product_id": "G1"}, {"id": None, "product_id": "G1", "work_type": "x"}])],
        ignore_index=True,
    )
    _, errors, _ = frames_to_dataset(projects, products, stages)

    assert "Products row 4: unknown project_id 'NOPE'. Add it to Projects." in errors
    assert "Products row 5: duplicate product id 'G1'." in errors
    assert "Stages row 4: duplicate stage id 'S1'." in errors
    assert "Stages row 5: id is required." in errors


def test_unknown_product_is_a_warning_not_an_error():
    projects, products, stages = _frames()
    stages = pd.concat(
        [stages, pd.DataFrame([{"id": "S9", "product_id": "GX", "project": "Alpha", "start_date": date(2025, 1, 1), "end_date": date(2025, 1, 1)}])],
        ignore_index=True,
    )
    ds, errors, warnings = frames_to_dataset(projects, products, stages)
    assert errors == []
    assert any("unknown product 'GX'" in w for w in warnings)
    orphan = [iv for iv in ds.intervals if iv.id == "S9"][0]
    assert (orphan.group_id, orphan.project_label) == ("GX", "Alpha")


def test_float_ids_and_unreadable_dates():
    projects = pd.DataFrame([{"id": 1.0, "name": "Alpha"}])
    products = pd.DataFrame([{"id": 12.0, "project_id": 1.0, "name": "Unit"}])
    stages = pd.DataFrame([{"id": 100.0, "product_id": 12.0, "start_date": "someday", "end_date": date(2025, 1, 2)}])
    ds, errors, warnings = frames_to_dataset(projects, products, stages)

    assert errors == []
    iv = ds.intervals[0]
    assert (iv.id, iv.group_id) == ("100", "12")
    assert iv.start_date is None
    assert any("unreadable start_date" in w for w in warnings)


def test_duplicate_project_names_warn():
    projects = pd.DataFrame([{"id": "P1", "name": "Same"}, {"id": "P2", "name": "Same"}])
    _, errors, warnings = frames_to_dataset(projects, None, None)
    assert errors == []
    assert any("share a name" in w for w in warnings)
    assert any("No stages found" in w for w in warnings)


def test_duplicate_stage_ids_are_rejected_at_the_boundary():
    projects = [
        Project(
            id="P1",
            name="Alpha",
            products=[
                Product(id="G1", name="One", stages=[WorkStage(id="S", start_date=date(2025, 1, 1), end_date=date(2025, 1, 2))]),
                Product(id="G2", name="Two", stages=[WorkStage(id="S", start_date=date(2025, 1, 4), end_date=date(2025, 1, 5))]),
            ],
        )
    ]
    with pytest.raises(ValidationError, match="duplicate interval id"):
        extract_dataset(projects)


def test_duplicate_product_ids_are_rejected_at_the_boundary():
    projects = [
        Project(id="P1", name="Alpha", products=[Product(id="G1", name="One")]),
        Project(id="P2", name="Beta", order_index=1, products=[Product(id="G1", name="Again")]),
    ]
    with pytest.raises(ValidationError, match="duplicate product id"):
        extract_dataset(projects)
