from __future__ import annotations

import io
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import pandas as pd
from openpyxl import load_workbook

from timetable.converter import generate_empty_timetable, teacher_schedule
from timetable.models import ClassRef, DisplayCell, Violation
from utils.timetable_export import (
    _safe_sheet_name,
    class_timetable_df,
    df_to_markdown,
    df_to_png_bytes,
    slots_df,
    teacher_timetable_df,
    timetable_workbook_bytes,
    violations_df,
)


def _grid():
    grid = [[[] for _ in range(2)] for _ in range(6)]
    grid[0][0] = [
        {"classGrade": 1, "classSection": "1", "subject": "Math", "teacher": "A", "classroom": "1-1"},
        {"classGrade": 1, "classSection": "2", "subject": "English", "teacher": "B", "classroom": "1-2"},
    ]
    grid[5][1] = [{"classGrade": 1, "classSection": "1", "subject": "PE", "teacher": "B", "classroom": "Gym"}]
    return grid


def test_df_to_markdown_basic() -> None:
    df = pd.DataFrame([["A", "B"], ["C", "D"]], columns=["Col1", "Col2"])
    md = df_to_markdown(df)
    assert "| Col1 | Col2 |" in md
    assert "| A | B |" in md


def test_df_to_markdown_flattens_multiline_cells() -> None:
    df = pd.DataFrame([["Math\nA"]], columns=["Mon"])
    assert "| Math A |" in df_to_markdown(df)


def test_class_timetable_df() -> None:
    rows = generate_empty_timetable(2)
    rows[0] = rows[0].with_cell("tue", DisplayCell(subject="Math", teacher="A", classroom="Lab"))

    df = class_timetable_df(rows)
    assert list(df.columns) == ["PERIOD", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat"]
    assert df.loc[0, "Tue"] == "Math\nA"
    assert df.loc[1, "Tue"] == ""
    assert class_timetable_df(rows, include_classroom=True).loc[0, "Tue"] == "Math\nA\n@Lab"


def test_teacher_timetable_df_marks_double_booking() -> None:
    grid = _grid()
    grid[0][0].append({"classGrade": 2, "classSection": "1", "subject": "English", "teacher": "B"})
    df = teacher_timetable_df(teacher_schedule(grid, "B", max_periods=2))
    assert df.loc[0, "Mon"] == "1-2 English (!)"
    assert df.loc[1, "Sat"] == "1-1 PE"


def test_violations_df() -> None:
    df = violations_df(
        [
            Violation(period="1", day="mon", type="teacher_conflict", message="x", severity="high", affected_classes=("1-1", "1-2")),
            {"period": "2", "day": "sat", "type": "empty_slot", "message": "y", "severity": "low", "class": "1-1"},
        ]
    )
    assert list(df["class"]) == ["1-1, 1-2", "1-1"]
    assert list(df["day"]) == ["Mon", "Sat"]
    assert violations_df([]).empty


def test_slots_df_sorted_by_class_day_period() -> None:
    df = slots_df(_grid())
    assert list(df["class"]) == ["1-1", "1-1", "1-2"]
    assert list(df["day"]) == ["mon", "sat", "mon"]
    assert list(df["period"]) == [1, 2, 1]


def test_workbook_has_class_teacher_and_violation_sheets() -> None:
    data = timetable_workbook_bytes(
        grid=_grid(),
        class_refs=[ClassRef(1, 1), ClassRef(1, 2)],
        max_periods=2,
        violations=[Violation(period="1", day="mon", type="empty_slot", message="m", severity="low", class_label="1-1")],
        statistics={"assignmentRate": 100.0},
    )
    wb = load_workbook(io.BytesIO(data))
    assert wb.sheetnames == ["Summary", "Class 1-1", "Class 1-2", "T-A", "T-B", "Violations"]
    assert wb["Class 1-1"]["B2"].value == "Math\nA\n@1-1"


def test_safe_sheet_name() -> None:
    assert _safe_sheet_name("a/b:c") == "a-b-c"
    assert len(_safe_sheet_name("x" * 40)) == 31
    assert _safe_sheet_name("") == "Sheet"


def test_df_to_png_bytes() -> None:
    df = class_timetable_df(generate_empty_timetable(1))
    png = df_to_png_bytes(df)
    assert png[:8] == b"\x89PNG\r\n\x1a\n"
