import json
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from timetable.converter import (
    apply_display_rows,
    class_refs_in_grid,
    convert_to_display_format,
    display_rows_to_grid,
    generate_empty_timetable,
    split_by_class,
    teacher_schedule,
    teachers_in_grid,
)
from timetable.models import ClassRef, DisplayCell, PeriodRow


def _grid(periods: int = 6):
    return [[[] for _ in range(periods)] for _ in range(6)]


def _slot(grade, section, subject, teacher, classroom=""):
    return {"classGrade": grade, "classSection": str(section), "subject": subject, "teacher": teacher, "classroom": classroom}


def test_empty_inputs_give_no_rows():
    for data in (None, "", [], {}):
        assert convert_to_display_format(data, 1, 1) == []


def test_empty_timetable_has_one_row_per_period():
    rows = generate_empty_timetable(4)
    assert [r.period for r in rows] == ["1", "2", "3", "4"]
    assert all(r.get("mon") is None for r in rows)


def test_generated_grid_picks_the_requested_class():
    grid = _grid()
    grid[0][0] = [_slot(1, 1, "Math", "A"), _slot(1, 2, "English", "B")]
    grid[2][3] = [_slot(1, 2, "Science", "C", "Lab")]

    rows = convert_to_display_format(grid, 1, 2)

    assert len(rows) == 6
    assert rows[0].get("mon").subject == "English"
    assert rows[3].get("wed").classroom == "Lab"
    assert rows[0].get("tue") is None


def test_generated_grid_first_matching_slot_wins_and_needs_a_teacher():
    grid = _grid()
    grid[1][0] = [_slot(1, 1, "Math", "A"), _slot(1, 1, "Music", "B")]
    grid[1][1] = [_slot(1, 1, "Art", "")]

    rows = convert_to_display_format(grid, 1, 1)

    assert rows[0].get("tue").subject == "Math"
    assert rows[1].get("tue") is None


def test_class_section_matching_ignores_number_formatting():
    grid = _grid()
    grid[0][0] = [{"classGrade": "1", "classSection": 1, "subject": "Math", "teacher": "A"}]
    assert convert_to_display_format(grid, 1, 1)[0].get("mon").teacher == "A"


def test_json_string_is_parsed():
    grid = _grid()
    grid[4][5] = [_slot(3, 1, "PE", "D")]
    rows = convert_to_display_format(json.dumps(grid), 3, 1)
    assert rows[5].get("fri").subject == "PE"
    assert convert_to_display_format("{not json", 1, 1) == []


def test_display_rows_pass_through():
    stored = [PeriodRow.empty(1).with_cell("mon", DisplayCell(subject="Math", teacher="A")).to_dict()]
    rows = convert_to_display_format(stored, 1, 1)
    assert len(rows) == 1
    assert rows[0].get("mon").subject == "Math"


def test_flat_slot_list_is_filtered_by_class():
    slots = [
        {"day": "mon", "period": 1, "subject": "Math", "teacher": "A", "classGrade": 1, "classSection": "1"},
        {"day": "mon", "period": 2, "subject": "English", "teacher": "B", "classGrade": 1, "classSection": "2"},
        {"day": "tue", "period": 3, "subject": "Art", "teacher": "C"},
    ]
    rows = convert_to_display_format(slots, 1, 1)
    assert rows[0].get("mon").subject == "Math"
    assert rows[1].get("mon") is None
    # slots without a class belong to whichever class is asked for
    assert rows[2].get("tue").subject == "Art"


def test_flat_slot_list_starting_with_an_empty_slot():
    slots = [
        {"day": "mon", "period": 1, "classGrade": 1, "classSection": "1"},
        {"day": "tue", "period": 1, "classGrade": 1, "classSection": "1", "subject": "Math", "teacher": "A"},
    ]
    rows = convert_to_display_format(slots, 1, 1)
    assert len(rows) == 6
    assert rows[0].get("mon") is None
    assert rows[0].get("tue").subject == "Math"


def test_legacy_weekday_mapping():
    data = {"monday": [{"subject": "Math", "teacher": "A"}, None], "saturday": [{"subject": "PE", "teacher": "D"}]}
    rows = convert_to_display_format(data, 1, 1)
    assert rows[0].get("mon").subject == "Math"
    assert rows[1].get("mon") is None
    assert rows[0].get("sat").teacher == "D"


def test_nested_grade_class_mapping_and_wrapper():
    data = {"timetable": {"2": {"1": [{"day": "木曜", "period": 2, "subject": "Music", "teacher": "E"}]}}}
    rows = convert_to_display_format(data, 2, 1)
    assert rows[1].get("thu").subject == "Music"
    assert convert_to_display_format(data, 2, 2) == []


def test_unrecognised_input_gives_no_rows():
    assert convert_to_display_format(42, 1, 1) == []
    assert convert_to_display_format(["a", "b"], 1, 1) == []


def test_display_rows_to_grid_tags_class():
    rows = generate_empty_timetable(2)
    rows[1] = rows[1].with_cell("fri", DisplayCell(subject="Math", teacher="A"))
    grid = display_rows_to_grid(rows, 1, 3)
    assert len(grid) == 6
    assert grid[4][1] == [
        {
            "day": "fri",
            "period": 2,
            "subject": "Math",
            "teacher": "A",
            "classroom": "",
            "isAutoFilled": False,
            "classGrade": 1,
            "classSection": "3",
        }
    ]


def test_apply_display_rows_replaces_only_that_class():
    grid = _grid()
    grid[0][0] = [_slot(1, 1, "Math", "A"), _slot(1, 2, "English", "B")]

    rows = generate_empty_timetable(6)
    rows[2] = rows[2].with_cell("tue", DisplayCell(subject="Art", teacher="C"))
    out = apply_display_rows(grid, 1, 1, rows)

    assert [s["subject"] for s in out[0][0]] == ["English"]
    assert out[1][2][0]["subject"] == "Art"
    assert out[1][2][0]["classGrade"] == 1
    # input untouched
    assert len(grid[0][0]) == 2


def test_split_by_class_and_teacher_lookups():
    grid = _grid()
    grid[0][0] = [_slot(1, 1, "Math", "A"), _slot(2, 1, "English", "B")]
    grid[3][1] = [_slot(1, 1, "Science", "B", "Lab")]

    assert class_refs_in_grid(grid) == [ClassRef(1, 1), ClassRef(2, 1)]
    by_class = split_by_class(grid)
    assert set(by_class) == {"1-1", "2-1"}
    assert by_class["1-1"][1].get("thu").subject == "Science"
    assert teachers_in_grid(grid) == ["A", "B"]


def test_teacher_schedule_marks_double_booking():
    grid = _grid()
    grid[0][0] = [_slot(1, 1, "Math", "A"), _slot(1, 2, "Math", "A")]
    grid[2][4] = [_slot(3, 2, "Math", "A", "3-2")]

    rows = teacher_schedule(grid, "A")

    assert rows[0]["mon"]["grade"] == 1
    assert rows[0]["mon"]["class_number"] == 1
    assert rows[0]["mon"]["double_booked"] is True
    assert rows[4]["wed"] == {"grade": 3, "class_number": 2, "subject": "Math", "classroom": "3-2", "double_booked": False}
    assert rows[0]["tue"] is None
