import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from timetable.models import (
    AssignmentRestriction,
    ClassRef,
    DisplayCell,
    PeriodRow,
    SchoolSettings,
    Subject,
    Teacher,
    Violation,
    day_key,
    name_of,
    normalize_day,
)


def test_default_school_has_34_teaching_slots_per_class():
    s = SchoolSettings()
    assert len(s.teaching_slots()) == 6 * 5 + 4
    assert [r.label for r in s.class_refs()][:2] == ["1-1", "1-2"]
    assert len(s.class_refs()) == 4 + 4 + 3
    assert s.max_periods == 6


def test_saturday_periods_limit_teaching_slots():
    s = SchoolSettings(daily_periods=6, saturday_periods=4)
    assert s.is_teaching_slot("sat", 4)
    assert not s.is_teaching_slot("sat", 5)
    assert s.is_teaching_slot("mon", 6)
    assert not s.is_teaching_slot("sun", 1)


def test_settings_from_row_falls_back_to_defaults():
    assert SchoolSettings.from_row(None) == SchoolSettings()
    s = SchoolSettings.from_row({"grade1_classes": 2, "daily_periods": 5})
    assert s.grade1_classes == 2
    assert s.daily_periods == 5
    assert s.saturday_periods == 4


def test_class_ref_label_round_trip():
    ref = ClassRef.parse("2-3")
    assert ref == ClassRef(grade=2, class_number=3)
    assert ref.label == "2-3"


def test_day_helpers():
    assert day_key(0) == "mon"
    assert day_key(9) == "day9"
    assert normalize_day("Monday") == "mon"
    assert normalize_day("月曜") == "mon"
    assert normalize_day("土") == "sat"
    assert normalize_day("someday") is None


def test_name_of_accepts_strings_mappings_and_objects():
    assert name_of("Tanaka") == "Tanaka"
    assert name_of({"name": "Math"}) == "Math"
    assert name_of(Teacher(teacher_id="T1", name="Sato")) == "Sato"
    assert name_of(None) == ""


def test_restriction_from_imported_fields():
    r = AssignmentRestriction.from_dict(
        {"restrictedDay": "火曜", "restrictedPeriods": [3, 1, 3], "restrictionLevel": "推奨", "reason": "club"}
    )
    assert r is not None
    assert r.day == "tue"
    assert r.periods == (1, 3)
    assert r.level == "preferred"
    assert not r.is_required
    assert AssignmentRestriction.from_dict({"day": "nope", "periods": [1]}) is None


def test_teacher_restriction_level_prefers_required():
    t = Teacher(
        teacher_id="T1",
        name="A",
        assignment_restrictions=(
            AssignmentRestriction(day="mon", periods=(1,), level="preferred"),
            AssignmentRestriction(day="mon", periods=(1, 2), level="required"),
        ),
    )
    assert t.restriction_level("mon", 1) == "required"
    assert t.restriction_level("mon", 2) == "required"
    assert t.restriction_level("tue", 1) is None


def test_empty_grade_lists_mean_all_grades():
    assert Teacher(teacher_id="T1", name="A").teaches_grade(3)
    assert Subject(subject_id="S1", name="Math").offered_to(2)
    assert not Subject(subject_id="S1", name="Math", grades=(1,)).offered_to(2)
    assert Subject(subject_id="S1", name="Math", weekly_hours={1: 4}).hours_for(1) == 4


def test_display_cell_from_value_and_plain():
    cell = DisplayCell.from_value(
        {
            "subject": "Math",
            "teacher": {"name": "A"},
            "isAutoFilled": True,
            "hasViolation": True,
            "violations": [{"period": "1", "day": "mon", "type": "restriction", "message": "x", "severity": "high"}],
            "violationSeverity": "high",
        }
    )
    assert cell is not None
    assert cell.teacher == "A"
    assert cell.is_auto_filled
    assert cell.violations[0].severity == "high"

    plain = cell.plain()
    assert plain.violations == ()
    assert not plain.has_violation
    assert plain.violation_severity is None
    assert plain.is_auto_filled

    assert DisplayCell.from_value({"subject": "", "teacher": ""}) is None
    assert DisplayCell.from_value("Math") is None


def test_period_row_to_dict_has_every_day():
    row = PeriodRow.empty(1).with_cell("wed", DisplayCell(subject="Math", teacher="A"))
    d = row.to_dict()
    assert d["period"] == "1"
    assert d["mon"] is None
    assert d["wed"]["subject"] == "Math"
    assert d["wed"]["isAutoFilled"] is False
    assert PeriodRow.from_value(d).get("wed").teacher == "A"


def test_violation_dict_uses_camel_case_keys():
    v = Violation(period="2", day="fri", type="teacher_conflict", message="m", severity="high", affected_classes=("1-1", "1-2"))
    d = v.to_dict()
    assert d["affectedClasses"] == ["1-1", "1-2"]
    assert "class" not in d
    assert Violation.from_dict(d) == v
