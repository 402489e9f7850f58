import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from optimizer.annealing import AnnealConfig
from timetable.converter import split_by_class
from timetable.generator import (
    GenerationSettings,
    GenerationState,
    LessonAssignment,
    build_lessons,
    build_problem,
    compute_energy,
    eligible_teachers,
    quality_score,
    solve_school_timetable,
    to_generated_grid,
)
from timetable.models import AssignmentRestriction, Classroom, SchoolSettings, Subject, Teacher
from timetable.validator import calculate_compliance_rate


SMALL_SCHOOL = SchoolSettings(grade1_classes=1, grade2_classes=1, grade3_classes=1, daily_periods=2, saturday_periods=0)

SUBJECTS = [
    Subject(subject_id="S1", name="Math", grades=(1, 2, 3), weekly_hours={1: 3, 2: 3, 3: 3}),
    Subject(subject_id="S2", name="English", grades=(1, 2, 3), weekly_hours={1: 2, 2: 2, 3: 2}),
]

TEACHERS = [
    Teacher(teacher_id="T1", name="A", subjects=("Math",), grades=(1, 2, 3)),
    Teacher(
        teacher_id="T2",
        name="B",
        subjects=("English",),
        grades=(1, 2, 3),
        assignment_restrictions=(AssignmentRestriction(day="mon", periods=(1, 2), level="required"),),
    ),
    Teacher(teacher_id="T3", name="C", subjects=("Math",), grades=(1, 2, 3)),
]


def test_build_lessons_one_per_weekly_hour_per_class():
    lessons = build_lessons(SMALL_SCHOOL, SUBJECTS)
    assert len(lessons) == 3 * (3 + 2)
    assert list(lessons)[0] == "L0001"
    first = lessons["L0001"]
    assert first.class_ref.label == "1-1"
    assert first.subject == "Math"


def test_subjects_not_offered_to_a_grade_create_no_lessons():
    subjects = [Subject(subject_id="S9", name="Science", grades=(2,), weekly_hours={1: 4, 2: 1})]
    lessons = build_lessons(SMALL_SCHOOL, subjects)
    assert [l.class_ref.label for l in lessons.values()] == ["2-1"]


def test_eligible_teachers_follow_subject_and_grade():
    problem = build_problem(SMALL_SCHOOL, TEACHERS, SUBJECTS)
    eligible = eligible_teachers(problem)
    math_lesson = next(lid for lid, l in problem.lessons.items() if l.subject == "Math")
    english_lesson = next(lid for lid, l in problem.lessons.items() if l.subject == "English")
    assert eligible[math_lesson] == ["T1", "T3"]
    assert eligible[english_lesson] == ["T2"]


def test_solver_places_every_lesson_cleanly():
    problem = build_problem(SMALL_SCHOOL, TEACHERS, SUBJECTS)

    result = solve_school_timetable(problem, anneal_config=AnnealConfig(steps=8000, reheats=1, seed=1))

    stats = result.statistics
    assert stats["totalSlots"] == 15
    assert stats["assignedSlots"] == 15
    assert stats["unassignedSlots"] == 0
    assert stats["assignmentRate"] == 100.0
    assert stats["method"] == "simulated_annealing"
    assert result.unassigned == []

    # the grid is readable by the display converter and has no conflicts
    compliance = calculate_compliance_rate(result.grid, TEACHERS, SUBJECTS, SMALL_SCHOOL)
    assert not [v for v in compliance.violations if v.severity in ("high", "medium")]
    rows = split_by_class(result.grid, SMALL_SCHOOL.class_refs(), max_periods=2)
    assert set(rows) == {"1-1", "2-1", "3-1"}

    # B never teaches on Monday
    for slot in result.grid[0][0] + result.grid[0][1]:
        assert slot["teacher"] != "B"


def test_solver_is_deterministic_for_a_seed():
    problem = build_problem(SMALL_SCHOOL, TEACHERS, SUBJECTS)
    cfg = AnnealConfig(steps=1000, reheats=0, seed=5)
    a = solve_school_timetable(problem, anneal_config=cfg)
    b = solve_school_timetable(problem, anneal_config=cfg)
    assert a.grid == b.grid


def test_solver_requires_teachers_and_lessons():
    with pytest.raises(ValueError):
        solve_school_timetable(build_problem(SMALL_SCHOOL, [], SUBJECTS))
    with pytest.raises(ValueError):
        solve_school_timetable(build_problem(SMALL_SCHOOL, TEACHERS, []))


def test_lessons_without_a_qualified_teacher_are_reported():
    subjects = SUBJECTS + [Subject(subject_id="S3", name="Art", grades=(1,), weekly_hours={1: 1})]
    problem = build_problem(SMALL_SCHOOL, TEACHERS, subjects)

    result = solve_school_timetable(problem, anneal_config=AnnealConfig(steps=3000, seed=2))

    assert result.statistics["unassignedSlots"] >= 1
    assert any(u["subject"] == "Art" and u["reason"] == "no qualified teacher" for u in result.unassigned)
    assert result.statistics["assignmentRate"] < 100.0


def test_energy_counts_hard_conflicts():
    problem = build_problem(SMALL_SCHOOL, TEACHERS, SUBJECTS)
    settings = GenerationSettings()
    # everything at Tuesday period 1 with a qualified teacher
    crowded = GenerationState(
        assignments={
            lid: LessonAssignment(day_idx=1, period_idx=0, teacher_id="T1" if l.subject == "Math" else "T2")
            for lid, l in problem.lessons.items()
        }
    )
    assert compute_energy(problem, settings, crowded) >= settings.hard_penalty


def test_special_classrooms_are_shared_out_by_type():
    settings = SchoolSettings(grade1_classes=2, grade2_classes=1, grade3_classes=1, daily_periods=1, saturday_periods=0)
    subjects = [
        Subject(
            subject_id="S1",
            name="Science",
            grades=(1,),
            weekly_hours={1: 1},
            requires_special_classroom=True,
            classroom_type="理科室",
        )
    ]
    teachers = [
        Teacher(teacher_id="T1", name="A", subjects=("Science",)),
        Teacher(teacher_id="T2", name="B", subjects=("Science",)),
    ]
    classrooms = [Classroom(classroom_id="C1", name="Lab", classroom_type="理科室")]
    problem = build_problem(settings, teachers, subjects, classrooms)
    state = GenerationState(
        assignments={
            "L0001": LessonAssignment(day_idx=0, period_idx=0, teacher_id="T1"),
            "L0002": LessonAssignment(day_idx=0, period_idx=0, teacher_id="T2"),
        }
    )

    grid, unassigned = to_generated_grid(problem, state)

    assert unassigned == []
    rooms = {s["classSection"]: s["classroom"] for s in grid[0][0]}
    assert rooms == {"1": "Lab", "2": "1-2"}


def test_to_generated_grid_drops_clashing_lessons():
    settings = SchoolSettings(grade1_classes=1, grade2_classes=1, grade3_classes=1, daily_periods=1, saturday_periods=0)
    subjects = [Subject(subject_id="S1", name="Math", grades=(1,), weekly_hours={1: 2})]
    teachers = [Teacher(teacher_id="T1", name="A", subjects=("Math",))]
    problem = build_problem(settings, teachers, subjects)
    state = GenerationState(
        assignments={
            "L0001": LessonAssignment(day_idx=2, period_idx=0, teacher_id="T1"),
            "L0002": LessonAssignment(day_idx=2, period_idx=0, teacher_id="T1"),
        }
    )

    grid, unassigned = to_generated_grid(problem, state)

    assert len(grid[2][0]) == 1
    assert grid[2][0][0]["day"] == "wed"
    assert unassigned == [{"lesson_id": "L0002", "class": "1-1", "subject": "Math", "reason": "class already has a lesson"}]


def test_quality_score():
    assert quality_score(10, 10, 0) == 100.0
    assert quality_score(9, 10, 1) == 85.0
    assert quality_score(10, 10, 20) == 70.0
    assert quality_score(0, 0, 0) == 0.0


def test_to_generated_grid_enforces_weekly_teacher_cap():
    settings = SchoolSettings(grade1_classes=1, grade2_classes=0, grade3_classes=0, daily_periods=1, saturday_periods=0)
    subjects = [Subject(subject_id="S1", name="Math", grades=(1,), weekly_hours={1: 2})]
    teachers = [Teacher(teacher_id="T1", name="A", subjects=("Math",), max_hours_per_week=1)]
    problem = build_problem(settings, teachers, subjects)
    state = GenerationState(
        assignments={
            "L0001": LessonAssignment(day_idx=0, period_idx=0, teacher_id="T1"),
            "L0002": LessonAssignment(day_idx=1, period_idx=0, teacher_id="T1"),
        }
    )

    grid, unassigned = to_generated_grid(problem, state)

    assert [s["subject"] for s in grid[0][0]] == ["Math"]
    assert grid[1][0] == []
    assert unassigned == [
        {"lesson_id": "L0002", "class": "1-1", "subject": "Math", "reason": "teacher weekly hours exceeded"}
    ]
