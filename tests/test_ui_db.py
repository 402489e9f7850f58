import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from timetable.models import SchoolSettings
from ui.database.db import db_session
from ui.database import crud


def _use_tmp_db(tmp_path, monkeypatch):
    monkeypatch.setenv("TIME_TABLE_DB", str(tmp_path / "timetable.db"))


def test_school_settings_defaults_and_update(tmp_path, monkeypatch):
    _use_tmp_db(tmp_path, monkeypatch)

    with db_session() as conn:
        s = crud.get_school_settings(conn)
        assert s["id"] == 1
        assert crud.load_school_settings(conn) == SchoolSettings()

        crud.update_school_settings(
            conn, grade1_classes=2, grade2_classes=2, grade3_classes=1, daily_periods=5, saturday_periods=0
        )

    with db_session() as conn:
        loaded = crud.load_school_settings(conn)

    assert loaded.grade1_classes == 2
    assert loaded.daily_periods == 5
    assert loaded.saturday_periods == 0


def test_subject_crud_and_ordering(tmp_path, monkeypatch):
    _use_tmp_db(tmp_path, monkeypatch)

    with db_session() as conn:
        crud.upsert_subject(conn, subject_id="S001", name="Math", grades=[1, 2, 3], weekly_hours={1: 4, 2: 3, 3: 3})
        crud.upsert_subject(
            conn,
            subject_id="S002",
            name="Science",
            grades=[2, 3],
            weekly_hours={2: 3, 3: 0},
            requires_special_classroom=True,
            classroom_type="理科室",
        )
        subjects = crud.list_subjects(conn)

        assert [s["subject_id"] for s in subjects] == ["S001", "S002"]
        assert subjects[0]["weekly_hours"] == {1: 4, 2: 3, 3: 3}
        # zero-hour grades are not stored
        assert subjects[1]["weekly_hours"] == {2: 3}
        assert subjects[1]["requires_special_classroom"] is True

        # updating keeps the position
        crud.upsert_subject(conn, subject_id="S001", name="Mathematics", grades=[1], weekly_hours={1: 5})
        assert crud.get_subject(conn, "S001")["display_order"] == 1

        crud.reorder_subjects(conn, ["S002", "S001"])
        assert [s["name"] for s in crud.list_subjects(conn)] == ["Science", "Mathematics"]

        loaded = crud.load_subjects(conn)
        assert loaded[0].classroom_type == "理科室"
        assert loaded[1].hours_for(1) == 5

        crud.delete_subject(conn, "S002")
        assert crud.get_subject(conn, "S002") is None


def test_teacher_crud_with_subjects_and_restrictions(tmp_path, monkeypatch):
    _use_tmp_db(tmp_path, monkeypatch)

    with db_session() as conn:
        crud.upsert_subject(conn, subject_id="S001", name="Math", grades=[1, 2, 3], weekly_hours={1: 4})
        crud.upsert_subject(conn, subject_id="S002", name="English", grades=[1, 2, 3], weekly_hours={1: 4})
        crud.upsert_teacher(
            conn,
            teacher_id="T001",
            name="Tanaka",
            subject_ids=["S001", "S002"],
            grades=[2, 1],
            max_hours_per_week=20,
            assignment_restrictions=[{"day": "mon", "periods": [1, 2], "level": "required", "reason": "meeting"}],
        )

        t = crud.get_teacher(conn, "T001")
        assert t is not None
        assert t["subjects"] == ["Math", "English"]
        assert t["grades"] == [1, 2]
        assert t["assignment_restrictions"][0]["reason"] == "meeting"

        [teacher] = crud.load_teachers(conn)
        assert teacher.subjects == ("Math", "English")
        assert teacher.max_hours_per_week == 20
        assert teacher.restriction_level("mon", 2) == "required"

        # deleting a subject removes it from the teacher
        crud.delete_subject(conn, "S002")
        assert crud.get_teacher(conn, "T001")["subjects"] == ["Math"]

        crud.upsert_teacher(conn, teacher_id="T002", name="Abe", subject_ids=["S001"], grades=[1])
        crud.reorder_teachers(conn, ["T002", "T001"])
        assert [x["teacher_id"] for x in crud.list_teachers(conn)] == ["T002", "T001"]

        crud.delete_teacher(conn, "T001")
        assert [x["teacher_id"] for x in crud.list_teachers(conn)] == ["T002"]


def test_unreadable_restrictions_are_skipped(tmp_path, monkeypatch):
    _use_tmp_db(tmp_path, monkeypatch)

    with db_session() as conn:
        crud.upsert_teacher(
            conn,
            teacher_id="T001",
            name="Sato",
            subject_ids=[],
            grades=[1],
            assignment_restrictions=[{"day": "someday", "periods": [1]}, {"day": "金曜", "periods": [6], "level": "推奨"}],
        )
        [teacher] = crud.load_teachers(conn)

    assert len(teacher.assignment_restrictions) == 1
    assert teacher.restriction_level("fri", 6) == "preferred"


def test_classrooms_and_conditions(tmp_path, monkeypatch):
    _use_tmp_db(tmp_path, monkeypatch)

    with db_session() as conn:
        crud.upsert_classroom(conn, classroom_id="C001", name="Lab", classroom_type="理科室", capacity=40, count=2)
        crud.upsert_classroom(conn, classroom_id="C002", name="Music", classroom_type="音楽室", capacity=40)
        crud.reorder_classrooms(conn, ["C002", "C001"])
        rooms = crud.load_classrooms(conn)
        assert [r.name for r in rooms] == ["Music", "Lab"]
        assert rooms[1].count == 2
        assert crud.get_classroom(conn, "C001")["capacity"] == 40
        assert crud.get_classroom(conn, "C999") is None

        assert crud.get_conditions(conn) == ""
        crud.update_conditions(conn, "PE not in period 1")
        assert crud.get_conditions(conn) == "PE not in period 1"

        crud.delete_classroom(conn, "C001")
        assert [r["classroom_id"] for r in crud.list_classrooms(conn)] == ["C002"]


def test_timetable_save_load_activate_and_cache_lookup(tmp_path, monkeypatch):
    _use_tmp_db(tmp_path, monkeypatch)

    grid = [[[{"classGrade": 1, "classSection": "1", "subject": "Math", "teacher": "A"}]]]
    with db_session() as conn:
        first = crud.create_timetable(
            conn,
            name="First",
            timetable=grid,
            statistics={"assignmentRate": 100.0},
            assignment_rate=100.0,
            input_hash="abc",
            is_active=True,
        )
        second = crud.create_timetable(conn, name="Second", timetable=[], input_hash="abc")

        assert crud.find_latest_timetable_id_by_hash(conn, "abc") == second
        assert crud.find_latest_timetable_id_by_hash(conn, "zzz") is None

        loaded = crud.get_timetable(conn, first)
        assert loaded["timetable"] == grid
        assert loaded["statistics"]["assignmentRate"] == 100.0
        assert loaded["is_active"] is True

        crud.set_active_timetable(conn, second)
        assert crud.get_active_timetable(conn)["timetable_id"] == second
        assert {t["timetable_id"]: t["is_active"] for t in crud.list_timetables(conn)} == {first: False, second: True}

        # edited grids drop out of the generation cache
        crud.update_timetable(conn, second, name="Edited", timetable=grid)
        edited = crud.get_timetable(conn, second)
        assert edited["name"] == "Edited"
        assert edited["input_hash"] is None
        assert crud.find_latest_timetable_id_by_hash(conn, "abc") == first

        crud.delete_timetable(conn, first)
        assert crud.get_timetable(conn, first) is None
