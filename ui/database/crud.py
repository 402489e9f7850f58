"""CRUD operations for the Streamlit UI.

All DB access is centralized here so pages remain clean.

We use simple `sqlite3` + parameterized queries. JSON columns (`*_json`) are
decoded into plain Python values on read; `load_*` helpers additionally build
the domain dataclasses used by the validator and generator.

"""

from __future__ import annotations

import json
import logging
import sqlite3
import uuid
from typing import Any, Dict, List, Optional, Sequence

from timetable.models import AssignmentRestriction, Classroom, SchoolSettings, Subject, Teacher


logger = logging.getLogger(__name__)


# -----------------
# Helper utilities
# -----------------


def _rows(conn: sqlite3.Connection, query: str, params: Sequence[Any] = ()) -> List[Dict[str, Any]]:
    cur = conn.execute(query, params)
    return [dict(r) for r in cur.fetchall()]


def _row(conn: sqlite3.Connection, query: str, params: Sequence[Any] = ()) -> Optional[Dict[str, Any]]:
    cur = conn.execute(query, params)
    r = cur.fetchone()
    return dict(r) if r is not None else None


def _loads(text: Optional[str], default: Any) -> Any:
    if not text:
        return default
    try:
        return json.loads(text)
    except ValueError:
        logger.warning("Ignoring malformed JSON column value: %.40r", text)
        return default


# Tables that carry a user-controlled display order
_ORDERED_TABLES = {
    "teachers": "teacher_id",
    "subjects": "subject_id",
    "classrooms": "classroom_id",
}


def _resolve_display_order(conn: sqlite3.Connection, table: str, record_id: str, display_order: Optional[int]) -> int:
    """Explicit order wins; existing rows keep theirs; new rows go last."""

    if display_order is not None:
        return int(display_order)
    id_column = _ORDERED_TABLES[table]
    existing = _row(conn, f"SELECT display_order FROM {table} WHERE {id_column}=?", (record_id,))
    if existing is not None:
        return int(existing["display_order"])
    r = _row(conn, f"SELECT COALESCE(MAX(display_order), 0) AS m FROM {table}")
    return int(r["m"] if r else 0) + 1


def _reorder(conn: sqlite3.Connection, table: str, ordered_ids: Sequence[str]) -> None:
    id_column = _ORDERED_TABLES[table]
    for i, record_id in enumerate(ordered_ids, start=1):
        conn.execute(
            f"UPDATE {table} SET display_order=?, updated_at=datetime('now') WHERE {id_column}=?",
            (i, record_id),
        )


# ---------------
# School settings
# ---------------


def get_school_settings(conn: sqlite3.Connection) -> Dict[str, Any]:
    s = _row(conn, "SELECT * FROM school_settings WHERE id=1")
    assert s is not None
    return s


def update_school_settings(
    conn: sqlite3.Connection,
    *,
    grade1_classes: int,
    grade2_classes: int,
    grade3_classes: int,
    daily_periods: int,
    saturday_periods: int,
) -> None:
    conn.execute(
        """
        UPDATE school_settings
        SET grade1_classes=?,
            grade2_classes=?,
            grade3_classes=?,
            daily_periods=?,
            saturday_periods=?,
            updated_at=datetime('now')
        WHERE id=1
        """,
        (
            int(grade1_classes),
            int(grade2_classes),
            int(grade3_classes),
            int(daily_periods),
            int(saturday_periods),
        ),
    )


def load_school_settings(conn: sqlite3.Connection) -> SchoolSettings:
    return SchoolSettings.from_row(get_school_settings(conn))


# --------
# Subjects
# --------


def _decode_subject(r: Dict[str, Any]) -> Dict[str, Any]:
    r["grades"] = [int(g) for g in _loads(r.get("grades_json"), [])]
    r["weekly_hours"] = {int(k): int(v) for k, v in _loads(r.get("weekly_hours_json"), {}).items()}
    r["requires_special_classroom"] = bool(r.get("requires_special_classroom"))
    return r


def list_subjects(conn: sqlite3.Connection) -> List[Dict[str, Any]]:
    rows = _rows(conn, "SELECT * FROM subjects ORDER BY display_order, name")
    return [_decode_subject(r) for r in rows]


def get_subject(conn: sqlite3.Connection, subject_id: str) -> Optional[Dict[str, Any]]:
    r = _row(conn, "SELECT * FROM subjects WHERE subject_id=?", (subject_id,))
    return _decode_subject(r) if r is not None else None


def upsert_subject(
    conn: sqlite3.Connection,
    *,
    subject_id: str,
    name: str,
    grades: List[int],
    weekly_hours: Dict[int, int],
    requires_special_classroom: bool = False,
    classroom_type: str = "",
    display_order: Optional[int] = None,
) -> None:
    order = _resolve_display_order(conn, "subjects", subject_id, display_order)
    conn.execute(
        """
        INSERT INTO subjects (
            subject_id, name, grades_json, weekly_hours_json,
            requires_special_classroom, classroom_type, display_order
        )
        VALUES (?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT(subject_id) DO UPDATE SET
            name=excluded.name,
            grades_json=excluded.grades_json,
            weekly_hours_json=excluded.weekly_hours_json,
            requires_special_classroom=excluded.requires_special_classroom,
            classroom_type=excluded.classroom_type,
            display_order=excluded.display_order,
            updated_at=datetime('now')
        """,
        (
            subject_id,
            name,
            json.dumps(sorted(int(g) for g in grades)),
            json.dumps({str(int(k)): int(v) for k, v in weekly_hours.items() if int(v) > 0}),
            int(bool(requires_special_classroom)),
            str(classroom_type or "") if requires_special_classroom else "",
            order,
        ),
    )


def delete_subject(conn: sqlite3.Connection, subject_id: str) -> None:
    conn.execute("DELETE FROM subjects WHERE subject_id=?", (subject_id,))


def reorder_subjects(conn: sqlite3.Connection, ordered_ids: Sequence[str]) -> None:
    _reorder(conn, "subjects", ordered_ids)


def load_subjects(conn: sqlite3.Connection) -> List[Subject]:
    return [
        Subject(
            subject_id=r["subject_id"],
            name=r["name"],
            grades=tuple(r["grades"]),
            weekly_hours=dict(r["weekly_hours"]),
            requires_special_classroom=bool(r["requires_special_classroom"]),
            classroom_type=str(r.get("classroom_type") or ""),
        )
        for r in list_subjects(conn)
    ]


# --------
# Teachers
# --------


def _decode_teacher(conn: sqlite3.Connection, r: Dict[str, Any]) -> Dict[str, Any]:
    r["grades"] = [int(g) for g in _loads(r.get("grades_json"), [])]
    r["assignment_restrictions"] = _loads(r.get("assignment_restrictions_json"), [])
    subj = _rows(
        conn,
        """
        SELECT s.subject_id, s.name
        FROM teacher_subjects ts JOIN subjects s ON s.subject_id = ts.subject_id
        WHERE ts.teacher_id=?
        ORDER BY s.display_order, s.name
        """,
        (r["teacher_id"],),
    )
    r["subject_ids"] = [x["subject_id"] for x in subj]
    r["subjects"] = [x["name"] for x in subj]
    return r


def list_teachers(conn: sqlite3.Connection) -> List[Dict[str, Any]]:
    data = _rows(conn, "SELECT * FROM teachers ORDER BY display_order, teacher_id")
    return [_decode_teacher(conn, r) for r in data]


def get_teacher(conn: sqlite3.Connection, teacher_id: str) -> Optional[Dict[str, Any]]:
    r = _row(conn, "SELECT * FROM teachers WHERE teacher_id=?", (teacher_id,))
    if r is None:
        return None
    return _decode_teacher(conn, r)


def upsert_teacher(
    conn: sqlite3.Connection,
    *,
    teacher_id: str,
    name: str,
    subject_ids: List[str],
    grades: List[int],
    max_hours_per_week: int = 25,
    assignment_restrictions: Optional[List[Dict[str, Any]]] = None,
    display_order: Optional[int] = None,
) -> None:
    order = _resolve_display_order(conn, "teachers", teacher_id, display_order)
    conn.execute(
        """
        INSERT INTO teachers (teacher_id, name, grades_json, max_hours_per_week, assignment_restrictions_json, display_order)
        VALUES (?, ?, ?, ?, ?, ?)
        ON CONFLICT(teacher_id) DO UPDATE SET
            name=excluded.name,
            grades_json=excluded.grades_json,
            max_hours_per_week=excluded.max_hours_per_week,
            assignment_restrictions_json=excluded.assignment_restrictions_json,
            display_order=excluded.display_order,
            updated_at=datetime('now')
        """,
        (
            teacher_id,
            name,
            json.dumps(sorted(int(g) for g in grades)),
            int(max_hours_per_week),
            json.dumps(assignment_restrictions or [], ensure_ascii=False),
            order,
        ),
    )

    # refresh mappings
    conn.execute("DELETE FROM teacher_subjects WHERE teacher_id=?", (teacher_id,))
    for sid in subject_ids:
        conn.execute(
            "INSERT OR IGNORE INTO teacher_subjects (teacher_id, subject_id) VALUES (?, ?)",
            (teacher_id, sid),
        )


def delete_teacher(conn: sqlite3.Connection, teacher_id: str) -> None:
    conn.execute("DELETE FROM teachers WHERE teacher_id=?", (teacher_id,))


def reorder_teachers(conn: sqlite3.Connection, ordered_ids: Sequence[str]) -> None:
    _reorder(conn, "teachers", ordered_ids)


def load_teachers(conn: sqlite3.Connection) -> List[Teacher]:
    out: List[Teacher] = []
    for r in list_teachers(conn):
        restrictions = []
        for raw in r["assignment_restrictions"] or []:
            parsed = AssignmentRestriction.from_dict(raw) if isinstance(raw, dict) else None
            if parsed is None:
                logger.warning("Teacher %s: skipping unreadable restriction %r", r["teacher_id"], raw)
                continue
            restrictions.append(parsed)
        out.append(
            Teacher(
                teacher_id=r["teacher_id"],
                name=r["name"],
                subjects=tuple(r["subjects"]),
                grades=tuple(r["grades"]),
                max_hours_per_week=int(r["max_hours_per_week"]),
                assignment_restrictions=tuple(restrictions),
            )
        )
    return out


# ----------
# Classrooms
# ----------


def list_classrooms(conn: sqlite3.Connection) -> List[Dict[str, Any]]:
    return _rows(conn, "SELECT * FROM classrooms ORDER BY display_order, name")


def get_classroom(conn: sqlite3.Connection, classroom_id: str) -> Optional[Dict[str, Any]]:
    return _row(conn, "SELECT * FROM classrooms WHERE classroom_id=?", (classroom_id,))


def upsert_classroom(
    conn: sqlite3.Connection,
    *,
    classroom_id: str,
    name: str,
    classroom_type: str,
    capacity: int,
    count: int = 1,
    display_order: Optional[int] = None,
) -> None:
    order = _resolve_display_order(conn, "classrooms", classroom_id, display_order)
    conn.execute(
        """
        INSERT INTO classrooms (classroom_id, name, classroom_type, capacity, count, display_order)
        VALUES (?, ?, ?, ?, ?, ?)
        ON CONFLICT(classroom_id) DO UPDATE SET
            name=excluded.name,
            classroom_type=excluded.classroom_type,
            capacity=excluded.capacity,
            count=excluded.count,
            display_order=excluded.display_order,
            updated_at=datetime('now')
        """,
        (classroom_id, name, classroom_type, int(capacity), int(count), order),
    )


def delete_classroom(conn: sqlite3.Connection, classroom_id: str) -> None:
    conn.execute("DELETE FROM classrooms WHERE classroom_id=?", (classroom_id,))


def reorder_classrooms(conn: sqlite3.Connection, ordered_ids: Sequence[str]) -> None:
    _reorder(conn, "classrooms", ordered_ids)


def load_classrooms(conn: sqlite3.Connection) -> List[Classroom]:
    return [
        Classroom(
            classroom_id=r["classroom_id"],
            name=r["name"],
            classroom_type=r["classroom_type"],
            capacity=int(r["capacity"]),
            count=int(r["count"]),
        )
        for r in list_classrooms(conn)
    ]


# ----------
# Conditions
# ----------


def get_conditions(conn: sqlite3.Connection) -> str:
    r = _row(conn, "SELECT conditions FROM conditions WHERE id=1")
    return str(r["conditions"]) if r else ""


def update_conditions(conn: sqlite3.Connection, conditions: str) -> None:
    conn.execute(
        "UPDATE conditions SET conditions=?, updated_at=datetime('now') WHERE id=1",
        (conditions,),
    )


# ----------
# Timetables
# ----------


def _new_timetable_id() -> str:
    return uuid.uuid4().hex[:12]


def _decode_timetable(r: Dict[str, Any]) -> Dict[str, Any]:
    r["timetable"] = _loads(r.get("timetable_json"), [])
    r["statistics"] = _loads(r.get("statistics_json"), {})
    r["settings"] = _loads(r.get("settings_json"), {})
    r["is_active"] = bool(r.get("is_active"))
    return r


def list_timetables(conn: sqlite3.Connection) -> List[Dict[str, Any]]:
    rows = _rows(
        conn,
        """
        SELECT timetable_id, name, assignment_rate, is_active, created_at, updated_at
        FROM timetables
        ORDER BY created_at DESC, rowid DESC
        """,
    )
    for r in rows:
        r["is_active"] = bool(r["is_active"])
    return rows


def create_timetable(
    conn: sqlite3.Connection,
    *,
    name: str,
    timetable: Any,
    statistics: Optional[Dict[str, Any]] = None,
    settings: Optional[Dict[str, Any]] = None,
    assignment_rate: float = 0.0,
    input_hash: Optional[str] = None,
    is_active: bool = False,
) -> str:
    """Persist a generated timetable grid; returns the new id."""

    timetable_id = _new_timetable_id()
    if is_active:
        conn.execute("UPDATE timetables SET is_active=0")
    conn.execute(
        """
        INSERT INTO timetables (
            timetable_id, name, timetable_json, statistics_json, settings_json,
            assignment_rate, input_hash, is_active
        )
        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            timetable_id,
            name,
            json.dumps(timetable, ensure_ascii=False),
            json.dumps(statistics or {}, ensure_ascii=False),
            json.dumps(settings or {}, ensure_ascii=False),
            float(assignment_rate),
            input_hash,
            int(bool(is_active)),
        ),
    )
    logger.info("Saved timetable %s (%s)", timetable_id, name)
    return timetable_id


def get_timetable(conn: sqlite3.Connection, timetable_id: str) -> Optional[Dict[str, Any]]:
    r = _row(conn, "SELECT * FROM timetables WHERE timetable_id=?", (timetable_id,))
    return _decode_timetable(r) if r is not None else None


def update_timetable(
    conn: sqlite3.Connection,
    timetable_id: str,
    *,
    name: Optional[str] = None,
    timetable: Any = None,
    statistics: Optional[Dict[str, Any]] = None,
    assignment_rate: Optional[float] = None,
) -> None:
    sets: List[str] = []
    params: List[Any] = []
    if name is not None:
        sets.append("name=?")
        params.append(name)
    if timetable is not None:
        sets.append("timetable_json=?")
        params.append(json.dumps(timetable, ensure_ascii=False))
        # edited grids no longer correspond to a generation input
        sets.append("input_hash=NULL")
    if statistics is not None:
        sets.append("statistics_json=?")
        params.append(json.dumps(statistics, ensure_ascii=False))
    if assignment_rate is not None:
        sets.append("assignment_rate=?")
        params.append(float(assignment_rate))
    if not sets:
        return
    sets.append("updated_at=datetime('now')")
    conn.execute(f"UPDATE timetables SET {', '.join(sets)} WHERE timetable_id=?", (*params, timetable_id))


def delete_timetable(conn: sqlite3.Connection, timetable_id: str) -> None:
    conn.execute("DELETE FROM timetables WHERE timetable_id=?", (timetable_id,))


def set_active_timetable(conn: sqlite3.Connection, timetable_id: str) -> None:
    conn.execute("UPDATE timetables SET is_active=0")
    conn.execute("UPDATE timetables SET is_active=1 WHERE timetable_id=?", (timetable_id,))


def get_active_timetable(conn: sqlite3.Connection) -> Optional[Dict[str, Any]]:
    r = _row(conn, "SELECT * FROM timetables WHERE is_active=1 ORDER BY updated_at DESC LIMIT 1")
    return _decode_timetable(r) if r is not None else None


def find_latest_timetable_id_by_hash(conn: sqlite3.Connection, input_hash: str) -> Optional[str]:
    r = _row(
        conn,
        "SELECT timetable_id FROM timetables WHERE input_hash=? ORDER BY created_at DESC, rowid DESC LIMIT 1",
        (input_hash,),
    )
    return str(r["timetable_id"]) if r else None
