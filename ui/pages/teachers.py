"""Teacher Management page.

Streamlit pages are auto-discovered when running `streamlit run ui/app.py`.

"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Dict, List

import pandas as pd
import streamlit as st

# Ensure project root is on PYTHONPATH when Streamlit runs pages
ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from timetable.models import DAY_KEYS, DAY_LABELS, GRADES, RESTRICTION_PREFERRED, RESTRICTION_REQUIRED, AssignmentRestriction
from ui.database.db import db_session
from ui.database import crud
from ui.utils.id_generator import generate_teacher_id
from ui.utils.validators import require_non_empty, validate_grades, validate_id, validate_positive_int, validate_restrictions


_LEVELS = [RESTRICTION_REQUIRED, RESTRICTION_PREFERRED]


def _restriction_editor(max_periods: int, existing: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Per-day restriction editor.

    Restrictions are stored as a list of objects:
        {"day": "mon", "periods": [1, 2], "level": "required", "reason": ""}
    """

    st.caption("Periods this teacher cannot (required) or would rather not (preferred) teach")

    existing_map: Dict[str, Dict[str, Any]] = {}
    for raw in existing or []:
        r = AssignmentRestriction.from_dict(raw) if isinstance(raw, dict) else None
        if r is not None:
            existing_map[r.day] = r.to_dict()

    out: List[Dict[str, Any]] = []
    for day in DAY_KEYS:
        prev = existing_map.get(day, {})
        c1, c2, c3 = st.columns([2, 1, 2])
        periods = c1.multiselect(
            DAY_LABELS[day],
            options=list(range(1, int(max_periods) + 1)),
            default=[p for p in prev.get("periods", []) if 1 <= int(p) <= int(max_periods)],
            key=f"restr_{day}_periods",
        )
        level = c2.selectbox(
            "Level",
            options=_LEVELS,
            index=_LEVELS.index(prev.get("level", RESTRICTION_REQUIRED)),
            key=f"restr_{day}_level",
        )
        reason = c3.text_input("Reason", value=str(prev.get("reason", "")), key=f"restr_{day}_reason")
        if periods:
            out.append({"day": day, "periods": sorted(int(p) for p in periods), "level": level, "reason": reason.strip()})
    return out


def _restrictions_summary(restrictions: List[Dict[str, Any]]) -> str:
    parts = []
    for raw in restrictions or []:
        r = AssignmentRestriction.from_dict(raw) if isinstance(raw, dict) else None
        if r is None:
            continue
        mark = "" if r.is_required else "?"
        parts.append(f"{DAY_LABELS.get(r.day, r.day)} {','.join(str(p) for p in r.periods)}{mark}")
    return "; ".join(parts)


def _teachers_table(teachers: List[Dict[str, Any]]) -> pd.DataFrame:
    rows = []
    for t in teachers:
        rows.append(
            {
                "teacher_id": t["teacher_id"],
                "name": t["name"],
                "subjects": ", ".join(t.get("subjects") or []),
                "grades": ", ".join(str(g) for g in t.get("grades") or []),
                "max_hours_per_week": t.get("max_hours_per_week"),
                "restrictions": _restrictions_summary(t.get("assignment_restrictions") or []),
            }
        )
    return pd.DataFrame(rows)


def main() -> None:
    st.title("Teacher Management")

    with db_session() as conn:
        settings = crud.load_school_settings(conn)
        subjects = crud.list_subjects(conn)
        teachers_existing = crud.list_teachers(conn)

    subject_ids = [s["subject_id"] for s in subjects]
    subject_names = {s["subject_id"]: s["name"] for s in subjects}

    tab_add, tab_view = st.tabs(["Add / Update", "View / Delete"])

    with tab_add:
        st.subheader("Edit existing")
        options = ["(New teacher)"] + [t["teacher_id"] for t in teachers_existing]
        edit_teacher_id = st.selectbox(
            "Select Teacher",
            options=options,
            format_func=lambda x: x if x == "(New teacher)" else f"{x} {next((t['name'] for t in teachers_existing if t['teacher_id'] == x), '')}",
        )

        initial = None
        if edit_teacher_id != "(New teacher)":
            initial = next((t for t in teachers_existing if t.get("teacher_id") == edit_teacher_id), None)

        st.divider()
        if "teacher_id" not in st.session_state:
            with db_session() as conn:
                st.session_state["teacher_id"] = generate_teacher_id(conn)

        with st.form("teacher_form", clear_on_submit=False):
            c1, c2, c3 = st.columns([1, 2, 1])
            teacher_id = c1.text_input(
                "Teacher ID",
                value=(initial.get("teacher_id") if initial else st.session_state.get("teacher_id", "")),
                placeholder="e.g., T001",
                disabled=bool(initial),
                help="Teacher ID can't be changed for an existing record (delete + re-add if needed).",
            )
            name = c2.text_input(
                "Name",
                value=str((initial.get("name") if initial else "")),
                placeholder="e.g., Tanaka",
            )
            max_hours = c3.number_input(
                "Max hours/week",
                min_value=1,
                max_value=60,
                value=int((initial.get("max_hours_per_week", 25) if initial else 25)),
            )

            c4, c5 = st.columns(2)
            handled_subjects = c4.multiselect(
                "Subjects taught",
                options=subject_ids,
                default=[sid for sid in (initial.get("subject_ids") if initial else []) or [] if sid in subject_ids],
                format_func=lambda sid: subject_names.get(sid, sid),
            )
            grades = c5.multiselect(
                "Grades",
                options=list(GRADES),
                default=list((initial.get("grades") if initial else list(GRADES)) or []),
            )

            st.markdown("### Assignment restrictions")
            restrictions = _restriction_editor(
                settings.max_periods,
                existing=list((initial.get("assignment_restrictions") if initial else []) or []),
            )

            submitted = st.form_submit_button("Save Teacher")

        if submitted:
            ok, msg = validate_id(teacher_id, "Teacher ID")
            if not ok:
                st.error(msg)
                st.stop()

            ok, msg = require_non_empty(name, "Name")
            if not ok:
                st.error(msg)
                st.stop()

            ok, msg = validate_positive_int(int(max_hours), "Max hours/week", 1, 60)
            if not ok:
                st.error(msg)
                st.stop()

            ok, msg = validate_grades(grades)
            if not ok:
                st.error(msg)
                st.stop()

            ok, msg = validate_restrictions(restrictions, settings.max_periods)
            if not ok:
                st.error(msg)
                st.stop()

            with db_session() as conn:
                crud.upsert_teacher(
                    conn,
                    teacher_id=teacher_id.strip(),
                    name=name.strip(),
                    subject_ids=handled_subjects,
                    grades=[int(g) for g in grades],
                    max_hours_per_week=int(max_hours),
                    assignment_restrictions=restrictions,
                )
            st.success("Teacher saved.")

            # prepare next ID
            with db_session() as conn:
                st.session_state["teacher_id"] = generate_teacher_id(conn)

    with tab_view:
        with db_session() as conn:
            teachers = crud.list_teachers(conn)

        if not teachers:
            st.info("No teachers yet.")
            return

        st.dataframe(_teachers_table(teachers), use_container_width=True)

        st.divider()
        st.subheader("Order")
        ids = [t["teacher_id"] for t in teachers]
        pick = st.selectbox("Teacher to move", options=ids, key="teacher_order_pick")
        c_up, c_down = st.columns(2)
        i = ids.index(pick)
        if c_up.button("Move up", disabled=i == 0):
            ids[i - 1], ids[i] = ids[i], ids[i - 1]
            with db_session() as conn:
                crud.reorder_teachers(conn, ids)
            st.rerun()
        if c_down.button("Move down", disabled=i == len(ids) - 1):
            ids[i + 1], ids[i] = ids[i], ids[i + 1]
            with db_session() as conn:
                crud.reorder_teachers(conn, ids)
            st.rerun()

        st.divider()
        st.subheader("Delete teacher")
        to_delete = st.selectbox("Select Teacher ID", options=[t["teacher_id"] for t in teachers])
        if st.button("Delete", type="primary"):
            with db_session() as conn:
                crud.delete_teacher(conn, to_delete)
            st.success(f"Deleted {to_delete}")
            st.rerun()


if __name__ == "__main__":
    main()
