"""Subject Management page (CRUD).

Subjects carry the weekly lesson count per grade; the generator creates one
lesson per hour for every class of those grades.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Dict, List

import pandas as pd
import streamlit as st

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from timetable.models import GRADES
from ui.database.db import db_session
from ui.database import crud
from ui.utils.id_generator import generate_subject_id
from ui.utils.validators import validate_grades, validate_id, validate_unique_name, validate_weekly_hours


def _subjects_table(subjects: List[Dict[str, Any]]) -> pd.DataFrame:
    rows = []
    for s in subjects:
        row = {
            "subject_id": s["subject_id"],
            "name": s["name"],
            "grades": ", ".join(str(g) for g in s.get("grades") or []),
        }
        for g in GRADES:
            row[f"grade {g} hours"] = int((s.get("weekly_hours") or {}).get(g, 0))
        row["special room"] = s.get("classroom_type") if s.get("requires_special_classroom") else ""
        rows.append(row)
    return pd.DataFrame(rows)


def main() -> None:
    st.title("Subject Management")

    with db_session() as conn:
        subjects = crud.list_subjects(conn)
        classrooms = crud.list_classrooms(conn)

    room_types = sorted({c["classroom_type"] for c in classrooms if c.get("classroom_type")})

    tab_add, tab_view = st.tabs(["Add / Update", "View / Delete"])

    with tab_add:
        st.subheader("Edit existing")
        options = ["(New subject)"] + [s["subject_id"] for s in subjects]
        edit_id = st.selectbox(
            "Select Subject",
            options=options,
            format_func=lambda x: x if x == "(New subject)" else f"{x} {next((s['name'] for s in subjects if s['subject_id'] == x), '')}",
        )

        initial = None
        if edit_id != "(New subject)":
            initial = next((s for s in subjects if s.get("subject_id") == edit_id), None)

        if "subject_id" not in st.session_state:
            with db_session() as conn:
                st.session_state["subject_id"] = generate_subject_id(conn)

        st.divider()
        st.subheader("Details")
        with st.form("subject_form"):
            c1, c2 = st.columns([1, 2])
            subject_id = c1.text_input(
                "Subject ID",
                value=(initial.get("subject_id", "") if initial else st.session_state.get("subject_id", "")),
                placeholder="e.g., S001",
                disabled=bool(initial),
                help="Subject ID can't be changed for an existing record (delete + re-add if needed).",
            )
            name = c2.text_input(
                "Subject Name",
                value=(initial.get("name", "") if initial else ""),
                placeholder="e.g., Mathematics",
            )

            grades = st.multiselect(
                "Grades",
                options=list(GRADES),
                default=list((initial.get("grades") if initial else list(GRADES)) or []),
            )

            st.caption("Weekly lessons per grade")
            hour_cols = st.columns(len(GRADES))
            hours: Dict[int, int] = {}
            for col, g in zip(hour_cols, GRADES):
                hours[g] = int(
                    col.number_input(
                        f"Grade {g}",
                        min_value=0,
                        max_value=10,
                        value=int(((initial.get("weekly_hours") or {}).get(g, 0)) if initial else 0),
                    )
                )

            c3, c4 = st.columns(2)
            requires_special = c3.checkbox(
                "Needs a special classroom",
                value=bool(initial.get("requires_special_classroom")) if initial else False,
            )
            type_options = [""] + room_types
            current_type = str(initial.get("classroom_type") or "") if initial else ""
            classroom_type = c4.selectbox(
                "Classroom type",
                options=type_options if current_type in type_options else type_options + [current_type],
                index=(type_options if current_type in type_options else type_options + [current_type]).index(current_type),
                help="Types come from the Classrooms page.",
            )

            submitted = st.form_submit_button("Save Subject")

        if submitted:
            ok, msg = validate_id(subject_id, "Subject ID")
            if not ok:
                st.error(msg)
                st.stop()

            others = [s["name"] for s in subjects if s["subject_id"] != subject_id.strip()]
            ok, msg = validate_unique_name(name, "Subject Name", others)
            if not ok:
                st.error(msg)
                st.stop()

            ok, msg = validate_grades(grades)
            if not ok:
                st.error(msg)
                st.stop()

            ok, msg = validate_weekly_hours(hours, grades)
            if not ok:
                st.error(msg)
                st.stop()

            if requires_special and not classroom_type:
                st.error("Pick a classroom type for subjects that need a special classroom")
                st.stop()

            with db_session() as conn:
                crud.upsert_subject(
                    conn,
                    subject_id=subject_id.strip(),
                    name=name.strip(),
                    grades=[int(g) for g in grades],
                    weekly_hours={g: hours[g] for g in grades},
                    requires_special_classroom=bool(requires_special),
                    classroom_type=str(classroom_type),
                )
                st.session_state["subject_id"] = generate_subject_id(conn)
            st.success("Subject saved.")

    with tab_view:
        if not subjects:
            st.info("No subjects yet.")
            return

        st.dataframe(_subjects_table(subjects), use_container_width=True)

        st.divider()
        st.subheader("Order")
        ids = [s["subject_id"] for s in subjects]
        pick = st.selectbox("Subject to move", options=ids, key="subject_order_pick")
        c_up, c_down = st.columns(2)
        i = ids.index(pick)
        if c_up.button("Move up", disabled=i == 0):
            ids[i - 1], ids[i] = ids[i], ids[i - 1]
            with db_session() as conn:
                crud.reorder_subjects(conn, ids)
            st.rerun()
        if c_down.button("Move down", disabled=i == len(ids) - 1):
            ids[i + 1], ids[i] = ids[i], ids[i + 1]
            with db_session() as conn:
                crud.reorder_subjects(conn, ids)
            st.rerun()

        st.divider()
        st.subheader("Delete subject")
        sid = st.selectbox("Select Subject ID", options=ids)
        if st.button("Delete", type="primary"):
            with db_session() as conn:
                crud.delete_subject(conn, sid)
            st.success(f"Deleted {sid}")
            st.rerun()


if __name__ == "__main__":
    main()
