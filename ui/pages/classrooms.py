"""Classroom Management page (CRUD).

Special classrooms (science lab, music room, ...) are matched to subjects by
classroom type; ordinary lessons use the class's homeroom.
"""

from __future__ import annotations

import sys
from pathlib import Path

import pandas as pd
import streamlit as st

# Ensure project root is on PYTHONPATH when Streamlit runs pages
ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from ui.database.db import db_session
from ui.database import crud
from ui.utils.id_generator import generate_classroom_id
from ui.utils.validators import require_non_empty, validate_id, validate_positive_int, validate_unique_name


ROOM_TYPES = ["普通教室", "理科室", "音楽室", "美術室", "技術室", "家庭科室", "体育館", "コンピュータ室"]


def main() -> None:
    st.title("Classroom Management")

    with db_session() as conn:
        classrooms = crud.list_classrooms(conn)

    tab_add, tab_view = st.tabs(["Add / Update", "View / Delete"])

    with tab_add:
        st.subheader("Edit existing")
        options = ["(New classroom)"] + [c["classroom_id"] for c in classrooms]
        edit_id = st.selectbox("Select Classroom ID", options=options)

        initial = None
        if edit_id != "(New classroom)":
            initial = next((c for c in classrooms if c.get("classroom_id") == edit_id), None)

        st.divider()
        if "classroom_id" not in st.session_state:
            with db_session() as conn:
                st.session_state["classroom_id"] = generate_classroom_id(conn)

        type_options = list(ROOM_TYPES)
        current_type = str(initial.get("classroom_type")) if initial else ROOM_TYPES[0]
        if current_type not in type_options:
            type_options.append(current_type)

        with st.form("classroom_form"):
            c1, c2 = st.columns([1, 2])
            classroom_id = c1.text_input(
                "Classroom ID",
                value=(initial.get("classroom_id") if initial else st.session_state.get("classroom_id", "")),
                disabled=bool(initial),
                help="Classroom ID can't be changed for an existing record (delete + re-add if needed).",
            )
            name = c2.text_input("Name", value=str(initial.get("name", "")) if initial else "", placeholder="e.g., 第1理科室")

            c3, c4, c5 = st.columns(3)
            classroom_type = c3.selectbox("Type", options=type_options, index=type_options.index(current_type))
            capacity = c4.number_input(
                "Capacity",
                min_value=1,
                max_value=500,
                value=int((initial.get("capacity", 35) if initial else 35)),
            )
            count = c5.number_input(
                "Count",
                min_value=1,
                max_value=20,
                value=int((initial.get("count", 1) if initial else 1)),
                help="How many identical rooms of this kind exist.",
            )

            submitted = st.form_submit_button("Save Classroom")

        if submitted:
            ok, msg = validate_id(classroom_id, "Classroom ID")
            if not ok:
                st.error(msg)
                st.stop()
            others = [c["name"] for c in classrooms if c["classroom_id"] != classroom_id.strip()]
            ok, msg = validate_unique_name(name, "Name", others)
            if not ok:
                st.error(msg)
                st.stop()
            ok, msg = require_non_empty(classroom_type, "Type")
            if not ok:
                st.error(msg)
                st.stop()
            ok, msg = validate_positive_int(int(capacity), "Capacity", 1, 500)
            if not ok:
                st.error(msg)
                st.stop()

            with db_session() as conn:
                crud.upsert_classroom(
                    conn,
                    classroom_id=classroom_id.strip(),
                    name=name.strip(),
                    classroom_type=classroom_type,
                    capacity=int(capacity),
                    count=int(count),
                )
                st.session_state["classroom_id"] = generate_classroom_id(conn)

            st.success("Classroom saved.")

    with tab_view:
        if not classrooms:
            st.info("No classrooms yet.")
            return

        df = pd.DataFrame(classrooms).drop(columns=["created_at", "updated_at"], errors="ignore")
        st.dataframe(df, use_container_width=True)

        st.divider()
        st.subheader("Order")
        ids = [c["classroom_id"] for c in classrooms]
        pick = st.selectbox("Classroom to move", options=ids, key="classroom_order_pick")
        c_up, c_down = st.columns(2)
        i = ids.index(pick)
        if c_up.button("Move up", disabled=i == 0):
            ids[i - 1], ids[i] = ids[i], ids[i - 1]
            with db_session() as conn:
                crud.reorder_classrooms(conn, ids)
            st.rerun()
        if c_down.button("Move down", disabled=i == len(ids) - 1):
            ids[i + 1], ids[i] = ids[i], ids[i + 1]
            with db_session() as conn:
                crud.reorder_classrooms(conn, ids)
            st.rerun()

        st.divider()
        st.subheader("Delete classroom")
        cid = st.selectbox("Select Classroom ID", options=ids)
        if st.button("Delete", type="primary"):
            with db_session() as conn:
                crud.delete_classroom(conn, cid)
            st.success(f"Deleted {cid}")
            st.rerun()


if __name__ == "__main__":
    main()
