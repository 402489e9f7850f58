"""Main Streamlit app entrypoint.

Run:
    streamlit run ui/app.py

"""

from __future__ import annotations

import sys
from pathlib import Path

import streamlit as st
from dotenv import load_dotenv

# Ensure project root is on PYTHONPATH when Streamlit runs this file
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

load_dotenv()

from config import configure_logging
from ui.database.db import db_session


configure_logging()

st.set_page_config(
    page_title="School Timetable Manager",
    page_icon="🗓️",
    layout="wide",
)


def _inject_css() -> None:
    st.markdown(
        """
        <style>
        .block-container { padding-top: 1.2rem; }
        div[data-testid="stMetric"] { background: #0b1220; border: 1px solid rgba(255,255,255,0.08); padding: 12px; border-radius: 12px; }
        </style>
        """,
        unsafe_allow_html=True,
    )


def main() -> None:
    _inject_css()

    st.sidebar.title("Timetable")
    st.sidebar.caption("Weekly school timetable management")

    st.title("Dashboard")
    st.write(
        "Use the sidebar pages to manage school settings, teachers, subjects and classrooms, "
        "then generate a timetable and review or edit it on the Timetable View page."
    )

    with db_session() as conn:
        from ui.database import crud

        settings = crud.load_school_settings(conn)
        teachers = crud.list_teachers(conn)
        subjects = crud.list_subjects(conn)
        classrooms = crud.list_classrooms(conn)
        active = crud.get_active_timetable(conn)

    c1, c2, c3, c4 = st.columns(4)
    c1.metric("Classes", len(settings.class_refs()))
    c2.metric("Teachers", len(teachers))
    c3.metric("Subjects", len(subjects))
    c4.metric("Classrooms", len(classrooms))

    st.divider()
    if active:
        st.subheader("Active timetable")
        st.write(f"{active['name']} ({active['timetable_id']}), assignment rate {float(active['assignment_rate']):.2f}%")
    else:
        st.subheader("What's next")
        st.info(
            "Check School Settings first (classes per grade, periods), then add Subjects and Teachers, "
            "then Classrooms for subjects that need a special room."
        )


if __name__ == "__main__":
    main()
