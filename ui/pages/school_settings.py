"""School Settings page (classes per grade, periods per day)."""

from __future__ import annotations

import sys
from pathlib import Path

import streamlit as st

# Ensure project root is on PYTHONPATH when Streamlit runs pages
ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from timetable.models import SchoolSettings
from ui.database.db import db_session
from ui.database import crud
from ui.utils.validators import validate_positive_int


def main() -> None:
    st.title("School Settings")

    with db_session() as conn:
        s = crud.load_school_settings(conn)

    with st.form("school_settings_form"):
        st.caption("Classes per grade")
        c1, c2, c3 = st.columns(3)
        g1 = c1.number_input("Grade 1 classes", min_value=1, max_value=20, value=int(s.grade1_classes))
        g2 = c2.number_input("Grade 2 classes", min_value=1, max_value=20, value=int(s.grade2_classes))
        g3 = c3.number_input("Grade 3 classes", min_value=1, max_value=20, value=int(s.grade3_classes))

        st.caption("Periods")
        c4, c5 = st.columns(2)
        daily = c4.number_input("Periods per weekday (Mon-Fri)", min_value=1, max_value=10, value=int(s.daily_periods))
        saturday = c5.number_input(
            "Saturday periods",
            min_value=0,
            max_value=8,
            value=int(s.saturday_periods),
            help="0 means no Saturday lessons.",
        )

        submitted = st.form_submit_button("Save Settings")

    preview = SchoolSettings(
        grade1_classes=int(g1),
        grade2_classes=int(g2),
        grade3_classes=int(g3),
        daily_periods=int(daily),
        saturday_periods=int(saturday),
    )
    st.info(
        f"{len(preview.class_refs())} classes, {len(preview.teaching_slots())} teaching periods per class per week."
    )

    if not submitted:
        return

    for value, field, lo in [(g1, "Grade 1 classes", 1), (g2, "Grade 2 classes", 1), (g3, "Grade 3 classes", 1), (daily, "Periods per weekday", 1)]:
        ok, msg = validate_positive_int(int(value), field, lo, 20)
        if not ok:
            st.error(msg)
            return

    ok, msg = validate_positive_int(int(saturday), "Saturday periods", 0, 8)
    if not ok:
        st.error(msg)
        return

    with db_session() as conn:
        crud.update_school_settings(
            conn,
            grade1_classes=int(g1),
            grade2_classes=int(g2),
            grade3_classes=int(g3),
            daily_periods=int(daily),
            saturday_periods=int(saturday),
        )

    st.success("Settings saved.")


if __name__ == "__main__":
    main()
