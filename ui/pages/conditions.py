"""Conditions page: free-text scheduling notes kept alongside the data."""

from __future__ import annotations

import sys
from pathlib import Path

import streamlit as st

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from ui.database.db import db_session
from ui.database import crud


def main() -> None:
    st.title("Conditions")
    st.caption("Notes for whoever builds or reviews the timetable (e.g. 'PE not in period 1').")

    with db_session() as conn:
        current = crud.get_conditions(conn)

    with st.form("conditions_form"):
        text = st.text_area("Conditions", value=current, height=240)
        submitted = st.form_submit_button("Save Conditions")

    if submitted:
        with db_session() as conn:
            crud.update_conditions(conn, text.strip())
        st.success("Conditions saved.")


if __name__ == "__main__":
    main()
