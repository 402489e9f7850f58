"""Timetable generation page.

Builds a whole-school timetable from the registered master data with the
annealing search, then stores it so the View page can inspect and edit it.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Dict

import pandas as pd
import streamlit as st

# Ensure project root is on PYTHONPATH when Streamlit runs pages
ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from config import get_app_config
from optimizer.annealing import AnnealConfig
from timetable.converter import split_by_class
from timetable.generator import GenerationProblem, GenerationSettings, build_problem, solve_school_timetable
from timetable.validator import calculate_compliance_rate
from ui.database.db import db_session
from ui.database import crud
from ui.utils.schedule_cache import compute_generation_input_hash
from utils.timetable_export import class_timetable_df, timetable_workbook_bytes, violations_df


def _build_problem_from_db() -> GenerationProblem:
    with db_session() as conn:
        settings = crud.load_school_settings(conn)
        teachers = crud.load_teachers(conn)
        subjects = crud.load_subjects(conn)
        classrooms = crud.load_classrooms(conn)
    return build_problem(settings, teachers, subjects, classrooms)


def _statistics_rows(statistics: Dict[str, Any]) -> pd.DataFrame:
    labels = {
        "totalSlots": "Lessons",
        "assignedSlots": "Placed",
        "unassignedSlots": "Unplaced",
        "constraintViolations": "Soft violations",
        "assignmentRate": "Assignment rate (%)",
        "qualityScore": "Quality score",
        "generationTime": "Generation time",
        "method": "Method",
    }
    return pd.DataFrame(
        [{"Field": labels.get(k, k), "Value": str(v)} for k, v in (statistics or {}).items()]
    )


def main() -> None:
    st.title("Generate Timetable")
    st.caption("Place every weekly lesson for every class, then review it on the Timetable View page.")

    if "generate_last_result" not in st.session_state:
        st.session_state["generate_last_result"] = None

    config = get_app_config()

    with db_session() as conn:
        teachers = crud.list_teachers(conn)
        subjects = crud.list_subjects(conn)
        conditions = crud.get_conditions(conn)

    if not teachers:
        st.warning("Add at least one Teacher first (Teachers page).")
        return
    if not subjects:
        st.warning("Add at least one Subject first (Subjects page).")
        return

    if conditions:
        with st.expander("Conditions"):
            st.text(conditions)

    st.subheader("Preferences")
    c1, c2 = st.columns(2)
    st.session_state.setdefault("gen_w_preferred", 2.0)
    st.session_state.setdefault("gen_w_spread", 1.0)
    w_preferred = c1.slider(
        "Avoid 'preferred' teacher restrictions",
        0.0,
        10.0,
        float(st.session_state["gen_w_preferred"]),
        0.5,
        key="gen_w_preferred",
    )
    w_spread = c2.slider(
        "Spread a subject across days",
        0.0,
        10.0,
        float(st.session_state["gen_w_spread"]),
        0.5,
        key="gen_w_spread",
    )

    st.subheader("Optimizer")
    st.session_state.setdefault("gen_steps", int(config["default_anneal_steps"]))
    st.session_state.setdefault("gen_reheats", 1)
    st.session_state.setdefault("gen_seed", int(config["default_seed"]))
    c5, c6, c7 = st.columns(3)
    steps = c5.number_input(
        "Annealing steps",
        min_value=1_000,
        max_value=300_000,
        value=int(st.session_state["gen_steps"]),
        step=1_000,
        key="gen_steps",
    )
    reheats = c6.number_input(
        "Reheats",
        min_value=0,
        max_value=10,
        value=int(st.session_state["gen_reheats"]),
        key="gen_reheats",
    )
    seed = c7.number_input(
        "Random seed",
        min_value=0,
        max_value=10_000,
        value=int(st.session_state["gen_seed"]),
        key="gen_seed",
    )

    use_cache = st.checkbox(
        "Reuse cached timetable when inputs unchanged",
        value=True,
        help="If data + parameters are identical, reuses the latest saved timetable instead of re-optimizing.",
    )
    name = st.text_input("Timetable name", value="")

    run = st.button("Generate Timetable", type="primary")

    if run:
        problem = _build_problem_from_db()
        run_settings_dict = {
            "w_preferred": float(w_preferred),
            "w_spread": float(w_spread),
            "anneal_steps": int(steps),
            "anneal_reheats": int(reheats),
            "anneal_seed": int(seed),
        }
        input_hash = compute_generation_input_hash(
            settings=problem.settings,
            teachers=problem.teachers.values(),
            subjects=problem.subjects.values(),
            classrooms=problem.classrooms,
            run_settings=run_settings_dict,
        )

        result = None
        if use_cache:
            with db_session() as conn:
                cached_id = crud.find_latest_timetable_id_by_hash(conn, input_hash)
                cached = crud.get_timetable(conn, cached_id) if cached_id else None
            if cached:
                result = {
                    "timetable_id": cached["timetable_id"],
                    "grid": cached["timetable"],
                    "statistics": cached["statistics"],
                    "cached": True,
                }
                st.info(f"Reused cached timetable: {cached['timetable_id']}")

        if result is None:
            try:
                with st.spinner("Optimizing timetable..."):
                    generated = solve_school_timetable(
                        problem,
                        settings=GenerationSettings(
                            prefer_avoid_preferred_restrictions=float(w_preferred),
                            prefer_spread_subject_across_days=float(w_spread),
                        ),
                        anneal_config=AnnealConfig(steps=int(steps), reheats=int(reheats), seed=int(seed)),
                    )
            except ValueError as e:
                st.error(str(e))
                return

            stats = generated.statistics
            auto_name = name.strip() or f"Timetable ({stats['assignedSlots']}/{stats['totalSlots']} lessons)"
            with db_session() as conn:
                timetable_id = crud.create_timetable(
                    conn,
                    name=auto_name,
                    timetable=generated.grid,
                    statistics=stats,
                    settings=run_settings_dict,
                    assignment_rate=float(stats["assignmentRate"]),
                    input_hash=input_hash,
                    is_active=True,
                )
            st.success(f"Saved timetable: {timetable_id}")
            result = {
                "timetable_id": timetable_id,
                "grid": generated.grid,
                "statistics": stats,
                "unassigned": generated.unassigned,
                "cached": False,
            }

        st.session_state["generate_last_result"] = result

    last = st.session_state.get("generate_last_result")
    if not last:
        return

    with db_session() as conn:
        settings = crud.load_school_settings(conn)
        teacher_objs = crud.load_teachers(conn)
        subject_objs = crud.load_subjects(conn)

    stats = last.get("statistics") or {}
    compliance = calculate_compliance_rate(last["grid"], teacher_objs, subject_objs, settings)

    st.subheader("Result")
    m1, m2, m3, m4 = st.columns(4)
    m1.metric("Assignment rate", f"{float(stats.get('assignmentRate', 0.0)):.2f}%")
    m2.metric("School compliance rate", f"{compliance.overall_rate:.2f}%")
    m3.metric("Quality score", f"{float(stats.get('qualityScore', 0.0)):.2f}")
    m4.metric("Unplaced lessons", int(stats.get("unassignedSlots", 0)))

    with st.expander("Statistics"):
        st.dataframe(_statistics_rows(stats), use_container_width=True)

    if last.get("unassigned"):
        with st.expander(f"Unplaced lessons ({len(last['unassigned'])})"):
            st.dataframe(pd.DataFrame(last["unassigned"]), use_container_width=True)

    if compliance.violations:
        with st.expander(f"Violations ({len(compliance.violations)})"):
            st.dataframe(violations_df(compliance.violations), use_container_width=True)

    st.subheader("Preview")
    by_class = split_by_class(last["grid"], settings.class_refs(), max_periods=settings.max_periods)
    if by_class:
        label = st.selectbox("Class", options=list(by_class.keys()))
        st.dataframe(class_timetable_df(by_class[label]), use_container_width=True)

    st.download_button(
        "Download timetable workbook (.xlsx)",
        data=timetable_workbook_bytes(
            grid=last["grid"],
            class_refs=settings.class_refs(),
            max_periods=settings.max_periods,
            violations=compliance.violations,
            statistics=stats,
        ),
        file_name=f"timetable_{last['timetable_id']}.xlsx",
        mime="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    )


if __name__ == "__main__":
    main()
