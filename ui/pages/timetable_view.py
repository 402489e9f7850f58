"""Timetable View page.

Saved timetables can be listed, inspected per class (with violations
highlighted), edited cell by cell and viewed per teacher.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import pandas as pd
import streamlit as st

# Ensure project root is on PYTHONPATH when Streamlit runs pages
ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from timetable.converter import apply_display_rows, display_rows_to_grid, split_by_class, teacher_schedule, teachers_in_grid
from timetable.models import DAY_KEYS, DAY_LABELS, ClassRef, DisplayCell, PeriodRow
from timetable.validator import (
    add_violation_info,
    calculate_compliance_rate,
    fill_empty_slots,
    move_slot,
    teacher_busy_map,
    validate_timetable_constraints_enhanced,
)
from ui.database.db import db_session
from ui.database import crud
from utils.timetable_export import (
    ImageExportOptions,
    class_timetable_df,
    df_to_markdown,
    df_to_png_bytes,
    slots_df,
    teacher_timetable_df,
    violations_df,
)


_SEVERITY_COLORS = {
    "high": "background-color: #fde2e1",
    "medium": "background-color: #fff4ce",
    "low": "background-color: #e8f1fd",
}
_EMPTY = "(empty)"


def _cell_label(cell: Optional[DisplayCell]) -> str:
    if cell is None:
        return ""
    text = f"{cell.subject} / {cell.teacher}"
    if cell.is_auto_filled:
        text += " *"
    return text


def _as_df_table(rows: List[PeriodRow]) -> pd.DataFrame:
    """Render a class matrix as a DataFrame (periods x days)."""

    out_rows = []
    for row in rows:
        out_rows.append([row.period] + [_cell_label(row.get(d)) for d in DAY_KEYS])
    return pd.DataFrame(out_rows, columns=["Period"] + [DAY_LABELS[d] for d in DAY_KEYS])


def _severity_frame(rows: List[PeriodRow]) -> pd.DataFrame:
    """Same shape as :func:`_as_df_table`; each cell holds its worst severity or ""."""

    out_rows = []
    for row in rows:
        line = [""]
        for d in DAY_KEYS:
            cell = row.get(d)
            if cell is not None and cell.has_violation:
                line.append(cell.violation_severity or "")
            else:
                line.append("")
        out_rows.append(line)
    return pd.DataFrame(out_rows, columns=["Period"] + [DAY_LABELS[d] for d in DAY_KEYS])


def _style_cell(severity: str) -> str:
    return _SEVERITY_COLORS.get(severity, "")


def _styled_table(rows: List[PeriodRow]):
    df = _as_df_table(rows)
    css = _severity_frame(rows).map(_style_cell)
    return df.style.apply(lambda _: css, axis=None)


def _class_options(settings, grid: Any) -> List[str]:
    labels = [r.label for r in settings.class_refs()]
    return labels or sorted(split_by_class(grid).keys())


def _edit_key(timetable_id: str, label: str) -> str:
    return f"tt_edit::{timetable_id}::{label}"


def _render_downloads(df: pd.DataFrame, *, title: str, stem: str) -> None:
    c1, c2 = st.columns(2)
    c1.download_button(
        "Download Markdown table",
        data=df_to_markdown(df).encode("utf-8"),
        file_name=f"{stem}.md",
        mime="text/markdown",
    )
    c2.download_button(
        "Download timetable image (PNG)",
        data=df_to_png_bytes(df, options=ImageExportOptions(title=title)),
        file_name=f"{stem}.png",
        mime="image/png",
    )


def _list_view() -> Optional[str]:
    with db_session() as conn:
        saved = crud.list_timetables(conn)

    if not saved:
        st.info("No timetables yet. Generate one on the Generate Timetable page.")
        return None

    st.dataframe(pd.DataFrame(saved), use_container_width=True)

    labels = [
        f"{'* ' if s['is_active'] else ''}{s['created_at']} - {s['name']} ({s['timetable_id']})" for s in saved
    ]
    lookup = {labels[i]: saved[i]["timetable_id"] for i in range(len(labels))}
    active_idx = next((i for i, s in enumerate(saved) if s["is_active"]), 0)
    sel = st.selectbox("Timetable", options=labels, index=active_idx)
    timetable_id = lookup[sel]

    c1, c2, c3 = st.columns([1, 2, 1])
    if c1.button("Set active"):
        with db_session() as conn:
            crud.set_active_timetable(conn, timetable_id)
        st.rerun()
    new_name = c2.text_input("Rename", value="", placeholder="New name")
    if c2.button("Rename") and new_name.strip():
        with db_session() as conn:
            crud.update_timetable(conn, timetable_id, name=new_name.strip())
        st.rerun()
    if c3.button("Delete", type="primary"):
        with db_session() as conn:
            crud.delete_timetable(conn, timetable_id)
        st.success(f"Deleted {timetable_id}")
        st.rerun()

    return timetable_id


def _class_compliance_rate(rows: List[PeriodRow], teachers, subjects, settings) -> float:
    """Rate of one class matrix, scored on its own (no class refs in the grid)."""

    return calculate_compliance_rate(display_rows_to_grid(rows), teachers, subjects, settings).overall_rate


def _detail_view(record: Dict[str, Any], settings, teachers, subjects) -> None:
    grid = record["timetable"]
    compliance = calculate_compliance_rate(grid, teachers, subjects, settings)

    label = st.selectbox("Class", options=_class_options(settings, grid), key="detail_class")
    ref = ClassRef.parse(label)
    rows = split_by_class(grid, [ref], max_periods=settings.max_periods)[label]

    m1, m2, m3, m4 = st.columns(4)
    m1.metric(f"Class {label} compliance", f"{_class_compliance_rate(rows, teachers, subjects, settings):.2f}%")
    m2.metric("School compliance rate", f"{compliance.overall_rate:.2f}%")
    m3.metric("Violations", len(compliance.violations))
    m4.metric("Assignment rate", f"{float(record.get('assignment_rate') or 0.0):.2f}%")

    rows = add_violation_info(rows, compliance.violations, class_label=label)

    st.dataframe(_styled_table(rows), use_container_width=True)
    st.caption("* auto-filled. Colors: red = high, yellow = medium, blue = low severity.")

    class_violations = [v for v in compliance.violations if v.class_label == label]
    if class_violations:
        st.dataframe(violations_df(class_violations), use_container_width=True)

    _render_downloads(class_timetable_df(rows), title=f"Class {label}", stem=f"timetable_class_{label}")
    st.download_button(
        "Download all slots (CSV)",
        data=slots_df(grid).to_csv(index=False).encode("utf-8"),
        file_name=f"timetable_{record['timetable_id']}_slots.csv",
        mime="text/csv",
    )


def _edit_view(record: Dict[str, Any], settings, teachers, subjects) -> None:
    grid = record["timetable"]
    timetable_id = record["timetable_id"]
    label = st.selectbox("Class", options=_class_options(settings, grid), key="edit_class")
    ref = ClassRef.parse(label)

    all_rows = split_by_class(grid, settings.class_refs(), max_periods=settings.max_periods)
    key = _edit_key(timetable_id, label)
    if key not in st.session_state:
        st.session_state[key] = all_rows.get(label) or split_by_class(grid, [ref], max_periods=settings.max_periods)[label]
    rows: List[PeriodRow] = st.session_state[key]
    others = {k: v for k, v in all_rows.items() if k != label}

    result = validate_timetable_constraints_enhanced(
        rows,
        teachers,
        subjects,
        grade=ref.grade,
        class_number=ref.class_number,
        all_class_rows=others,
        settings=settings,
    )
    annotated = add_violation_info(rows, result.conflicts, class_label=label)
    st.dataframe(_styled_table(annotated), use_container_width=True)
    if result.is_valid:
        st.success("No blocking problems in this class.")
    else:
        st.error("This class has high/medium severity problems.")
    if result.conflicts:
        st.dataframe(violations_df(result.conflicts), use_container_width=True)

    periods = [r.period for r in rows]

    st.subheader("Move lesson")
    c1, c2, c3, c4 = st.columns(4)
    from_day = c1.selectbox("From day", options=list(DAY_KEYS), format_func=DAY_LABELS.get, key="mv_from_day")
    from_period = c2.selectbox("From period", options=periods, key="mv_from_period")
    to_day = c3.selectbox("To day", options=list(DAY_KEYS), format_func=DAY_LABELS.get, key="mv_to_day")
    to_period = c4.selectbox("To period", options=periods, key="mv_to_period")
    if st.button("Move"):
        st.session_state[key] = move_slot(rows, from_period, from_day, to_period, to_day)
        st.rerun()

    st.subheader("Edit cell")
    offered = [s.name for s in subjects if s.offered_to(ref.grade)]
    c5, c6, c7, c8 = st.columns(4)
    day = c5.selectbox("Day", options=list(DAY_KEYS), format_func=DAY_LABELS.get, key="ed_day")
    period = c6.selectbox("Period", options=periods, key="ed_period")
    subject = c7.selectbox("Subject", options=[_EMPTY] + offered, key="ed_subject")
    qualified = [t.name for t in teachers if t.teaches(subject) and t.teaches_grade(ref.grade)]
    teacher = c8.selectbox("Teacher", options=qualified or [t.name for t in teachers], key="ed_teacher")
    if st.button("Apply"):
        idx = periods.index(period)
        cell = None if subject == _EMPTY else DisplayCell(subject=subject, teacher=teacher)
        new_rows = list(rows)
        new_rows[idx] = rows[idx].with_cell(day, cell)
        st.session_state[key] = new_rows
        st.rerun()

    st.subheader("Actions")
    a1, a2, a3 = st.columns(3)
    if a1.button("Auto-fill empty cells"):
        st.session_state[key] = fill_empty_slots(
            rows,
            teachers,
            subjects,
            grade=ref.grade,
            settings=settings,
            busy=teacher_busy_map(all_rows, exclude=label),
        )
        st.rerun()
    if a2.button("Save changes", type="primary"):
        new_grid = apply_display_rows(grid, ref.grade, ref.class_number, rows)
        compliance = calculate_compliance_rate(new_grid, teachers, subjects, settings)
        with db_session() as conn:
            crud.update_timetable(
                conn,
                timetable_id,
                timetable=new_grid,
                statistics={**(record.get("statistics") or {}), "complianceRate": compliance.overall_rate},
            )
        del st.session_state[key]
        st.success("Saved.")
        st.rerun()
    if a3.button("Discard changes"):
        del st.session_state[key]
        st.rerun()


def _teacher_view(record: Dict[str, Any], settings) -> None:
    grid = record["timetable"]
    names = teachers_in_grid(grid)
    if not names:
        st.info("No teacher has lessons in this timetable.")
        return
    name = st.selectbox("Teacher", options=names)
    schedule = teacher_schedule(grid, name, max_periods=settings.max_periods)
    df = teacher_timetable_df(schedule)
    st.dataframe(df, use_container_width=True)

    load = sum(1 for r in schedule for d in DAY_KEYS if r.get(d))
    st.caption(f"{load} lessons per week. (!) marks a double booking.")
    _render_downloads(df, title=f"{name} Timetable", stem=f"timetable_teacher_{name}")


def main() -> None:
    st.title("Timetable View")

    st.subheader("Saved timetables")
    timetable_id = _list_view()
    if not timetable_id:
        return

    with db_session() as conn:
        record = crud.get_timetable(conn, timetable_id)
        settings = crud.load_school_settings(conn)
        teachers = crud.load_teachers(conn)
        subjects = crud.load_subjects(conn)

    if record is None:
        st.error(f"Timetable {timetable_id} not found")
        return

    st.divider()
    mode = st.radio("View", options=["Detail", "Edit", "By Teacher"], horizontal=True)
    if mode == "Detail":
        _detail_view(record, settings, teachers, subjects)
    elif mode == "Edit":
        _edit_view(record, settings, teachers, subjects)
    else:
        _teacher_view(record, settings)


if __name__ == "__main__":
    main()
