from __future__ import annotations

import io
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

import pandas as pd

from timetable.converter import iter_grid_slots, slot_class_ref, split_by_class, teacher_schedule, teachers_in_grid
from timetable.models import DAY_KEYS, DAY_LABELS, ClassRef, PeriodRow, Violation, name_of


def _safe_sheet_name(name: str) -> str:
    """Excel sheet names: max 31 chars, cannot contain: `: \\ / ? * [ ]`."""

    bad = [":", "\\", "/", "?", "*", "[", "]"]
    out = str(name or "Sheet")
    for b in bad:
        out = out.replace(b, "-")
    out = out.strip() or "Sheet"
    return out[:31]


def _cell_text(subject: str, teacher: str, classroom: str = "") -> str:
    text = f"{subject}\n{teacher}" if teacher else subject
    if classroom:
        text += f"\n@{classroom}"
    return text


def class_timetable_df(rows: Iterable[Any], *, include_classroom: bool = False) -> pd.DataFrame:
    """Spreadsheet-style class timetable: one row per period, one column per day."""

    out_rows: List[List[str]] = []
    for raw in rows or []:
        row = PeriodRow.from_value(raw)
        if row is None:
            continue
        line = [row.period]
        for d in DAY_KEYS:
            cell = row.get(d)
            if cell is None:
                line.append("")
            else:
                line.append(_cell_text(cell.subject, cell.teacher, cell.classroom if include_classroom else ""))
        out_rows.append(line)
    return pd.DataFrame(out_rows, columns=["PERIOD"] + [DAY_LABELS[d] for d in DAY_KEYS])


def teacher_timetable_df(schedule_rows: Sequence[Mapping[str, Any]]) -> pd.DataFrame:
    """Render :func:`timetable.converter.teacher_schedule` output as a table."""

    out_rows: List[List[str]] = []
    for r in schedule_rows or []:
        line = [str(r.get("period", ""))]
        for d in DAY_KEYS:
            lesson = r.get(d)
            if not lesson:
                line.append("")
                continue
            text = f"{lesson.get('grade')}-{lesson.get('class_number')} {lesson.get('subject', '')}"
            if lesson.get("double_booked"):
                text += " (!)"
            line.append(text)
        out_rows.append(line)
    return pd.DataFrame(out_rows, columns=["PERIOD"] + [DAY_LABELS[d] for d in DAY_KEYS])


def violations_df(violations: Iterable[Any]) -> pd.DataFrame:
    cols = ["class", "day", "period", "severity", "type", "message"]
    out_rows = []
    for v in violations or []:
        if isinstance(v, Mapping):
            v = Violation.from_dict(v)
        label = v.class_label or ", ".join(v.affected_classes)
        out_rows.append(
            {
                "class": label,
                "day": DAY_LABELS.get(v.day, v.day),
                "period": v.period,
                "severity": v.severity,
                "type": v.type,
                "message": v.message,
            }
        )
    return pd.DataFrame(out_rows, columns=cols)


def slots_df(grid: Any) -> pd.DataFrame:
    """Flat slot-level table of a school grid (one row per lesson)."""

    cols = ["class", "day", "period", "subject", "teacher", "classroom", "auto_filled"]
    out_rows = []
    for day_idx, period_idx, slot in iter_grid_slots(grid):
        ref = slot_class_ref(slot)
        out_rows.append(
            {
                "class": ref.label if ref else "",
                "day": DAY_KEYS[day_idx] if day_idx < len(DAY_KEYS) else f"day{day_idx}",
                "period": period_idx + 1,
                "subject": name_of(slot.get("subject")),
                "teacher": name_of(slot.get("teacher")),
                "classroom": name_of(slot.get("classroom")),
                "auto_filled": bool(slot.get("isAutoFilled", False)),
            }
        )
    df = pd.DataFrame(out_rows, columns=cols)
    if df.empty:
        return df
    return df.sort_values(["class", "day", "period"], key=lambda s: s.map(_sort_key)).reset_index(drop=True)


def _sort_key(value: Any) -> Any:
    if value in DAY_KEYS:
        return DAY_KEYS.index(value)
    return value


def timetable_workbook_bytes(
    *,
    grid: Any,
    class_refs: Optional[Sequence[ClassRef]] = None,
    max_periods: int = 6,
    violations: Iterable[Any] = (),
    statistics: Optional[Dict[str, Any]] = None,
) -> bytes:
    """Build a multi-sheet Excel workbook for a school timetable.

    Includes:
    - Summary (generation statistics)
    - One sheet per class
    - One sheet per teacher
    - Violations
    """

    # Pandas uses openpyxl to write .xlsx by default.
    out = io.BytesIO()
    by_class = split_by_class(grid, class_refs, max_periods=max_periods)

    with pd.ExcelWriter(out, engine="openpyxl") as writer:
        summary = pd.DataFrame(
            [[k, v] for k, v in (statistics or {}).items()],
            columns=["Field", "Value"],
        )
        summary.to_excel(writer, sheet_name="Summary", index=False)

        for label, rows in by_class.items():
            class_timetable_df(rows, include_classroom=True).to_excel(
                writer, sheet_name=_safe_sheet_name(f"Class {label}"), index=False
            )

        for name in teachers_in_grid(grid):
            teacher_timetable_df(teacher_schedule(grid, name, max_periods=max_periods)).to_excel(
                writer, sheet_name=_safe_sheet_name(f"T-{name}"), index=False
            )

        violations_df(violations).to_excel(writer, sheet_name="Violations", index=False)

    return out.getvalue()


@dataclass(frozen=True)
class ImageExportOptions:
    title: Optional[str] = None
    font_size: int = 10
    cell_height: float = 0.35
    cell_width: float = 1.2


def df_to_markdown(df: pd.DataFrame) -> str:
    """Convert DataFrame to a GitHub-flavored Markdown table."""

    # pandas to_markdown needs tabulate; keep a small renderer instead.
    cols = list(df.columns)
    rows = df.astype(str).values.tolist()

    def esc(s: str) -> str:
        return str(s).replace("\n", " ").replace("|", "\\|")

    header = "| " + " | ".join(esc(c) for c in cols) + " |"
    sep = "| " + " | ".join(["---"] * len(cols)) + " |"
    body = ["| " + " | ".join(esc(v) for v in r) + " |" for r in rows]
    return "\n".join([header, sep] + body) + "\n"


def df_to_png_bytes(df: pd.DataFrame, *, options: ImageExportOptions = ImageExportOptions()) -> bytes:
    """Render a DataFrame as a PNG image (bytes).

    Uses matplotlib's table artist.
    """

    import matplotlib

    matplotlib.use("Agg")
    import matplotlib.pyplot as plt

    nrows, ncols = df.shape

    fig_w = max(6.0, float(options.cell_width) * (ncols + 1))
    fig_h = max(2.0, float(options.cell_height) * 2.5 * (nrows + 2))

    fig, ax = plt.subplots(figsize=(fig_w, fig_h))
    ax.axis("off")

    if options.title:
        ax.set_title(options.title, fontsize=options.font_size + 2, pad=12)

    tbl = ax.table(
        cellText=df.values,
        colLabels=list(df.columns),
        cellLoc="center",
        loc="center",
    )

    tbl.auto_set_font_size(False)
    tbl.set_fontsize(options.font_size)
    # cells hold subject / teacher on separate lines
    tbl.scale(1.0, 2.6)

    # Light styling
    for (r, c), cell in tbl.get_celld().items():
        cell.set_linewidth(0.6)
        if r == 0:
            cell.set_facecolor("#f0f2f6")
            cell.set_text_props(weight="bold")

    buf = io.BytesIO()
    fig.tight_layout()
    fig.savefig(buf, format="png", dpi=200, bbox_inches="tight")
    plt.close(fig)
    return buf.getvalue()
