"""Grid conversion between stored timetable JSON and the per-class display matrix.

Stored timetables come in a few shapes (see `convert_to_display_format`); the
view/edit screens always work on a list of :class:`PeriodRow`.
"""

from __future__ import annotations

import copy
import json
import logging
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

from timetable.models import (
    DAY_KEYS,
    DEFAULT_MAX_PERIODS,
    LEGACY_DAY_NAMES,
    ClassRef,
    DisplayCell,
    PeriodRow,
    day_key,
    name_of,
    normalize_day,
)


logger = logging.getLogger(__name__)


# ----------------------------
# Helpers
# ----------------------------


def _norm(value: Any) -> str:
    text = str(value).strip()
    try:
        return str(int(text))
    except ValueError:
        return text


def slot_class_ref(slot: Mapping[str, Any]) -> Optional[ClassRef]:
    grade = slot.get("classGrade", slot.get("grade"))
    section = slot.get("classSection", slot.get("class_number", slot.get("classNumber")))
    if grade is None or section is None:
        return None
    try:
        return ClassRef(grade=int(grade), class_number=int(section))
    except (TypeError, ValueError):
        return None


def _matches_class(slot: Any, grade: int, class_number: int) -> bool:
    if not isinstance(slot, Mapping):
        return False
    g = slot.get("classGrade", slot.get("grade"))
    s = slot.get("classSection", slot.get("class_number", slot.get("classNumber")))
    if g is None or s is None:
        return False
    return _norm(g) == _norm(grade) and _norm(s) == _norm(class_number)


def _slot_to_cell(slot: Any) -> Optional[DisplayCell]:
    """A slot only becomes a cell when it names both a subject and a teacher."""

    if not isinstance(slot, Mapping):
        return None
    if not name_of(slot.get("subject")) or not name_of(slot.get("teacher")):
        return None
    return DisplayCell.from_value(slot)


def iter_grid_slots(grid: Any) -> Iterator[Tuple[int, int, Mapping[str, Any]]]:
    """Yield (day_idx, period_idx, slot) for every slot dict in a generated grid."""

    if not isinstance(grid, list):
        return
    for day_idx, day_data in enumerate(grid):
        if not isinstance(day_data, list):
            continue
        for period_idx, period_slots in enumerate(day_data):
            if isinstance(period_slots, Mapping):
                period_slots = [period_slots]
            if not isinstance(period_slots, list):
                continue
            for slot in period_slots:
                if isinstance(slot, Mapping):
                    yield day_idx, period_idx, slot


def _looks_like_display_rows(data: Sequence[Any]) -> bool:
    first = data[0]
    if isinstance(first, PeriodRow):
        return True
    if not isinstance(first, Mapping) or not first.get("period"):
        return False
    # flat slots carry their own day; display rows key cells by day instead
    return not any(isinstance(r, Mapping) and "day" in r for r in data)


def _looks_like_flat_slots(data: Sequence[Any]) -> bool:
    return any(isinstance(s, Mapping) and "day" in s and "period" in s for s in data)


def _looks_like_generated_grid(data: Sequence[Any]) -> bool:
    return all(d is None or isinstance(d, list) for d in data)


# ----------------------------
# Public API
# ----------------------------


def generate_empty_timetable(max_periods: int = DEFAULT_MAX_PERIODS) -> List[PeriodRow]:
    return [PeriodRow.empty(p) for p in range(1, int(max_periods) + 1)]


def convert_to_display_format(
    data: Any,
    grade: int,
    class_number: int,
    max_periods: int = DEFAULT_MAX_PERIODS,
) -> List[PeriodRow]:
    """Convert stored timetable data into display rows for one class.

    Accepted shapes:
    - display rows (list of dicts with `period`): parsed and returned as-is
    - generated grid ``[day][period][slot, ...]``: the slot matching the class is used
    - nested mapping ``grade -> class -> [slot, ...]`` (each slot carries day/period)
    - legacy mapping keyed by weekday name (``monday`` .. ``saturday``)

    Anything else (or empty input) yields ``[]``.
    """

    if data is None or data == "" or data == [] or data == {}:
        return []

    if isinstance(data, (str, bytes)):
        try:
            data = json.loads(data)
        except ValueError:
            logger.warning("Timetable data is not valid JSON; nothing to display")
            return []
        return convert_to_display_format(data, grade, class_number, max_periods)

    if isinstance(data, list):
        if _looks_like_generated_grid(data):
            return _from_generated_grid(data, grade, class_number, max_periods)
        if _looks_like_flat_slots(data):
            own = [
                s
                for s in data
                if isinstance(s, Mapping) and (slot_class_ref(s) is None or _matches_class(s, grade, class_number))
            ]
            return _from_flat_slots(own, max_periods)
        if _looks_like_display_rows(data):
            rows = [PeriodRow.from_value(r) for r in data]
            return [r for r in rows if r is not None]
        logger.warning("Unrecognised timetable list format (first element %r)", type(data[0]).__name__)
        return []

    if isinstance(data, Mapping):
        if any(name in data for name in LEGACY_DAY_NAMES):
            return _from_legacy_days(data, max_periods)
        by_class = _class_slots_from_nested(data, grade, class_number)
        if by_class is not None:
            return _from_flat_slots(by_class, max_periods)
        if "timetable" in data:
            return convert_to_display_format(data["timetable"], grade, class_number, max_periods)

    logger.warning("Unrecognised timetable data of type %s", type(data).__name__)
    return []


def _from_generated_grid(grid: List[Any], grade: int, class_number: int, max_periods: int) -> List[PeriodRow]:
    rows = generate_empty_timetable(max_periods)
    found = 0
    for day_idx, period_idx, slot in iter_grid_slots(grid):
        if day_idx >= len(DAY_KEYS) or period_idx >= max_periods:
            continue
        if not _matches_class(slot, grade, class_number):
            continue
        d = DAY_KEYS[day_idx]
        if rows[period_idx].get(d) is not None:
            # first matching slot wins
            continue
        cell = _slot_to_cell(slot)
        if cell is not None:
            rows[period_idx] = rows[period_idx].with_cell(d, cell)
            found += 1
    logger.debug("Converted generated grid for %s-%s: %d lessons", grade, class_number, found)
    return rows


def _class_slots_from_nested(data: Mapping[str, Any], grade: int, class_number: int) -> Optional[List[Any]]:
    by_grade = data.get(str(grade), data.get(grade))  # type: ignore[call-overload]
    if not isinstance(by_grade, Mapping):
        return None
    slots = by_grade.get(str(class_number), by_grade.get(class_number))  # type: ignore[call-overload]
    if not isinstance(slots, list):
        return None
    return slots


def _slot_position(slot: Mapping[str, Any]) -> Optional[Tuple[str, int]]:
    raw_day = slot.get("day")
    if isinstance(raw_day, int):
        d: Optional[str] = day_key(raw_day)
    else:
        d = normalize_day(raw_day)
    try:
        period = int(slot.get("period"))
    except (TypeError, ValueError):
        return None
    if d is None or d not in DAY_KEYS:
        return None
    return d, period


def _from_flat_slots(slots: List[Any], max_periods: int) -> List[PeriodRow]:
    rows = generate_empty_timetable(max_periods)
    for slot in slots:
        if not isinstance(slot, Mapping):
            continue
        pos = _slot_position(slot)
        if pos is None:
            continue
        d, period = pos
        if not 1 <= period <= max_periods:
            continue
        cell = _slot_to_cell(slot)
        if cell is not None and rows[period - 1].get(d) is None:
            rows[period - 1] = rows[period - 1].with_cell(d, cell)
    return rows


def _from_legacy_days(data: Mapping[str, Any], max_periods: int) -> List[PeriodRow]:
    rows = generate_empty_timetable(max_periods)
    for legacy_name, d in zip(LEGACY_DAY_NAMES, DAY_KEYS):
        day_data = data.get(legacy_name)
        if not isinstance(day_data, list):
            continue
        for period_idx, info in enumerate(day_data[:max_periods]):
            cell = _slot_to_cell(info)
            if cell is not None:
                rows[period_idx] = rows[period_idx].with_cell(d, cell)
    return rows


def display_rows_to_grid(
    rows: Sequence[PeriodRow],
    grade: Optional[int] = None,
    class_number: Optional[int] = None,
) -> List[List[List[Dict[str, Any]]]]:
    """Turn one class's display rows back into a ``[day][period][slot]`` grid."""

    grid: List[List[List[Dict[str, Any]]]] = [[[] for _ in rows] for _ in DAY_KEYS]
    for period_idx, row in enumerate(rows):
        for day_idx, d in enumerate(DAY_KEYS):
            cell = row.get(d)
            if cell is None:
                continue
            grid[day_idx][period_idx].append(_cell_to_slot(cell, d, row.period, grade, class_number))
    return grid


def _cell_to_slot(
    cell: DisplayCell,
    d: str,
    period: str,
    grade: Optional[int],
    class_number: Optional[int],
) -> Dict[str, Any]:
    slot: Dict[str, Any] = {
        "day": d,
        "period": int(period) if str(period).isdigit() else period,
        "subject": cell.subject,
        "teacher": cell.teacher,
        "classroom": cell.classroom,
        "isAutoFilled": cell.is_auto_filled,
    }
    if grade is not None and class_number is not None:
        slot["classGrade"] = int(grade)
        slot["classSection"] = str(class_number)
    return slot


def apply_display_rows(
    grid: Any,
    grade: int,
    class_number: int,
    rows: Sequence[PeriodRow],
) -> List[List[List[Dict[str, Any]]]]:
    """Write an edited class matrix back into a school grid (other classes untouched)."""

    periods = len(rows)
    if isinstance(grid, list):
        periods = max([periods] + [len(d) for d in grid if isinstance(d, list)])
    out: List[List[List[Dict[str, Any]]]] = [[[] for _ in range(periods)] for _ in DAY_KEYS]

    for day_idx, period_idx, slot in iter_grid_slots(grid):
        if day_idx >= len(DAY_KEYS) or _matches_class(slot, grade, class_number):
            continue
        out[day_idx][period_idx].append(copy.deepcopy(dict(slot)))

    for period_idx, row in enumerate(rows):
        for day_idx, d in enumerate(DAY_KEYS):
            cell = row.get(d)
            if cell is not None:
                out[day_idx][period_idx].append(_cell_to_slot(cell, d, row.period, grade, class_number))
    return out


def class_refs_in_grid(grid: Any) -> List[ClassRef]:
    refs = set()
    for _d, _p, slot in iter_grid_slots(grid):
        ref = slot_class_ref(slot)
        if ref is not None:
            refs.add(ref)
    return sorted(refs, key=lambda r: (r.grade, r.class_number))


def split_by_class(
    grid: Any,
    class_refs: Optional[Sequence[ClassRef]] = None,
    max_periods: int = DEFAULT_MAX_PERIODS,
) -> Dict[str, List[PeriodRow]]:
    """Display rows for every class in a school grid, keyed by class label."""

    refs = list(class_refs) if class_refs is not None else class_refs_in_grid(grid)
    return {
        ref.label: _from_generated_grid(grid if isinstance(grid, list) else [], ref.grade, ref.class_number, max_periods)
        for ref in refs
    }


def teacher_schedule(grid: Any, teacher_name: str, max_periods: int = DEFAULT_MAX_PERIODS) -> List[Dict[str, Any]]:
    """A teacher's week across every class.

    Each row is ``{"period": "1", "mon": {...} | None, ...}`` where a lesson is
    ``{"grade", "class_number", "subject", "classroom", "double_booked"}``.
    """

    rows: List[Dict[str, Any]] = [
        {"period": str(p), **{d: None for d in DAY_KEYS}} for p in range(1, int(max_periods) + 1)
    ]
    for day_idx, period_idx, slot in iter_grid_slots(grid):
        if day_idx >= len(DAY_KEYS) or period_idx >= max_periods:
            continue
        if name_of(slot.get("teacher")) != teacher_name or not name_of(slot.get("subject")):
            continue
        d = DAY_KEYS[day_idx]
        existing = rows[period_idx][d]
        if existing is not None:
            existing["double_booked"] = True
            continue
        ref = slot_class_ref(slot)
        rows[period_idx][d] = {
            "grade": ref.grade if ref else None,
            "class_number": ref.class_number if ref else None,
            "subject": name_of(slot.get("subject")),
            "classroom": name_of(slot.get("classroom")),
            "double_booked": False,
        }
    return rows


def teachers_in_grid(grid: Any) -> List[str]:
    return sorted({name_of(s.get("teacher")) for _d, _p, s in iter_grid_slots(grid) if name_of(s.get("teacher"))})
