"""Timetable compliance and conflict checks.

Two families of checks live here:

- grid checks (`calculate_compliance_rate`) scan a ``[day][period][slot]`` grid,
  either one class or the whole school, and produce a compliance percentage
  plus a flat violation list;
- display-row checks (`validate_*`, `fill_empty_slots`, `move_slot`) work on the
  per-class matrix used by the edit screen.

Checks never raise on malformed input; they log and return an empty result.
Rows are never mutated; every operation returns new rows.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import replace
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from timetable.converter import slot_class_ref
from timetable.models import (
    DAY_KEYS,
    DAY_LABELS,
    RESTRICTION_PREFERRED,
    RESTRICTION_REQUIRED,
    SEVERITY_RANK,
    ComplianceResult,
    ConstraintResult,
    DisplayCell,
    PeriodRow,
    SchoolSettings,
    Subject,
    Teacher,
    Violation,
    day_key,
    name_of,
)


logger = logging.getLogger(__name__)

BusyMap = Dict[Tuple[str, str], Set[str]]

_ANONYMOUS_CLASS = "_"


def round_half_up(value: float, places: int = 2) -> float:
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def _where(day: str, period: str) -> str:
    return f"{DAY_LABELS.get(day, day)} period {period}"


def _as_rows(rows: Iterable[Any]) -> List[PeriodRow]:
    out: List[PeriodRow] = []
    for r in rows or []:
        row = PeriodRow.from_value(r)
        if row is not None:
            out.append(row)
    return out


def _period_number(row: PeriodRow) -> Optional[int]:
    try:
        return int(row.period)
    except (TypeError, ValueError):
        return None


# ----------------------------
# Grid compliance
# ----------------------------


def calculate_compliance_rate(
    timetable_data: Any,
    teachers: Sequence[Teacher],
    subjects: Sequence[Subject],
    settings: Optional[SchoolSettings] = None,
) -> ComplianceResult:
    """Score a generated grid.

    A class slot is compliant when it holds a lesson that raised no teacher
    conflict or qualification mismatch. The rate is compliant slots over the
    school's teaching slots times the number of classes, rounded half-up to
    two decimals.

    When slots name their class and `settings` is given, every configured
    class is scored, so a class with no lessons counts as empty. A grid whose
    slots carry no class is scored as a single class.
    """

    if not isinstance(timetable_data, list):
        logger.warning("Compliance check skipped: expected a day/period grid, got %s", type(timetable_data).__name__)
        return ComplianceResult(overall_rate=0.0, violations=[])

    school_classes = [r.label for r in settings.class_refs()] if settings is not None else []
    settings = settings or SchoolSettings()
    teacher_by_name = {t.name: t for t in teachers}

    violations: List[Violation] = []
    labels: Set[str] = set()
    # (day, period) -> class label -> had a clean lesson
    cell_state: Dict[Tuple[str, int], Dict[str, bool]] = defaultdict(dict)

    for day_idx, day_data in enumerate(timetable_data):
        if not isinstance(day_data, list):
            continue
        d = day_key(day_idx)
        for period_idx, period_slots in enumerate(day_data):
            if isinstance(period_slots, Mapping):
                period_slots = [period_slots]
            if not isinstance(period_slots, list):
                continue
            period = str(period_idx + 1)
            seen_teachers: Set[str] = set()
            for slot in period_slots:
                if not isinstance(slot, Mapping):
                    continue
                subject = name_of(slot.get("subject"))
                teacher = name_of(slot.get("teacher"))
                ref = slot_class_ref(slot)
                label = ref.label if ref else _ANONYMOUS_CLASS
                labels.add(label)
                if not subject or not teacher:
                    continue

                clean = True
                if teacher in seen_teachers:
                    clean = False
                    violations.append(
                        Violation(
                            period=period,
                            day=d,
                            type="teacher_conflict",
                            message=f"{teacher} is assigned to more than one class at {_where(d, period)}",
                            severity="high",
                            class_label=ref.label if ref else None,
                        )
                    )
                seen_teachers.add(teacher)

                t = teacher_by_name.get(teacher)
                if t is not None and not t.teaches(subject):
                    clean = False
                    violations.append(
                        Violation(
                            period=period,
                            day=d,
                            type="teacher_mismatch",
                            message=f"{teacher} is not qualified to teach {subject}",
                            severity="medium",
                            class_label=ref.label if ref else None,
                        )
                    )

                state = cell_state[(d, period_idx + 1)]
                state[label] = state.get(label, True) and clean

    if labels - {_ANONYMOUS_CLASS}:
        labels.update(school_classes)
    if not labels:
        labels.add(_ANONYMOUS_CLASS)

    compliant = 0
    for d, p in settings.teaching_slots():
        state = cell_state.get((d, p), {})
        for label in sorted(labels):
            if label not in state:
                violations.append(
                    Violation(
                        period=str(p),
                        day=d,
                        type="empty_slot",
                        message=f"No lesson at {_where(d, str(p))}",
                        severity="low",
                        class_label=None if label == _ANONYMOUS_CLASS else label,
                    )
                )
            elif state[label]:
                compliant += 1

    total = len(settings.teaching_slots()) * len(labels)
    if total <= 0:
        return ComplianceResult(overall_rate=0.0, violations=violations)

    rate = round_half_up(compliant / total * 100, 2)
    return ComplianceResult(overall_rate=rate, violations=violations)


def add_violation_info(
    rows: Iterable[Any],
    violations: Sequence[Violation],
    class_label: Optional[str] = None,
) -> List[PeriodRow]:
    """Annotate each cell with its violations and the highest severity among them.

    With `class_label`, violations tagged for another class are ignored.
    """

    relevant = [
        v
        for v in violations
        if class_label is None
        or v.class_label in (None, class_label)
        or class_label in v.affected_classes
    ]

    out: List[PeriodRow] = []
    for row in _as_rows(rows):
        cells: Dict[str, Optional[DisplayCell]] = {}
        for d in DAY_KEYS:
            cell = row.get(d)
            if cell is None:
                cells[d] = None
                continue
            matching = tuple(v for v in relevant if v.matches(row.period, d))
            severity = None
            if matching:
                severity = max((v.severity for v in matching), key=lambda s: SEVERITY_RANK.get(s, 0))
            cells[d] = replace(cell, violations=matching, has_violation=bool(matching), violation_severity=severity)
        out.append(PeriodRow(period=row.period, cells=cells))
    return out


# ----------------------------
# Display-row constraint checks
# ----------------------------


def validate_timetable_constraints(
    rows: Iterable[Any],
    teachers: Sequence[Teacher],
    subjects: Sequence[Subject],
    grade: Optional[int] = None,
    settings: Optional[SchoolSettings] = None,
) -> ConstraintResult:
    """Real-time check of one class matrix.

    Flags unqualified teachers, subjects not offered to the grade, weekly hours
    over quota, lessons outside teaching periods and teacher restrictions.
    `is_valid` is False only for high/medium findings.
    """

    teacher_by_name = {t.name: t for t in teachers}
    subject_by_name = {s.name: s for s in subjects}
    conflicts: List[Violation] = []
    used: Dict[str, int] = defaultdict(int)

    for row in _as_rows(rows):
        period_no = _period_number(row)
        for d in DAY_KEYS:
            cell = row.get(d)
            if cell is None or not cell.subject:
                continue
            where = _where(d, row.period)
            t = teacher_by_name.get(cell.teacher)
            s = subject_by_name.get(cell.subject)

            if t is not None and not t.teaches(cell.subject):
                conflicts.append(
                    Violation(row.period, d, "teacher_mismatch", f"{t.name} does not teach {cell.subject}", "medium")
                )
            if t is not None and not t.teaches_grade(grade):
                conflicts.append(
                    Violation(row.period, d, "teacher_mismatch", f"{t.name} does not teach grade {grade}", "medium")
                )

            if s is not None and not s.offered_to(grade):
                conflicts.append(
                    Violation(
                        row.period, d, "subject_constraint", f"{s.name} is not offered to grade {grade}", "medium"
                    )
                )
            if s is not None and grade is not None:
                used[s.name] += 1
                quota = s.hours_for(grade)
                if quota and used[s.name] > quota:
                    conflicts.append(
                        Violation(
                            row.period,
                            d,
                            "subject_constraint",
                            f"{s.name} exceeds its weekly hours ({used[s.name]}/{quota})",
                            "low",
                        )
                    )

            if settings is not None and period_no is not None and not settings.is_teaching_slot(d, period_no):
                conflicts.append(
                    Violation(row.period, d, "subject_constraint", f"{where} is outside teaching periods", "low")
                )

            if t is not None and period_no is not None:
                level = t.restriction_level(d, period_no)
                if level == RESTRICTION_REQUIRED:
                    conflicts.append(
                        Violation(row.period, d, "restriction", f"{t.name} cannot teach at {where}", "high")
                    )
                elif level == RESTRICTION_PREFERRED:
                    conflicts.append(
                        Violation(row.period, d, "restriction", f"{t.name} prefers not to teach at {where}", "low")
                    )

    is_valid = not any(SEVERITY_RANK.get(c.severity, 0) >= SEVERITY_RANK["medium"] for c in conflicts)
    return ConstraintResult(is_valid=is_valid, conflicts=conflicts)


def validate_school_wide_timetable_constraints(
    all_class_rows: Mapping[str, Iterable[Any]],
    teachers: Sequence[Teacher],
    subjects: Sequence[Subject],
) -> ConstraintResult:
    """Cross-class check: a teacher may only be in one class per (day, period)."""

    teacher_by_name = {t.name: t for t in teachers}
    placements: Dict[Tuple[str, str], Dict[str, List[str]]] = defaultdict(lambda: defaultdict(list))
    conflicts: List[Violation] = []

    for label in sorted(all_class_rows):
        for row in _as_rows(all_class_rows[label]):
            for d in DAY_KEYS:
                cell = row.get(d)
                if cell is None or not cell.teacher:
                    continue
                placements[(row.period, d)][cell.teacher].append(label)
                t = teacher_by_name.get(cell.teacher)
                if t is not None and cell.subject and not t.teaches(cell.subject):
                    conflicts.append(
                        Violation(
                            row.period,
                            d,
                            "teacher_mismatch",
                            f"{t.name} does not teach {cell.subject} ({label})",
                            "medium",
                            class_label=label,
                        )
                    )

    for (period, d), by_teacher in sorted(placements.items()):
        for teacher, labels in sorted(by_teacher.items()):
            if len(labels) < 2:
                continue
            conflicts.append(
                Violation(
                    period,
                    d,
                    "teacher_conflict",
                    f"{teacher} is double-booked at {_where(d, period)}: {', '.join(labels)}",
                    "high",
                    affected_classes=tuple(labels),
                )
            )

    return ConstraintResult(is_valid=not conflicts, conflicts=conflicts)


def validate_timetable_constraints_enhanced(
    rows: Iterable[Any],
    teachers: Sequence[Teacher],
    subjects: Sequence[Subject],
    grade: int,
    class_number: int,
    all_class_rows: Optional[Mapping[str, Iterable[Any]]] = None,
    settings: Optional[SchoolSettings] = None,
) -> ConstraintResult:
    """Class check plus school-wide double bookings that involve this class."""

    rows = _as_rows(rows)
    local = validate_timetable_constraints(rows, teachers, subjects, grade=grade, settings=settings)
    if not all_class_rows:
        return local

    label = f"{grade}-{class_number}"
    school = dict(all_class_rows)
    school[label] = rows
    wide = validate_school_wide_timetable_constraints(school, teachers, subjects)

    extra = [
        replace(c, type="school_wide_conflict", class_label=label)
        for c in wide.conflicts
        if c.type == "teacher_conflict" and label in c.affected_classes
    ]
    conflicts = local.conflicts + extra
    return ConstraintResult(is_valid=local.is_valid and not extra, conflicts=conflicts)


# ----------------------------
# Editing helpers
# ----------------------------


def teacher_busy_map(all_class_rows: Mapping[str, Iterable[Any]], exclude: Optional[str] = None) -> BusyMap:
    """(day, period) -> teachers already placed there, skipping class `exclude`."""

    busy: BusyMap = defaultdict(set)
    for label, rows in all_class_rows.items():
        if label == exclude:
            continue
        for row in _as_rows(rows):
            for d in DAY_KEYS:
                cell = row.get(d)
                if cell is not None and cell.teacher:
                    busy[(d, row.period)].add(cell.teacher)
    return busy


def fill_empty_slots(
    rows: Iterable[Any],
    teachers: Sequence[Teacher],
    subjects: Sequence[Subject],
    grade: int,
    settings: Optional[SchoolSettings] = None,
    busy: Optional[BusyMap] = None,
) -> List[PeriodRow]:
    """Greedy auto-fill of empty teaching cells.

    For each empty cell, the first teacher (input order) who teaches the grade,
    is free at that time, is not under a required restriction and is below
    their weekly cap gets their first subject with weekly quota left.
    """

    settings = settings or SchoolSettings()
    rows = _as_rows(rows)
    grade_subjects = [s for s in subjects if s.offered_to(grade)]
    offered = {s.name for s in grade_subjects}
    candidates = [t for t in teachers if t.teaches_grade(grade) and any(n in offered for n in t.subjects)]
    if not candidates:
        logger.info("Auto-fill: no teacher can take grade %s", grade)
        return rows

    taken: BusyMap = defaultdict(set)
    load: Dict[str, int] = defaultdict(int)
    for key, names in (busy or {}).items():
        taken[key] |= set(names)
        for n in names:
            load[n] += 1

    used: Dict[str, int] = defaultdict(int)
    for row in rows:
        for d in DAY_KEYS:
            cell = row.get(d)
            if cell is not None:
                used[cell.subject] += 1
                if cell.teacher:
                    taken[(d, row.period)].add(cell.teacher)
                    load[cell.teacher] += 1

    def next_subject(t: Teacher) -> Optional[Subject]:
        for s in grade_subjects:
            if not t.teaches(s.name):
                continue
            quota = s.hours_for(grade)
            if quota == 0 or used[s.name] < quota:
                return s
        return None

    out: List[PeriodRow] = []
    filled = 0
    for row in rows:
        period_no = _period_number(row)
        for d in DAY_KEYS:
            if row.get(d) is not None or period_no is None or not settings.is_teaching_slot(d, period_no):
                continue
            for t in candidates:
                if t.name in taken[(d, row.period)]:
                    continue
                if t.restriction_level(d, period_no) == RESTRICTION_REQUIRED:
                    continue
                if load[t.name] >= int(t.max_hours_per_week):
                    continue
                s = next_subject(t)
                if s is None:
                    continue
                row = row.with_cell(d, DisplayCell(subject=s.name, teacher=t.name, is_auto_filled=True))
                used[s.name] += 1
                load[t.name] += 1
                taken[(d, row.period)].add(t.name)
                filled += 1
                break
        out.append(row)

    logger.info("Auto-fill placed %d lessons for grade %s", filled, grade)
    return out


def move_slot(
    rows: Iterable[Any],
    from_period: str,
    from_day: str,
    to_period: str,
    to_day: str,
) -> List[PeriodRow]:
    """Move a lesson to another cell; an occupied target swaps with the source."""

    rows = _as_rows(rows)
    src_idx = next((i for i, r in enumerate(rows) if r.period == str(from_period)), None)
    dst_idx = next((i for i, r in enumerate(rows) if r.period == str(to_period)), None)
    if src_idx is None or dst_idx is None or from_day not in DAY_KEYS or to_day not in DAY_KEYS:
        logger.warning("Move ignored: unknown cell %s/%s -> %s/%s", from_day, from_period, to_day, to_period)
        return rows
    if src_idx == dst_idx and from_day == to_day:
        return rows

    source = rows[src_idx].get(from_day)
    if source is None:
        return rows
    target = rows[dst_idx].get(to_day)

    rows = list(rows)
    rows[src_idx] = rows[src_idx].with_cell(from_day, target.plain() if target is not None else None)
    rows[dst_idx] = rows[dst_idx].with_cell(to_day, source.plain())
    return rows
