"""Domain model for weekly school timetables.

Everything here is plain data: frozen dataclasses plus small helpers to read
them from the JSON shapes stored in SQLite (and produced by older exports).

Grid vocabulary
---------------
- day key: "mon" .. "sat" (index 0..5). Unknown indexes render as "day{i}".
- period: 1-indexed lesson number; display rows carry it as a string.
- generated grid: ``grid[day_idx][period_idx] -> [slot, ...]`` where each slot
  is a dict with ``classGrade``, ``classSection``, ``subject``, ``teacher``,
  ``classroom``.
- display rows: one :class:`PeriodRow` per period with an optional
  :class:`DisplayCell` per day key (the view/edit matrix for a single class).
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple


DAY_KEYS: Tuple[str, ...] = ("mon", "tue", "wed", "thu", "fri", "sat")
DAY_LABELS: Dict[str, str] = {
    "mon": "Mon",
    "tue": "Tue",
    "wed": "Wed",
    "thu": "Thu",
    "fri": "Fri",
    "sat": "Sat",
}
LEGACY_DAY_NAMES: Tuple[str, ...] = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday")

# Day names found in imported restriction data
_DAY_ALIASES: Dict[str, str] = {
    **{k: k for k in DAY_KEYS},
    **{name: key for name, key in zip(LEGACY_DAY_NAMES, DAY_KEYS)},
    **{label.lower(): key for key, label in DAY_LABELS.items()},
    "月": "mon",
    "火": "tue",
    "水": "wed",
    "木": "thu",
    "金": "fri",
    "土": "sat",
    "月曜": "mon",
    "火曜": "tue",
    "水曜": "wed",
    "木曜": "thu",
    "金曜": "fri",
    "土曜": "sat",
}

DEFAULT_MAX_PERIODS = 6
GRADES: Tuple[int, ...] = (1, 2, 3)

SEVERITY_RANK: Dict[str, int] = {"high": 3, "medium": 2, "low": 1}

RESTRICTION_REQUIRED = "required"
RESTRICTION_PREFERRED = "preferred"
_RESTRICTION_ALIASES = {
    "required": RESTRICTION_REQUIRED,
    "必須": RESTRICTION_REQUIRED,
    "preferred": RESTRICTION_PREFERRED,
    "推奨": RESTRICTION_PREFERRED,
}


def day_key(day_idx: int) -> str:
    if 0 <= day_idx < len(DAY_KEYS):
        return DAY_KEYS[day_idx]
    return f"day{day_idx}"


def normalize_day(value: Any) -> Optional[str]:
    """Map any known day spelling to its day key (None if unknown)."""

    if value is None:
        return None
    text = str(value).strip()
    return _DAY_ALIASES.get(text.lower(), _DAY_ALIASES.get(text))


def name_of(value: Any) -> str:
    """Subject/teacher/classroom values may be plain names or objects with `name`."""

    if value is None:
        return ""
    if isinstance(value, Mapping):
        return str(value.get("name") or "").strip()
    name = getattr(value, "name", None)
    if name is not None and not isinstance(value, str):
        return str(name).strip()
    return str(value).strip()


def _int_tuple(values: Optional[Iterable[Any]]) -> Tuple[int, ...]:
    out: List[int] = []
    for v in values or ():
        try:
            out.append(int(v))
        except (TypeError, ValueError):
            continue
    return tuple(out)


# ----------------------------
# School configuration
# ----------------------------


@dataclass(frozen=True)
class ClassRef:
    grade: int
    class_number: int

    @property
    def label(self) -> str:
        return f"{self.grade}-{self.class_number}"

    @classmethod
    def parse(cls, label: str) -> "ClassRef":
        grade, _, number = str(label).partition("-")
        return cls(grade=int(grade), class_number=int(number))


@dataclass(frozen=True)
class SchoolSettings:
    grade1_classes: int = 4
    grade2_classes: int = 4
    grade3_classes: int = 3
    daily_periods: int = 6
    saturday_periods: int = 4

    @classmethod
    def from_row(cls, row: Optional[Mapping[str, Any]]) -> "SchoolSettings":
        if not row:
            return cls()
        d = cls()
        return cls(
            grade1_classes=int(row.get("grade1_classes", d.grade1_classes)),
            grade2_classes=int(row.get("grade2_classes", d.grade2_classes)),
            grade3_classes=int(row.get("grade3_classes", d.grade3_classes)),
            daily_periods=int(row.get("daily_periods", d.daily_periods)),
            saturday_periods=int(row.get("saturday_periods", d.saturday_periods)),
        )

    def classes_for_grade(self, grade: int) -> int:
        return {
            1: self.grade1_classes,
            2: self.grade2_classes,
            3: self.grade3_classes,
        }.get(int(grade), 0)

    def class_refs(self) -> List[ClassRef]:
        return [
            ClassRef(grade=g, class_number=n)
            for g in GRADES
            for n in range(1, self.classes_for_grade(g) + 1)
        ]

    @property
    def max_periods(self) -> int:
        return max(int(self.daily_periods), int(self.saturday_periods), 1)

    def periods_for_day(self, day: str) -> int:
        if day == "sat":
            return int(self.saturday_periods)
        if day in DAY_KEYS:
            return int(self.daily_periods)
        return 0

    def is_teaching_slot(self, day: str, period: int) -> bool:
        return 1 <= int(period) <= self.periods_for_day(day)

    def teaching_slots(self) -> List[Tuple[str, int]]:
        return [(d, p) for d in DAY_KEYS for p in range(1, self.periods_for_day(d) + 1)]


# ----------------------------
# Master data
# ----------------------------


@dataclass(frozen=True)
class AssignmentRestriction:
    """Periods a teacher must not (required) or should not (preferred) teach."""

    day: str
    periods: Tuple[int, ...]
    level: str = RESTRICTION_REQUIRED
    reason: str = ""

    def blocks(self, day: str, period: int) -> bool:
        return self.day == day and int(period) in self.periods

    @property
    def is_required(self) -> bool:
        return self.level == RESTRICTION_REQUIRED

    def to_dict(self) -> Dict[str, Any]:
        return {"day": self.day, "periods": list(self.periods), "level": self.level, "reason": self.reason}

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> Optional["AssignmentRestriction"]:
        day = normalize_day(raw.get("day", raw.get("restrictedDay")))
        if day is None:
            return None
        periods = _int_tuple(raw.get("periods", raw.get("restrictedPeriods")))
        level_raw = str(raw.get("level", raw.get("restrictionLevel", RESTRICTION_REQUIRED)) or "")
        level = _RESTRICTION_ALIASES.get(level_raw.strip(), RESTRICTION_REQUIRED)
        return cls(day=day, periods=tuple(sorted(set(periods))), level=level, reason=str(raw.get("reason") or ""))


@dataclass(frozen=True)
class Teacher:
    teacher_id: str
    name: str
    subjects: Tuple[str, ...] = ()
    grades: Tuple[int, ...] = ()
    max_hours_per_week: int = 25
    assignment_restrictions: Tuple[AssignmentRestriction, ...] = ()

    def teaches(self, subject_name: str) -> bool:
        return subject_name in self.subjects

    def teaches_grade(self, grade: Optional[int]) -> bool:
        # No grade list means the teacher can take any grade.
        if grade is None or not self.grades:
            return True
        return int(grade) in self.grades

    def restriction_level(self, day: str, period: int) -> Optional[str]:
        level: Optional[str] = None
        for r in self.assignment_restrictions:
            if r.blocks(day, period):
                if r.is_required:
                    return RESTRICTION_REQUIRED
                level = RESTRICTION_PREFERRED
        return level


@dataclass(frozen=True)
class Subject:
    subject_id: str
    name: str
    # empty => offered to every grade
    grades: Tuple[int, ...] = ()
    weekly_hours: Dict[int, int] = field(default_factory=dict)
    requires_special_classroom: bool = False
    classroom_type: str = ""

    def offered_to(self, grade: Optional[int]) -> bool:
        if grade is None or not self.grades:
            return True
        return int(grade) in self.grades

    def hours_for(self, grade: int) -> int:
        return int(self.weekly_hours.get(int(grade), 0) or 0)


@dataclass(frozen=True)
class Classroom:
    classroom_id: str
    name: str
    classroom_type: str = "普通教室"
    capacity: int = 35
    count: int = 1


# ----------------------------
# Validation results
# ----------------------------


@dataclass(frozen=True)
class Violation:
    period: str
    day: str
    type: str
    message: str
    severity: str
    class_label: Optional[str] = None
    affected_classes: Tuple[str, ...] = ()

    def matches(self, period: str, day: str) -> bool:
        return str(self.period) == str(period) and self.day == day

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "period": self.period,
            "day": self.day,
            "type": self.type,
            "message": self.message,
            "severity": self.severity,
        }
        if self.class_label:
            out["class"] = self.class_label
        if self.affected_classes:
            out["affectedClasses"] = list(self.affected_classes)
        return out

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "Violation":
        return cls(
            period=str(raw.get("period", "")),
            day=str(raw.get("day", "")),
            type=str(raw.get("type", "")),
            message=str(raw.get("message", "")),
            severity=str(raw.get("severity", "low")),
            class_label=raw.get("class"),
            affected_classes=tuple(str(x) for x in raw.get("affectedClasses") or ()),
        )


@dataclass(frozen=True)
class ComplianceResult:
    overall_rate: float
    violations: List[Violation]


@dataclass(frozen=True)
class ConstraintResult:
    is_valid: bool
    conflicts: List[Violation]


# ----------------------------
# Display matrix
# ----------------------------


@dataclass(frozen=True)
class DisplayCell:
    subject: str
    teacher: str
    classroom: str = ""
    is_auto_filled: bool = False
    violations: Tuple[Violation, ...] = ()
    has_violation: bool = False
    violation_severity: Optional[str] = None

    def plain(self) -> "DisplayCell":
        """Same lesson with violation annotations removed."""

        return replace(self, violations=(), has_violation=False, violation_severity=None)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "subject": self.subject,
            "teacher": self.teacher,
            "classroom": self.classroom,
            "isAutoFilled": self.is_auto_filled,
            "hasViolation": self.has_violation,
            "violations": [v.to_dict() for v in self.violations],
            "violationSeverity": self.violation_severity,
        }

    @classmethod
    def from_value(cls, raw: Any) -> Optional["DisplayCell"]:
        if raw is None:
            return None
        if isinstance(raw, DisplayCell):
            return raw
        if not isinstance(raw, Mapping):
            return None
        subject = name_of(raw.get("subject"))
        teacher = name_of(raw.get("teacher"))
        if not subject and not teacher:
            return None
        return cls(
            subject=subject,
            teacher=teacher,
            classroom=name_of(raw.get("classroom")),
            is_auto_filled=bool(raw.get("isAutoFilled", raw.get("is_auto_filled", False))),
            violations=tuple(Violation.from_dict(v) for v in raw.get("violations") or () if isinstance(v, Mapping)),
            has_violation=bool(raw.get("hasViolation", raw.get("has_violation", False))),
            violation_severity=raw.get("violationSeverity", raw.get("violation_severity")),
        )


@dataclass(frozen=True)
class PeriodRow:
    period: str
    cells: Dict[str, Optional[DisplayCell]] = field(default_factory=dict)

    def get(self, day: str) -> Optional[DisplayCell]:
        return self.cells.get(day)

    def with_cell(self, day: str, cell: Optional[DisplayCell]) -> "PeriodRow":
        cells = dict(self.cells)
        cells[day] = cell
        return PeriodRow(period=self.period, cells=cells)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"period": self.period}
        for d in DAY_KEYS:
            cell = self.cells.get(d)
            out[d] = cell.to_dict() if cell is not None else None
        return out

    @classmethod
    def empty(cls, period: int) -> "PeriodRow":
        return cls(period=str(period), cells={d: None for d in DAY_KEYS})

    @classmethod
    def from_value(cls, raw: Any) -> Optional["PeriodRow"]:
        if isinstance(raw, PeriodRow):
            return raw
        if not isinstance(raw, Mapping) or raw.get("period") in (None, ""):
            return None
        return cls(
            period=str(raw.get("period")),
            cells={d: DisplayCell.from_value(raw.get(d)) for d in DAY_KEYS},
        )
