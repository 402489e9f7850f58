"""Validation helpers for Streamlit forms."""

from __future__ import annotations

import re
from typing import Any, Dict, Iterable, List, Mapping, Tuple

from timetable.models import DAY_KEYS, GRADES, normalize_day


_ID_RE = re.compile(r"^[A-Za-z0-9_-]{2,32}$")


def require_non_empty(value: str, field: str) -> Tuple[bool, str]:
    if not value or not value.strip():
        return False, f"{field} cannot be empty"
    return True, ""


def validate_id(value: str, field: str) -> Tuple[bool, str]:
    ok, msg = require_non_empty(value, field)
    if not ok:
        return ok, msg
    if not _ID_RE.match(value.strip()):
        return False, f"{field} must be 2-32 chars (letters/numbers/_/-)"
    return True, ""


def validate_positive_int(value: int, field: str, min_value: int = 1, max_value: int | None = None) -> Tuple[bool, str]:
    if value is None:
        return False, f"{field} is required"
    if value < min_value:
        return False, f"{field} must be >= {min_value}"
    if max_value is not None and value > max_value:
        return False, f"{field} must be <= {max_value}"
    return True, ""


def validate_unique_name(name: str, field: str, existing: Iterable[str]) -> Tuple[bool, str]:
    """Name must be non-empty and not collide with another record's name."""

    ok, msg = require_non_empty(name, field)
    if not ok:
        return ok, msg
    if name.strip() in {str(x).strip() for x in existing}:
        return False, f"{field} '{name.strip()}' already exists"
    return True, ""


def validate_grades(grades: Iterable[int], field: str = "Grades") -> Tuple[bool, str]:
    vals = list(grades or [])
    if not vals:
        return False, f"{field}: select at least one grade"
    bad = [g for g in vals if int(g) not in GRADES]
    if bad:
        return False, f"{field} must be within {', '.join(str(g) for g in GRADES)}"
    return True, ""


def validate_weekly_hours(weekly_hours: Mapping[int, int], grades: Iterable[int]) -> Tuple[bool, str]:
    """Every selected grade needs 1..10 lessons per week."""

    for g in grades:
        hours = int(weekly_hours.get(int(g), 0) or 0)
        if hours < 1:
            return False, f"Weekly hours for grade {g} must be >= 1"
        if hours > 10:
            return False, f"Weekly hours for grade {g} must be <= 10"
    return True, ""


def validate_restrictions(restrictions: List[Dict[str, Any]], max_periods: int) -> Tuple[bool, str]:
    seen = set()
    for i, r in enumerate(restrictions, start=1):
        day = normalize_day(r.get("day"))
        if day is None or day not in DAY_KEYS:
            return False, f"Restriction {i}: unknown day {r.get('day')!r}"
        periods = list(r.get("periods") or [])
        if not periods:
            return False, f"Restriction {i}: select at least one period"
        for p in periods:
            if int(p) < 1 or int(p) > int(max_periods):
                return False, f"Restriction {i}: period {p} is outside 1-{max_periods}"
        for p in periods:
            key = (day, int(p))
            if key in seen:
                return False, f"Restriction {i}: {day} period {p} is restricted twice"
            seen.add(key)
    return True, ""
