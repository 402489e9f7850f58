from __future__ import annotations

import hashlib
import json
from typing import Any, Dict, Iterable, Optional

from timetable.models import Classroom, SchoolSettings, Subject, Teacher


def _stable_json(obj: Any) -> str:
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def compute_generation_input_hash(
    *,
    settings: SchoolSettings,
    teachers: Iterable[Teacher],
    subjects: Iterable[Subject],
    classrooms: Iterable[Classroom] = (),
    run_settings: Optional[Dict[str, Any]] = None,
) -> str:
    """Compute a stable hash for a timetable generation run.

    Goal: same DB data + same run parameters => same hash.
    If either changes, hash changes. Record order does not matter.
    """

    payload: Dict[str, Any] = {
        "settings": {
            "grade1_classes": settings.grade1_classes,
            "grade2_classes": settings.grade2_classes,
            "grade3_classes": settings.grade3_classes,
            "daily_periods": settings.daily_periods,
            "saturday_periods": settings.saturday_periods,
        },
        "teachers": [],
        "subjects": [],
        "classrooms": [],
        "run_settings": run_settings or {},
    }

    for t in sorted(teachers, key=lambda x: x.teacher_id):
        payload["teachers"].append(
            {
                "teacher_id": t.teacher_id,
                "name": t.name,
                "subjects": sorted(t.subjects),
                "grades": sorted(t.grades),
                "max_hours_per_week": int(t.max_hours_per_week),
                "restrictions": sorted(
                    (r.to_dict() for r in t.assignment_restrictions),
                    key=_stable_json,
                ),
            }
        )

    for s in sorted(subjects, key=lambda x: x.name):
        payload["subjects"].append(
            {
                "name": s.name,
                "grades": sorted(s.grades),
                "weekly_hours": {str(k): int(v) for k, v in sorted(s.weekly_hours.items())},
                "requires_special_classroom": bool(s.requires_special_classroom),
                "classroom_type": s.classroom_type,
            }
        )

    for c in sorted(classrooms, key=lambda x: x.name):
        payload["classrooms"].append(
            {"name": c.name, "classroom_type": c.classroom_type, "count": int(c.count)}
        )

    return hashlib.sha256(_stable_json(payload).encode("utf-8")).hexdigest()
