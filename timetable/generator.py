"""Weekly school timetable generation.

Builds one timetable for every class in the school at once and allocates a
qualified teacher to each lesson, using the annealing engine in `optimizer`.

Data model
----------
A "lesson" is one weekly hour of a subject for a class. If grade 1 has
Mathematics with 4 weekly hours, every grade-1 class gets 4 Mathematics
lessons. Each lesson is placed on a teaching (day, period) and given a
teacher.

Hard constraints (penalized with very large weight)
--------------------------------------------------
- A class cannot have 2 lessons in the same (day, period)
- A teacher cannot teach 2 lessons in the same (day, period)
- The teacher must teach the subject and the grade
- Required assignment restrictions are never violated
- A teacher's weekly hours stay within `max_hours_per_week`

Soft constraints (lower weight)
-------------------------------
- Preferred assignment restrictions
- Spread the same subject across different days

Lessons that still break a hard constraint after annealing are left out of
the grid and reported as unassigned. Classrooms are attached afterwards: a
subject needing a special classroom type gets a free room of that type,
everything else uses the class's homeroom.
"""

from __future__ import annotations

import logging
import random
import time
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from optimizer import AnnealConfig, anneal
from timetable.models import (
    DAY_KEYS,
    RESTRICTION_PREFERRED,
    RESTRICTION_REQUIRED,
    ClassRef,
    Classroom,
    SchoolSettings,
    Subject,
    Teacher,
)
from timetable.validator import round_half_up


logger = logging.getLogger(__name__)

GENERATION_METHOD = "simulated_annealing"


# ----------------------------
# Problem / state
# ----------------------------


@dataclass(frozen=True)
class Lesson:
    lesson_id: str
    class_ref: ClassRef
    subject: str


@dataclass(frozen=True)
class GenerationProblem:
    settings: SchoolSettings
    teachers: Dict[str, Teacher]  # teacher_id -> teacher
    subjects: Dict[str, Subject]  # subject name -> subject
    classrooms: Tuple[Classroom, ...]
    lessons: Dict[str, Lesson]


@dataclass(frozen=True)
class GenerationSettings:
    prefer_avoid_preferred_restrictions: float = 2.0
    prefer_spread_subject_across_days: float = 1.0
    hard_penalty: float = 1_000_000.0


@dataclass(frozen=True)
class LessonAssignment:
    day_idx: int
    period_idx: int
    teacher_id: str  # "" when nobody is qualified


@dataclass(frozen=True)
class GenerationState:
    assignments: Dict[str, LessonAssignment]


@dataclass
class GenerationResult:
    grid: List[List[List[Dict[str, Any]]]]
    statistics: Dict[str, Any]
    metrics: Dict[str, float]
    state: GenerationState
    unassigned: List[Dict[str, Any]] = field(default_factory=list)


# ----------------------------
# Build
# ----------------------------


def build_lessons(settings: SchoolSettings, subjects: Sequence[Subject]) -> Dict[str, Lesson]:
    lessons: Dict[str, Lesson] = {}
    capacity = len(settings.teaching_slots())
    i = 1
    for ref in settings.class_refs():
        count = 0
        for subj in subjects:
            if not subj.offered_to(ref.grade):
                continue
            for _k in range(subj.hours_for(ref.grade)):
                lid = f"L{i:04d}"
                lessons[lid] = Lesson(lesson_id=lid, class_ref=ref, subject=subj.name)
                i += 1
                count += 1
        if count > capacity:
            logger.warning("Class %s needs %d lessons but only %d teaching slots exist", ref.label, count, capacity)
    return lessons


def build_problem(
    settings: SchoolSettings,
    teachers: Sequence[Teacher],
    subjects: Sequence[Subject],
    classrooms: Sequence[Classroom] = (),
) -> GenerationProblem:
    return GenerationProblem(
        settings=settings,
        teachers={t.teacher_id: t for t in teachers},
        subjects={s.name: s for s in subjects},
        classrooms=tuple(classrooms),
        lessons=build_lessons(settings, subjects),
    )


def _teaching_positions(settings: SchoolSettings) -> List[Tuple[int, int]]:
    return [(DAY_KEYS.index(d), p - 1) for d, p in settings.teaching_slots()]


def eligible_teachers(problem: GenerationProblem) -> Dict[str, List[str]]:
    """lesson_id -> ids of teachers who teach the subject and the grade."""

    out: Dict[str, List[str]] = {}
    by_key: Dict[Tuple[str, int], List[str]] = {}
    for lid, lesson in problem.lessons.items():
        key = (lesson.subject, lesson.class_ref.grade)
        if key not in by_key:
            by_key[key] = [
                tid
                for tid, t in problem.teachers.items()
                if t.teaches(lesson.subject) and t.teaches_grade(lesson.class_ref.grade)
            ]
        out[lid] = by_key[key]
    return out


# ----------------------------
# Energy / metrics
# ----------------------------


def _tally(problem: GenerationProblem, state: GenerationState) -> Dict[str, Any]:
    class_occ: Dict[Tuple[str, int, int], int] = defaultdict(int)
    teacher_occ: Dict[Tuple[str, int, int], int] = defaultdict(int)
    teacher_load: Dict[str, int] = defaultdict(int)
    subject_day: Dict[Tuple[str, str, int], int] = defaultdict(int)
    required = 0
    preferred = 0
    ineligible = 0
    unstaffed = 0

    for lid, lesson in problem.lessons.items():
        a = state.assignments[lid]
        label = lesson.class_ref.label
        class_occ[(label, a.day_idx, a.period_idx)] += 1
        subject_day[(label, lesson.subject, a.day_idx)] += 1

        t = problem.teachers.get(a.teacher_id)
        if t is None:
            unstaffed += 1
            continue
        teacher_occ[(a.teacher_id, a.day_idx, a.period_idx)] += 1
        teacher_load[a.teacher_id] += 1
        if not (t.teaches(lesson.subject) and t.teaches_grade(lesson.class_ref.grade)):
            ineligible += 1
        level = t.restriction_level(DAY_KEYS[a.day_idx], a.period_idx + 1)
        if level == RESTRICTION_REQUIRED:
            required += 1
        elif level == RESTRICTION_PREFERRED:
            preferred += 1

    overload = sum(
        max(0, load - int(problem.teachers[tid].max_hours_per_week)) for tid, load in teacher_load.items()
    )
    return {
        "class_conflicts": sum(c - 1 for c in class_occ.values() if c > 1),
        "teacher_conflicts": sum(c - 1 for c in teacher_occ.values() if c > 1),
        "required_restrictions": required,
        "preferred_restrictions": preferred,
        "ineligible": ineligible,
        "unstaffed": unstaffed,
        "overload_hours": overload,
        "subject_repeats": sum(c - 1 for c in subject_day.values() if c > 1),
        "teacher_load": dict(teacher_load),
    }


def compute_energy(problem: GenerationProblem, settings: GenerationSettings, state: GenerationState) -> float:
    t = _tally(problem, state)
    hard = (
        t["class_conflicts"]
        + t["teacher_conflicts"]
        + t["required_restrictions"]
        + t["ineligible"]
        + t["overload_hours"]
    )
    soft = (
        settings.prefer_avoid_preferred_restrictions * t["preferred_restrictions"]
        + settings.prefer_spread_subject_across_days * t["subject_repeats"]
    )
    return settings.hard_penalty * hard + soft


def compute_metrics(problem: GenerationProblem, settings: GenerationSettings, state: GenerationState) -> Dict[str, float]:
    t = _tally(problem, state)
    loads = list(t["teacher_load"].values()) or [0]
    energy = compute_energy(problem, settings, state)
    return {
        "energy": float(energy),
        "class_conflicts": float(t["class_conflicts"]),
        "teacher_conflicts": float(t["teacher_conflicts"]),
        "required_restrictions": float(t["required_restrictions"]),
        "preferred_restrictions": float(t["preferred_restrictions"]),
        "subject_repeats": float(t["subject_repeats"]),
        "unstaffed_lessons": float(t["unstaffed"]),
        "total_lessons": float(len(problem.lessons)),
        "teacher_load_min": float(min(loads)),
        "teacher_load_max": float(max(loads)),
        "teacher_load_avg": float(sum(loads) / len(loads)),
    }


# ----------------------------
# Initial state / neighbor
# ----------------------------


def make_initial_state(problem: GenerationProblem, seed: int = 42) -> GenerationState:
    if not problem.teachers:
        raise ValueError("No teachers available")

    rng = random.Random(seed)
    positions = _teaching_positions(problem.settings)
    if not positions:
        raise ValueError("School settings leave no teaching periods")
    eligible = eligible_teachers(problem)

    # Spread each class's lessons over distinct positions while they last.
    free: Dict[str, List[Tuple[int, int]]] = {}
    assignments: Dict[str, LessonAssignment] = {}
    for lid, lesson in problem.lessons.items():
        pool = free.setdefault(lesson.class_ref.label, rng.sample(positions, len(positions)))
        day_idx, period_idx = pool.pop() if pool else rng.choice(positions)
        allowed = eligible.get(lid) or []
        assignments[lid] = LessonAssignment(
            day_idx=day_idx,
            period_idx=period_idx,
            teacher_id=rng.choice(allowed) if allowed else "",
        )
    return GenerationState(assignments=assignments)


def neighbor_move(problem: GenerationProblem):
    lesson_ids = list(problem.lessons.keys())
    positions = _teaching_positions(problem.settings)
    eligible = eligible_teachers(problem)
    by_class: Dict[str, List[str]] = defaultdict(list)
    for lid, lesson in problem.lessons.items():
        by_class[lesson.class_ref.label].append(lid)

    def neighbor(state: GenerationState, rng: random.Random) -> GenerationState:
        new_assign = dict(state.assignments)
        lid = rng.choice(lesson_ids)
        a = new_assign[lid]

        r = rng.random()
        if r < 0.45:
            day_idx, period_idx = rng.choice(positions)
            new_assign[lid] = LessonAssignment(day_idx=day_idx, period_idx=period_idx, teacher_id=a.teacher_id)
        elif r < 0.8:
            # swap times with another lesson of the same class
            other = rng.choice(by_class[problem.lessons[lid].class_ref.label])
            b = new_assign[other]
            new_assign[lid] = LessonAssignment(day_idx=b.day_idx, period_idx=b.period_idx, teacher_id=a.teacher_id)
            new_assign[other] = LessonAssignment(day_idx=a.day_idx, period_idx=a.period_idx, teacher_id=b.teacher_id)
        else:
            allowed = eligible.get(lid) or []
            if allowed:
                new_assign[lid] = LessonAssignment(
                    day_idx=a.day_idx, period_idx=a.period_idx, teacher_id=rng.choice(allowed)
                )

        return GenerationState(assignments=new_assign)

    return neighbor


# ----------------------------
# Output
# ----------------------------


def _room_names(classrooms: Sequence[Classroom]) -> Dict[str, List[str]]:
    rooms: Dict[str, List[str]] = defaultdict(list)
    for c in classrooms:
        count = max(1, int(c.count))
        for i in range(1, count + 1):
            rooms[c.classroom_type].append(c.name if count == 1 else f"{c.name}{i}")
    return rooms


def to_generated_grid(
    problem: GenerationProblem,
    state: GenerationState,
) -> Tuple[List[List[List[Dict[str, Any]]]], List[Dict[str, Any]]]:
    """Render the state as a ``[day][period][slot]`` grid.

    Returns the grid and the lessons that could not be placed cleanly.
    """

    periods = problem.settings.max_periods
    grid: List[List[List[Dict[str, Any]]]] = [[[] for _ in range(periods)] for _ in DAY_KEYS]
    rooms = _room_names(problem.classrooms)

    class_used: set = set()
    teacher_used: set = set()
    rooms_used: Dict[Tuple[int, int], set] = defaultdict(set)
    teacher_load: Dict[str, int] = defaultdict(int)
    unassigned: List[Dict[str, Any]] = []

    for lid in sorted(problem.lessons):
        lesson = problem.lessons[lid]
        a = state.assignments[lid]
        ref = lesson.class_ref
        t = problem.teachers.get(a.teacher_id)
        reason = None
        if t is None:
            reason = "no qualified teacher"
        elif (ref.label, a.day_idx, a.period_idx) in class_used:
            reason = "class already has a lesson"
        elif (a.teacher_id, a.day_idx, a.period_idx) in teacher_used:
            reason = "teacher double-booked"
        elif t.restriction_level(DAY_KEYS[a.day_idx], a.period_idx + 1) == RESTRICTION_REQUIRED:
            reason = "teacher restriction"
        elif teacher_load[a.teacher_id] >= int(t.max_hours_per_week):
            reason = "teacher weekly hours exceeded"

        if reason is not None:
            unassigned.append({"lesson_id": lid, "class": ref.label, "subject": lesson.subject, "reason": reason})
            continue

        class_used.add((ref.label, a.day_idx, a.period_idx))
        teacher_used.add((a.teacher_id, a.day_idx, a.period_idx))
        teacher_load[a.teacher_id] += 1

        classroom = ref.label
        subj = problem.subjects.get(lesson.subject)
        if subj is not None and subj.requires_special_classroom and subj.classroom_type:
            free = [r for r in rooms.get(subj.classroom_type, []) if r not in rooms_used[(a.day_idx, a.period_idx)]]
            if free:
                classroom = free[0]
                rooms_used[(a.day_idx, a.period_idx)].add(classroom)
            else:
                logger.debug("No free %s for %s %s", subj.classroom_type, ref.label, lesson.subject)

        grid[a.day_idx][a.period_idx].append(
            {
                "classGrade": ref.grade,
                "classSection": str(ref.class_number),
                "day": DAY_KEYS[a.day_idx],
                "period": a.period_idx + 1,
                "subject": lesson.subject,
                "teacher": t.name,
                "classroom": classroom,
                "isAutoFilled": False,
            }
        )

    return grid, unassigned


# ----------------------------
# Solve
# ----------------------------


def quality_score(assigned: int, total: int, violations: int) -> float:
    """Assignment rate minus 5 points per violation (at most 30 points off)."""

    if total <= 0:
        return 0.0
    rate = assigned / total * 100
    return round_half_up(max(0.0, rate - min(violations * 5, 30)), 2)


def solve_school_timetable(
    problem: GenerationProblem,
    settings: GenerationSettings = GenerationSettings(),
    anneal_config: AnnealConfig = AnnealConfig(steps=20_000, reheats=1, seed=42),
) -> GenerationResult:
    if not problem.teachers:
        raise ValueError("No teachers registered; add teachers before generating a timetable")
    if not problem.lessons:
        raise ValueError("No lessons to schedule; set weekly hours on subjects for at least one grade")

    started = time.perf_counter()
    logger.info(
        "Generating timetable: %d classes, %d lessons, %d teachers",
        len(problem.settings.class_refs()),
        len(problem.lessons),
        len(problem.teachers),
    )

    initial = make_initial_state(problem, seed=anneal_config.seed if anneal_config.seed is not None else 42)

    def e(s: GenerationState) -> float:
        return compute_energy(problem, settings, s)

    result = anneal(
        initial_state=initial,
        neighbor=neighbor_move(problem),
        energy=e,
        config=anneal_config,
    )

    best = result.best_state
    grid, unassigned = to_generated_grid(problem, best)
    metrics = compute_metrics(problem, settings, best)
    metrics["accepted_moves"] = float(result.accepted_moves)
    metrics["total_steps"] = float(result.total_steps)

    elapsed = time.perf_counter() - started
    total = len(problem.lessons)
    assigned = total - len(unassigned)
    statistics = {
        "totalSlots": total,
        "assignedSlots": assigned,
        "unassignedSlots": len(unassigned),
        "constraintViolations": int(metrics["preferred_restrictions"] + len(unassigned)),
        "assignmentRate": round_half_up(assigned / total * 100, 2) if total else 0.0,
        "qualityScore": quality_score(assigned, total, int(metrics["preferred_restrictions"] + len(unassigned))),
        "generationTime": f"{elapsed:.2f}s",
        "method": GENERATION_METHOD,
    }
    logger.info("Generation done: %d/%d lessons placed in %.2fs", assigned, total, elapsed)
    return GenerationResult(grid=grid, statistics=statistics, metrics=metrics, state=best, unassigned=unassigned)
