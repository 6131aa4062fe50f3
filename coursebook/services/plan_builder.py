"""Study plan builder.

Orders the full lesson catalog by topical affinity and packs it into weekly
time-boxed buckets:

- minutes per week = max(60, round(hours * 60))
- each lesson scores one point per focus keyword that one of its tags equals
  or contains ("ai-agent" matches "ai")
- stable sort by score descending, so ties keep the editorial catalog order
- greedy packing in sorted order: a lesson goes into the current week if it
  fits the remaining budget or the week is still empty, otherwise it opens a
  new week with a full budget

Every lesson lands in exactly one week. A lesson longer than a whole week
still gets a week of its own.
"""

from __future__ import annotations

import math
from typing import Iterable, Optional

from coursebook.models import StudyPlan, WeekBucket, utc_now_iso
from coursebook.services.course_data import Lesson

MIN_MINUTES_PER_WEEK = 60
DEFAULT_LESSON_MINUTES = 20

FOCUS_TAGS: dict[str, tuple[str, ...]] = {
    "marketing": ("marketing", "lead-gen", "workflow", "productivity"),
    "ai": ("ai", "ai-agent", "rag", "embeddings", "agentic"),
    "api": ("api", "http", "google", "telegram", "whatsapp"),
    "balanced": (),
}


def normalize_hours(hours_per_week: float) -> float:
    """Hours as a finite positive float. Anything else becomes one hour."""
    try:
        hours = float(hours_per_week)
    except (TypeError, ValueError, OverflowError):
        return MIN_MINUTES_PER_WEEK / 60
    if not math.isfinite(hours * 60) or hours <= 0:
        return MIN_MINUTES_PER_WEEK / 60
    return hours


def minutes_per_week(hours_per_week: float) -> int:
    """Weekly budget in minutes, never below an hour."""
    hours = normalize_hours(hours_per_week)
    # round half up
    return max(MIN_MINUTES_PER_WEEK, math.floor(hours * 60 + 0.5))


def focus_score(tags: Iterable[str], focus: str) -> int:
    """Count the focus keywords matched by at least one tag."""
    keywords = _focus_keywords(focus)
    tags = list(tags)
    return sum(1 for kw in keywords if any(kw == t or kw in t for t in tags))


def order_lessons(lessons: Iterable[Lesson], focus: str) -> list[Lesson]:
    """Lessons sorted by focus score, highest first. Ties keep catalog order."""
    _focus_keywords(focus)
    # sorted() is stable
    return sorted(lessons, key=lambda lesson: focus_score(lesson.tags, focus), reverse=True)


def lesson_minutes(lesson: Lesson) -> int:
    return lesson.est_min or DEFAULT_LESSON_MINUTES


def pack_weeks(lessons: Iterable[Lesson], mins_per_week: int) -> list[WeekBucket]:
    """Greedy first-fit into consecutive weeks, preserving input order."""
    weeks: list[list[str]] = [[]]
    remaining = mins_per_week
    for lesson in lessons:
        est = lesson_minutes(lesson)
        if est > remaining and weeks[-1]:
            weeks.append([])
            remaining = mins_per_week
        weeks[-1].append(lesson.id)
        remaining -= est
    return [
        WeekBucket(week=i, minutes=mins_per_week, lesson_ids=tuple(ids))
        for i, ids in enumerate(weeks, start=1)
    ]


def build_plan(
    lessons: Iterable[Lesson],
    hours_per_week: float,
    focus: str = "balanced",
    now: Optional[str] = None,
) -> StudyPlan:
    """Build a study plan over the full catalog.

    Args:
        lessons: Catalog lessons in editorial order.
        hours_per_week: Weekly time budget in hours. NaN, infinite or
            non-positive values are stored as one hour.
        focus: One of balanced, marketing, api, ai.
        now: createdAt timestamp (defaults to current UTC time).

    Raises:
        ValueError: Unknown focus.
    """
    mins = minutes_per_week(hours_per_week)
    ordered = order_lessons(lessons, focus)
    return StudyPlan(
        focus=focus,
        hours_per_week=normalize_hours(hours_per_week),
        mins_per_week=mins,
        weeks=tuple(pack_weeks(ordered, mins)),
        created_at=now or utc_now_iso(),
    )


def _focus_keywords(focus: str) -> tuple[str, ...]:
    try:
        return FOCUS_TAGS[focus]
    except KeyError:
        raise ValueError(f"Unknown focus: {focus!r} (expected one of {', '.join(FOCUS_TAGS)})") from None
