"""Progress aggregation for the status bar."""

import math
from typing import Iterable

from coursebook.models import ProgressRecord
from coursebook.services.course_data import Lesson


def completion_stats(record: ProgressRecord, lessons: Iterable[Lesson]) -> dict:
    """Return done/total/percent over the catalog.

    Completed ids the catalog no longer has are ignored.
    """
    ids = [lesson.id for lesson in lessons]
    done = sum(1 for lid in ids if record.is_completed(lid))
    total = len(ids)
    percent = math.floor(done / total * 100 + 0.5) if total else 0
    return {"done": done, "total": total, "percent": percent}


def plan_progress(record: ProgressRecord) -> list[dict]:
    """Per-week completion for the active plan, empty when there is none."""
    if record.plan is None:
        return []
    weeks = []
    for w in record.plan.weeks:
        done = sum(1 for lid in w.lesson_ids if record.is_completed(lid))
        weeks.append({
            "week": w.week,
            "minutes": w.minutes,
            "lessons": len(w.lesson_ids),
            "done": done,
        })
    return weeks
