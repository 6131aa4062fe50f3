"""Progress record, study plan and sync key helpers.

A ProgressRecord is the single synchronized unit of state per sync key. It is
an immutable value: every mutation returns a new record, so a snapshot handed
to an in-flight push never changes underneath it. Lessons are referenced only
by id, which keeps a record valid after the catalog drops a lesson.

Serialized form (local cache, wire, export) uses camelCase keys:

    {"completed": {"lesson-id": true}, "notes": {"lesson-id": "..."},
     "plan": null | {...}, "startedAt": "...", "updatedAt": "..."}
"""

from __future__ import annotations

import json
import logging
import math
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Optional

from coursebook.config import SYNC_KEY_MAX_LEN, SYNC_KEY_MIN_LEN
from coursebook.errors import ParseError

logger = logging.getLogger(__name__)

FOCUS_VALUES = ("balanced", "marketing", "api", "ai")


def utc_now_iso() -> str:
    """Current UTC time as 2026-01-01T12:00:00.000Z."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def normalize_sync_key(raw: Any) -> Optional[str]:
    """Return the trimmed key if its length is within bounds, else None."""
    if not isinstance(raw, str):
        return None
    key = raw.strip()
    if len(key) < SYNC_KEY_MIN_LEN or len(key) > SYNC_KEY_MAX_LEN:
        return None
    return key


def generate_sync_key() -> str:
    return str(uuid.uuid4())


def serialized_size(data: Any) -> int:
    """Length of the compact JSON encoding, in characters.

    Raises ValueError for NaN or Infinity, which JSON cannot represent.
    """
    return len(json.dumps(data, separators=(",", ":"), ensure_ascii=False, allow_nan=False))


def _positive_hours(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ParseError(f"hoursPerWeek must be a number, got {value!r}")
    if not math.isfinite(value) or value <= 0:
        raise ParseError(f"hoursPerWeek must be finite and positive, got {value!r}")
    return value


@dataclass(frozen=True)
class WeekBucket:
    week: int
    minutes: int
    lesson_ids: tuple[str, ...] = ()

    def to_dict(self) -> dict:
        return {"week": self.week, "minutes": self.minutes, "lessonIds": list(self.lesson_ids)}

    @classmethod
    def from_dict(cls, data: Any) -> WeekBucket:
        if not isinstance(data, dict):
            raise ParseError("week bucket must be an object")
        try:
            return cls(
                week=int(data["week"]),
                minutes=int(data["minutes"]),
                lesson_ids=tuple(str(i) for i in data.get("lessonIds") or []),
            )
        except (KeyError, TypeError, ValueError, OverflowError) as e:
            raise ParseError(f"invalid week bucket: {e}") from e


@dataclass(frozen=True)
class StudyPlan:
    focus: str
    hours_per_week: float
    mins_per_week: int
    weeks: tuple[WeekBucket, ...]
    created_at: str

    @property
    def lesson_ids(self) -> list[str]:
        """All scheduled lesson ids in week order."""
        return [lid for w in self.weeks for lid in w.lesson_ids]

    def week_of(self, lesson_id: str) -> Optional[int]:
        for w in self.weeks:
            if lesson_id in w.lesson_ids:
                return w.week
        return None

    def to_dict(self) -> dict:
        return {
            "focus": self.focus,
            "hoursPerWeek": self.hours_per_week,
            "minsPerWeek": self.mins_per_week,
            "weeks": [w.to_dict() for w in self.weeks],
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Any) -> StudyPlan:
        if not isinstance(data, dict):
            raise ParseError("plan must be an object")
        focus = data.get("focus")
        if focus not in FOCUS_VALUES:
            raise ParseError(f"unknown plan focus: {focus!r}")
        try:
            return cls(
                focus=focus,
                hours_per_week=_positive_hours(data["hoursPerWeek"]),
                mins_per_week=int(data["minsPerWeek"]),
                weeks=tuple(WeekBucket.from_dict(w) for w in data.get("weeks") or []),
                created_at=str(data.get("createdAt") or ""),
            )
        except (KeyError, TypeError, ValueError, OverflowError) as e:
            raise ParseError(f"invalid plan: {e}") from e


@dataclass(frozen=True)
class ProgressRecord:
    # lesson id -> True; un-completing removes the key, False is never stored
    completed: dict[str, bool] = field(default_factory=dict)
    notes: dict[str, str] = field(default_factory=dict)
    plan: Optional[StudyPlan] = None
    started_at: str = field(default_factory=utc_now_iso)
    updated_at: Optional[str] = None

    @classmethod
    def default(cls, now: Optional[str] = None) -> ProgressRecord:
        now = now or utc_now_iso()
        return cls(started_at=now, updated_at=now)

    def is_completed(self, lesson_id: str) -> bool:
        return lesson_id in self.completed

    def with_completed(self, lesson_id: str, done: bool, now: str) -> ProgressRecord:
        completed = dict(self.completed)
        if done:
            completed[lesson_id] = True
        else:
            completed.pop(lesson_id, None)
        return replace(self, completed=completed, updated_at=now)

    def with_note(self, lesson_id: str, text: str, now: str) -> ProgressRecord:
        notes = dict(self.notes)
        notes[lesson_id] = text
        return replace(self, notes=notes, updated_at=now)

    def with_plan(self, plan: Optional[StudyPlan], now: str) -> ProgressRecord:
        return replace(self, plan=plan, updated_at=now)

    def touched(self, now: str) -> ProgressRecord:
        return replace(self, updated_at=now)

    def to_dict(self) -> dict:
        data = {
            "completed": dict(self.completed),
            "notes": dict(self.notes),
            "plan": self.plan.to_dict() if self.plan else None,
            "startedAt": self.started_at,
        }
        if self.updated_at is not None:
            data["updatedAt"] = self.updated_at
        return data

    def to_json(self, indent: Optional[int] = None) -> str:
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)

    @classmethod
    def from_dict(cls, data: Any, now: Optional[str] = None) -> ProgressRecord:
        """Merge a serialized record over a fresh default.

        Partial input is valid: absent or ill-typed fields keep their default.
        Raises ParseError if data is not an object.
        """
        if not isinstance(data, dict):
            raise ParseError("progress record must be an object")
        base = cls.default(now)

        completed = base.completed
        raw_completed = data.get("completed")
        if isinstance(raw_completed, dict):
            completed = {str(k): True for k, v in raw_completed.items() if v}

        notes = base.notes
        raw_notes = data.get("notes")
        if isinstance(raw_notes, dict):
            notes = {str(k): v for k, v in raw_notes.items() if isinstance(v, str)}

        plan = None
        if data.get("plan") is not None:
            try:
                plan = StudyPlan.from_dict(data["plan"])
            except ParseError as e:
                logger.debug("Dropping malformed plan: %s", e)

        started_at = data.get("startedAt")
        updated_at = data.get("updatedAt")
        return cls(
            completed=completed,
            notes=notes,
            plan=plan,
            started_at=started_at if isinstance(started_at, str) else base.started_at,
            updated_at=updated_at if isinstance(updated_at, str) else base.updated_at,
        )

    @classmethod
    def from_json(cls, text: str, now: Optional[str] = None) -> ProgressRecord:
        try:
            data = json.loads(text)
        except (TypeError, ValueError) as e:
            raise ParseError(f"invalid JSON: {e}") from e
        return cls.from_dict(data, now)
