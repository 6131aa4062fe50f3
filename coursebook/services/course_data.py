"""Course catalog: singleton loader for the static course dataset.

Loads course_data.json ({version, generatedAt, modules, lessons}) once and
serves lesson lookups and filtered listings. The catalog is read-only input;
progress records refer to lessons by id only.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional

from coursebook.config import COURSE_DATA_PATH

logger = logging.getLogger(__name__)

# Listing filters. These select lessons; the plan focus table only reorders.
_FILTER_TAGS = {
    "marketing": {"marketing", "lead-gen", "workflow", "reporting", "productivity", "content"},
    "ai": {"rag", "embeddings", "ai-agent", "agentic"},
    "api": {"api", "http", "google", "whatsapp", "telegram"},
}


@dataclass(frozen=True)
class Lesson:
    id: str
    title: str = ""
    module_id: str = ""
    module_title: str = ""
    est_min: Optional[int] = None
    objectives: tuple[str, ...] = ()
    tags: tuple[str, ...] = ()
    content_html: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> Lesson:
        return cls(
            id=str(data["id"]),
            title=data.get("title", ""),
            module_id=data.get("moduleId", ""),
            module_title=data.get("moduleTitle", ""),
            est_min=data.get("estMin"),
            objectives=tuple(data.get("objectives") or ()),
            tags=tuple(data.get("tags") or ()),
            content_html=data.get("contentHtml", ""),
        )

    def summary(self) -> dict:
        """Listing view without the lesson body."""
        return {
            "id": self.id,
            "title": self.title,
            "moduleId": self.module_id,
            "moduleTitle": self.module_title,
            "estMin": self.est_min,
            "tags": list(self.tags),
        }

    def to_dict(self) -> dict:
        data = self.summary()
        data["objectives"] = list(self.objectives)
        data["contentHtml"] = self.content_html
        return data


@dataclass(frozen=True)
class Module:
    id: str
    title: str
    description: str = ""
    lesson_ids: tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "lessonIds": list(self.lesson_ids),
        }


def matches_filter(lesson: Lesson, name: str) -> bool:
    """True if the lesson belongs to the named listing filter."""
    if name == "ai" and any("ai" in t for t in lesson.tags):
        return True
    wanted = _FILTER_TAGS.get(name)
    if wanted is None:
        raise ValueError(f"Unknown filter: {name}")
    return any(t in wanted for t in lesson.tags)


class CourseCatalog:
    """Course dataset loaded from a static JSON file."""

    def __init__(self, path: Path | None = None) -> None:
        self.path = path or COURSE_DATA_PATH
        self.version = ""
        self.generated_at = ""
        self._modules: list[Module] = []
        self._lessons: list[Lesson] = []
        self._by_id: dict[str, Lesson] = {}
        self._loaded = False

    @classmethod
    def from_data(cls, data: dict) -> CourseCatalog:
        catalog = cls()
        catalog._populate(data)
        catalog._loaded = True
        return catalog

    def load(self) -> None:
        """Load the catalog from disk. Safe to call multiple times (no-ops after first)."""
        if self._loaded:
            return
        if self.path.exists():
            try:
                self._populate(json.loads(self.path.read_text(encoding="utf-8")))
                logger.info("Loaded %d lessons in %d modules from %s",
                            len(self._lessons), len(self._modules), self.path)
            except (json.JSONDecodeError, KeyError, TypeError) as e:
                logger.error("Course data at %s is malformed: %s", self.path, e)
        else:
            logger.warning("Course data not found at %s", self.path)
        self._loaded = True

    def _populate(self, data: dict) -> None:
        self.version = str(data.get("version", ""))
        self.generated_at = str(data.get("generatedAt", ""))
        self._lessons = [Lesson.from_dict(d) for d in data.get("lessons") or []]
        self._by_id = {lesson.id: lesson for lesson in self._lessons}
        self._modules = [
            Module(
                id=str(m["id"]),
                title=m.get("title", ""),
                description=m.get("description") or "",
                lesson_ids=tuple(m.get("lessonIds") or ()),
            )
            for m in data.get("modules") or []
        ]

    @property
    def lessons(self) -> list[Lesson]:
        self.load()
        return self._lessons

    @property
    def modules(self) -> list[Module]:
        self.load()
        return self._modules

    def get_lesson(self, lesson_id: str) -> Optional[Lesson]:
        self.load()
        return self._by_id.get(lesson_id)

    def filter_lessons(
        self,
        q: str | None = None,
        filters: Iterable[str] = (),
        exclude_ids: Iterable[str] = (),
    ) -> list[Lesson]:
        """Lessons matching a text search and every named filter, in catalog order."""
        needle = (q or "").strip().lower()
        filters = list(filters)
        excluded = set(exclude_ids)
        results = []
        for lesson in self.lessons:
            if lesson.id in excluded:
                continue
            if needle:
                text = " ".join([lesson.title, " ".join(lesson.tags), lesson.content_html]).lower()
                if needle not in text:
                    continue
            if not all(matches_filter(lesson, f) for f in filters):
                continue
            results.append(lesson)
        return results


_catalog: CourseCatalog | None = None


def get_course_catalog() -> CourseCatalog:
    """Return the process-wide catalog, loading it on first use."""
    global _catalog
    if _catalog is None:
        _catalog = CourseCatalog()
        _catalog.load()
    return _catalog
