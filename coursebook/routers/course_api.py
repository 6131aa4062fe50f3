"""Course API: read-only endpoints over the static course catalog."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, HTTPException, Query

from coursebook.services.course_data import get_course_catalog

router = APIRouter(prefix="/api/course", tags=["Course"])

_FILTERS = ("marketing", "ai", "api")


@router.get("", summary="Course metadata and modules")
async def get_course():
    catalog = get_course_catalog()
    return {
        "version": catalog.version,
        "generatedAt": catalog.generated_at,
        "lessonCount": len(catalog.lessons),
        "modules": [m.to_dict() for m in catalog.modules],
    }


@router.get("/lessons", summary="List and filter lessons")
async def list_lessons(
    q: Optional[str] = Query(None, description="Text search across title, tags and content"),
    focus: Optional[list[str]] = Query(None, description="'marketing', 'ai' or 'api', repeatable"),
    limit: int = Query(50, ge=1, le=500, description="Results per page (max 500)"),
    offset: int = Query(0, ge=0, description="Pagination offset"),
):
    filters = focus or []
    unknown = [f for f in filters if f not in _FILTERS]
    if unknown:
        raise HTTPException(status_code=400, detail=f"Unknown focus filter: {', '.join(unknown)}")

    results = get_course_catalog().filter_lessons(q=q, filters=filters)
    total = len(results)
    page = results[offset:offset + limit]

    next_url = None
    if offset + limit < total:
        next_url = f"/api/course/lessons?offset={offset + limit}&limit={limit}"

    return {
        "count": total,
        "limit": limit,
        "offset": offset,
        "next": next_url,
        "results": [lesson.summary() for lesson in page],
    }


@router.get("/lessons/{lesson_id}", summary="Full lesson")
async def get_lesson(lesson_id: str):
    lesson = get_course_catalog().get_lesson(lesson_id)
    if lesson is None:
        raise HTTPException(status_code=404, detail=f"Lesson '{lesson_id}' not found")
    return lesson.to_dict()
