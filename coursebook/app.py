"""FastAPI application factory."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from coursebook import supabase_client as db
from coursebook.models import utc_now_iso
from coursebook.routers import course_api, progress
from coursebook.services.course_data import get_course_catalog

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    catalog = get_course_catalog()
    logger.info("Course catalog ready: %d lessons", len(catalog.lessons))
    if not db.kv_available():
        logger.warning("Supabase credentials not set, progress sync disabled (501)")

    yield


def create_app() -> FastAPI:
    app = FastAPI(
        title="Coursebook",
        description=(
            "Self-hosted course viewer backend. Anonymous progress sync keyed "
            "by an opaque x-sync-key, plus the read-only course catalog."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        return JSONResponse({"error": exc.detail}, status_code=exc.status_code)

    @app.get("/health", include_in_schema=False)
    async def health():
        return {"ok": True, "kvConfigured": db.kv_available(), "now": utc_now_iso()}

    app.include_router(progress.router)
    app.include_router(course_api.router)

    return app
