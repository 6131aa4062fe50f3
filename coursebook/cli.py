"""Coursebook command line: track course progress from a terminal.

Usage:
    python -m coursebook status
    python -m coursebook lessons --focus ai --incomplete
    python -m coursebook done webhook-basics
    python -m coursebook note webhook-basics "retry with a Wait node"
    python -m coursebook plan --hours 3 --focus marketing
    python -m coursebook export --output backup.json
    python -m coursebook import backup.json
    python -m coursebook join 3f0c9a4e-...   # use the key from another device
    python -m coursebook new-key

Every command boots the progress engine against the sync server, applies its
change and flushes the pending write before exiting.
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from coursebook.config import LOCAL_STATE_DIR, LOG_LEVEL, SYNC_SERVER_URL
from coursebook.errors import ImportRecordError, Unauthorized
from coursebook.models import FOCUS_VALUES
from coursebook.scheduler import SchedulerTimer
from coursebook.services.course_data import CourseCatalog, get_course_catalog
from coursebook.services.local_store import LocalStore
from coursebook.services.progress_engine import ProgressEngine
from coursebook.services.stats import plan_progress
from coursebook.services.sync_client import RemoteSyncClient

logger = logging.getLogger(__name__)

_PLAN_PREVIEW_WEEKS = 8
_PLAN_PREVIEW_LESSONS = 6


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

def cmd_status(engine: ProgressEngine, catalog: CourseCatalog, args) -> int:
    stats = engine.stats()
    print(f"{stats['percent']}% complete ({stats['done']}/{stats['total']} lessons)")
    print(f"Sync: {engine.status}")
    plan = engine.record.plan
    if plan:
        print(f"Plan: {plan.focus}, {plan.hours_per_week} h/week, {len(plan.weeks)} weeks")
    return 0


def cmd_lessons(engine: ProgressEngine, catalog: CourseCatalog, args) -> int:
    exclude = engine.record.completed if args.incomplete else ()
    lessons = catalog.filter_lessons(q=args.q, filters=args.focus or [], exclude_ids=exclude)
    for lesson in lessons:
        mark = "x" if engine.record.is_completed(lesson.id) else " "
        tags = ", ".join(lesson.tags[:3])
        print(f"[{mark}] {lesson.id:<32} {lesson.title} ({lesson.est_min or '?'} min) {tags}")
    print(f"\n{len(lessons)} lesson(s)")
    return 0


def cmd_done(engine: ProgressEngine, catalog: CourseCatalog, args) -> int:
    _warn_unknown(catalog, args.lesson_id)
    record = engine.mark_complete(args.lesson_id, True)
    week = record.plan.week_of(args.lesson_id) if record.plan else None
    if week is None:
        print(f"Completed: {args.lesson_id}")
    else:
        print(f"Completed: {args.lesson_id} (plan week {week})")
    return 0


def cmd_undo(engine: ProgressEngine, catalog: CourseCatalog, args) -> int:
    _warn_unknown(catalog, args.lesson_id)
    engine.mark_complete(args.lesson_id, False)
    print(f"Not completed: {args.lesson_id}")
    return 0


def cmd_note(engine: ProgressEngine, catalog: CourseCatalog, args) -> int:
    _warn_unknown(catalog, args.lesson_id)
    engine.set_note(args.lesson_id, args.text)
    print(f"Note saved for {args.lesson_id}")
    return 0


def cmd_plan(engine: ProgressEngine, catalog: CourseCatalog, args) -> int:
    plan = engine.set_plan(args.hours, args.focus)
    print(f"Plan saved: {plan.focus}, {plan.mins_per_week} min/week, {len(plan.weeks)} weeks")
    return cmd_show_plan(engine, catalog, args)


def cmd_show_plan(engine: ProgressEngine, catalog: CourseCatalog, args) -> int:
    plan = engine.record.plan
    if plan is None:
        print("No study plan yet. Create one with: coursebook plan --hours 3 --focus balanced")
        return 1

    weeks = plan_progress(engine.record)
    limit = len(weeks) if getattr(args, "all", False) else _PLAN_PREVIEW_WEEKS
    for bucket, summary in zip(plan.weeks[:limit], weeks[:limit]):
        print(f"\nWeek {bucket.week}  ({summary['done']}/{summary['lessons']} done)")
        for lesson_id in bucket.lesson_ids[:_PLAN_PREVIEW_LESSONS]:
            lesson = catalog.get_lesson(lesson_id)
            if lesson is None:
                continue
            mark = "x" if engine.record.is_completed(lesson_id) else " "
            print(f"  [{mark}] {lesson.title} ({lesson.est_min or '?'} min)")
        extra = len(bucket.lesson_ids) - _PLAN_PREVIEW_LESSONS
        if extra > 0:
            print(f"  ... +{extra} lessons")
    if len(weeks) > limit:
        print(f"\n({len(weeks) - limit} more weeks, use --all to list them)")
    return 0


def cmd_export(engine: ProgressEngine, catalog: CourseCatalog, args) -> int:
    text = engine.export_record()
    if args.output:
        Path(args.output).write_text(text + "\n", encoding="utf-8")
        print(f"Exported to {args.output}")
    else:
        print(text)
    return 0


def cmd_import(engine: ProgressEngine, catalog: CourseCatalog, args) -> int:
    if args.file == "-":
        raw = sys.stdin.read()
    else:
        try:
            raw = Path(args.file).read_text(encoding="utf-8")
        except OSError as e:
            print(f"ERROR: Could not read {args.file}: {e}")
            return 1
    try:
        engine.import_record(raw)
    except ImportRecordError as e:
        print(f"ERROR: Import failed: {e}")
        return 1
    print("Progress imported")
    return 0


def cmd_key(engine: ProgressEngine, catalog: CourseCatalog, args) -> int:
    print(engine.sync_key)
    return 0


async def cmd_join(engine: ProgressEngine, catalog: CourseCatalog, args) -> int:
    try:
        await engine.join(args.key)
    except Unauthorized as e:
        print(f"ERROR: {e}")
        return 1
    print(f"Linked to sync key. Sync: {engine.status}")
    return 0


async def cmd_new_key(engine: ProgressEngine, catalog: CourseCatalog, args) -> int:
    old_key = engine.sync_key
    await engine.reset_identity()
    print(f"New sync key: {engine.sync_key}")
    print(f"The old key still works: {old_key}")
    return 0


def _warn_unknown(catalog: CourseCatalog, lesson_id: str) -> None:
    if catalog.get_lesson(lesson_id) is None:
        print(f"WARNING: '{lesson_id}' is not in the course catalog")


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="coursebook", description="Course progress tracker")
    parser.add_argument("--server", default=SYNC_SERVER_URL, help="Sync server base URL")
    parser.add_argument("--state-dir", default=str(LOCAL_STATE_DIR), help="Local state directory")
    parser.add_argument("--course-data", help="Path to course_data.json (default: COURSE_DATA_PATH)")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("status", help="Show completion and sync status")
    p.set_defaults(func=cmd_status)

    p = sub.add_parser("lessons", help="List lessons")
    p.add_argument("--q", help="Text search")
    p.add_argument("--focus", action="append", choices=["marketing", "ai", "api"],
                   help="Topic filter, repeatable")
    p.add_argument("--incomplete", action="store_true", help="Only lessons not yet completed")
    p.set_defaults(func=cmd_lessons)

    for name, func, help_text in [
        ("done", cmd_done, "Mark a lesson completed"),
        ("undo", cmd_undo, "Mark a lesson not completed"),
    ]:
        p = sub.add_parser(name, help=help_text)
        p.add_argument("lesson_id")
        p.set_defaults(func=func)

    p = sub.add_parser("note", help="Set the note for a lesson")
    p.add_argument("lesson_id")
    p.add_argument("text")
    p.set_defaults(func=cmd_note)

    p = sub.add_parser("plan", help="Build and save a study plan")
    p.add_argument("--hours", type=float, default=3.0, help="Hours per week (default 3)")
    p.add_argument("--focus", choices=FOCUS_VALUES, default="balanced")
    p.add_argument("--all", action="store_true", help="List every week")
    p.set_defaults(func=cmd_plan)

    p = sub.add_parser("show-plan", help="Show the saved study plan")
    p.add_argument("--all", action="store_true", help="List every week")
    p.set_defaults(func=cmd_show_plan)

    p = sub.add_parser("export", help="Print progress as JSON")
    p.add_argument("--output", help="Write to a file instead of stdout")
    p.set_defaults(func=cmd_export)

    p = sub.add_parser("import", help="Replace progress with an exported JSON file")
    p.add_argument("file", help="JSON file, or - for stdin")
    p.set_defaults(func=cmd_import)

    p = sub.add_parser("key", help="Print the sync key for this device")
    p.set_defaults(func=cmd_key)

    p = sub.add_parser("join", help="Use the sync key from another device")
    p.add_argument("key")
    p.set_defaults(func=cmd_join)

    p = sub.add_parser("new-key", help="Start a new progress profile under a new key")
    p.set_defaults(func=cmd_new_key)

    return parser


async def run(args) -> int:
    catalog = CourseCatalog(Path(args.course_data)) if args.course_data else get_course_catalog()
    async with RemoteSyncClient(args.server) as client:
        engine = ProgressEngine(LocalStore(Path(args.state_dir)), client, SchedulerTimer(), catalog=catalog)
        await engine.boot()
        try:
            result = args.func(engine, catalog, args)
            if asyncio.iscoroutine(result):
                result = await result
        finally:
            await engine.close()
    if engine.last_error:
        logger.warning("Last sync error: %s", engine.last_error)
    return result


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=LOG_LEVEL,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    return asyncio.run(run(args))
