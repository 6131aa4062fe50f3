"""Shared fixtures for Coursebook tests.

Provides:
- fake_db: patches supabase_client with an in-memory fake
- client: sync TestClient wired to the FastAPI app
- catalog: small in-memory course catalog, installed as the process catalog
- make_engine: ProgressEngine factory with a manual debounce timer and an
  in-memory sync client
- sample data factories for lessons and progress records
"""

import os
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from unittest.mock import patch, MagicMock

import pytest

# Set env vars before any coursebook imports
os.environ.setdefault("SUPABASE_URL", "https://fake.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_KEY", "fake-key")

VALID_KEY = "0f8c2b6e-5d1a-4c3b-9e7f-123456789abc"
OTHER_KEY = "7a1d9e20-33c4-4f6b-8d2e-abcdefabcdef"


# ---------------------------------------------------------------------------
# In-memory fake Supabase
# ---------------------------------------------------------------------------

class FakeQueryResult:
    def __init__(self, data=None, count=None):
        self.data = data or []
        self.count = count


class FakeQueryBuilder:
    """Mimics the supabase-py query builder chain (the calls kv_store needs)."""

    def __init__(self, store, table_name):
        self._store = store
        self._table = table_name
        self._filters = []
        self._limit_val = None
        self._columns = "*"
        self._upsert_data = None
        self._upsert_conflict = None

    def select(self, columns="*", count=None):
        self._columns = columns
        return self

    def upsert(self, data, on_conflict=None):
        self._upsert_data = data
        self._upsert_conflict = on_conflict
        return self

    def eq(self, col, val):
        self._filters.append((col, val))
        return self

    def limit(self, n):
        self._limit_val = n
        return self

    def _match(self, row):
        return all(row.get(col) == val for col, val in self._filters)

    def execute(self):
        table = self._store[self._table]

        if self._upsert_data is not None:
            row = dict(self._upsert_data)
            if self._upsert_conflict:
                conflict_cols = [c.strip() for c in self._upsert_conflict.split(",")]
                for existing in table:
                    if all(existing.get(c) == row.get(c) for c in conflict_cols):
                        existing.update(row)
                        return FakeQueryResult(data=[existing])
            table.append(row)
            return FakeQueryResult(data=[row])

        # SELECT
        rows = [r for r in table if self._match(r)]
        if self._limit_val is not None:
            rows = rows[:self._limit_val]
        if self._columns != "*":
            cols = [c.strip() for c in self._columns.split(",")]
            rows = [{c: r.get(c) for c in cols} for r in rows]
        return FakeQueryResult(data=rows)


class FakeDB:
    """In-memory store keyed by table name."""

    def __init__(self):
        self.store = defaultdict(list)

    def table(self, name):
        return FakeQueryBuilder(self.store, name)

    def kv(self, key):
        """Stored value for a kv_store key, or None."""
        for row in self.store["kv_store"]:
            if row.get("key") == key:
                return row.get("value")
        return None

    def clear(self):
        self.store.clear()


@pytest.fixture
def fake_db():
    """Provides a clean in-memory DB and patches supabase_client._table."""
    db = FakeDB()

    def fake_table(name):
        return FakeQueryBuilder(db.store, name)

    with patch("coursebook.supabase_client._table", side_effect=fake_table):
        with patch("coursebook.supabase_client.get_client", return_value=MagicMock()):
            yield db


@pytest.fixture
def kv_unconfigured(monkeypatch):
    """Server without Supabase credentials."""
    from coursebook import config
    monkeypatch.setattr(config, "SUPABASE_URL", "")
    monkeypatch.setattr(config, "SUPABASE_SERVICE_KEY", "")


@pytest.fixture
def client(fake_db, catalog):
    """Sync test client for FastAPI app with mocked DB."""
    from contextlib import asynccontextmanager

    from fastapi.testclient import TestClient

    from coursebook.app import create_app
    from coursebook.routers import progress

    @asynccontextmanager
    async def noop_lifespan(app):
        yield

    progress._rate_buckets.clear()
    app = create_app()
    app.router.lifespan_context = noop_lifespan

    with TestClient(app) as c:
        yield c
    progress._rate_buckets.clear()


# ---------------------------------------------------------------------------
# Course catalog
# ---------------------------------------------------------------------------

def make_lesson(**overrides):
    defaults = {
        "id": "lesson-1",
        "moduleId": "m1",
        "moduleTitle": "Module one",
        "title": "Lesson one",
        "estMin": 20,
        "objectives": [],
        "tags": [],
        "contentHtml": "<p>Body</p>",
    }
    defaults.update(overrides)
    return defaults


def make_course_data(lessons=None):
    lessons = lessons if lessons is not None else SAMPLE_LESSONS
    module_ids = []
    for lesson in lessons:
        if lesson["moduleId"] not in module_ids:
            module_ids.append(lesson["moduleId"])
    return {
        "version": "test",
        "generatedAt": "2026-01-01T00:00:00.000Z",
        "modules": [
            {
                "id": mid,
                "title": f"Module {mid}",
                "description": "",
                "lessonIds": [l["id"] for l in lessons if l["moduleId"] == mid],
            }
            for mid in module_ids
        ],
        "lessons": lessons,
    }


SAMPLE_LESSONS = [
    make_lesson(id="intro", title="Introduction", estMin=15, tags=["basics", "workflow"]),
    make_lesson(id="http-node", moduleId="m2", title="HTTP Request node", estMin=30,
                tags=["api", "http"], contentHtml="<p>Call any REST API</p>"),
    make_lesson(id="rag", moduleId="m3", title="Retrieval pipelines", estMin=45,
                tags=["rag", "embeddings"]),
    make_lesson(id="agent", moduleId="m3", title="Agents with tools", estMin=40,
                tags=["ai-agent"]),
    make_lesson(id="leads", moduleId="m4", title="Lead capture", estMin=20,
                tags=["marketing", "lead-gen"]),
]


@pytest.fixture
def catalog(monkeypatch):
    """In-memory catalog installed as the process-wide catalog."""
    from coursebook.services import course_data
    cat = course_data.CourseCatalog.from_data(make_course_data())
    monkeypatch.setattr(course_data, "_catalog", cat)
    return cat


# ---------------------------------------------------------------------------
# Progress engine
# ---------------------------------------------------------------------------

def make_record_dict(**overrides):
    defaults = {
        "completed": {},
        "notes": {},
        "plan": None,
        "startedAt": "2026-01-01T00:00:00.000Z",
        "updatedAt": "2026-01-01T00:00:00.000Z",
    }
    defaults.update(overrides)
    return defaults


class FakeClock:
    """Monotonic ISO timestamps, one second apart."""

    def __init__(self, start=datetime(2026, 3, 1, tzinfo=timezone.utc)):
        self._now = start

    def __call__(self):
        self._now += timedelta(seconds=1)
        return self._now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class ManualTimer:
    """Debounce timer driven by the test: nothing runs until fire() is awaited."""

    def __init__(self):
        self.action = None
        self.delay = None
        self.arm_count = 0
        self.is_shut_down = False

    @property
    def armed(self):
        return self.action is not None

    def arm(self, delay, action):
        self.delay = delay
        self.action = action
        self.arm_count += 1

    def cancel(self):
        self.action = None

    def shutdown(self):
        self.action = None
        self.is_shut_down = True

    async def fire(self):
        action, self.action = self.action, None
        if action is not None:
            await action()


class FakeSyncClient:
    """In-memory stand-in for RemoteSyncClient that records every call."""

    def __init__(self, available=True, remote=None):
        self.available = available
        self.remote = dict(remote or {})
        self.fetch_calls = []
        self.pushes = []
        self.fetch_error = None
        self.push_error = None
        self.during_push = None

    async def check_availability(self):
        return self.available

    async def fetch_remote(self, key):
        self.fetch_calls.append(key)
        if self.fetch_error is not None:
            raise self.fetch_error
        return self.remote.get(key)

    async def push_remote(self, key, record):
        if self.during_push is not None:
            self.during_push()
        if self.push_error is not None:
            raise self.push_error
        data = record.to_dict()
        self.pushes.append((key, data))
        self.remote[key] = data


@pytest.fixture
def sync_client():
    return FakeSyncClient()


@pytest.fixture
def make_engine(tmp_path, catalog, sync_client):
    """Build an unbooted engine; the key and local cache are written first."""
    from coursebook.services.local_store import LocalStore
    from coursebook.services.progress_engine import ProgressEngine

    def _make(key=VALID_KEY, local=None, client=None):
        store = LocalStore(tmp_path / "state")
        if key is not None:
            store.save_key(key)
        if local is not None:
            store.save_local(local)
        return ProgressEngine(
            store,
            client or sync_client,
            ManualTimer(),
            catalog=catalog,
            debounce_seconds=0.7,
            clock=FakeClock(),
        )

    return _make
