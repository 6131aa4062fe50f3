"""Tests for the coursebook command line."""

import json

import httpx
import pytest

from coursebook import cli
from coursebook.services.local_store import LocalStore
from coursebook.services.sync_client import RemoteSyncClient
from coursebook.tests.conftest import OTHER_KEY, VALID_KEY, make_course_data


@pytest.fixture
def course_file(tmp_path):
    path = tmp_path / "course_data.json"
    path.write_text(json.dumps(make_course_data()), encoding="utf-8")
    return path


@pytest.fixture
def offline(monkeypatch):
    """Sync server that reports no key-value store."""
    def factory(base_url):
        transport = httpx.MockTransport(
            lambda request: httpx.Response(200, json={"ok": True, "kvConfigured": False})
        )
        return RemoteSyncClient(base_url, transport=transport)
    monkeypatch.setattr(cli, "RemoteSyncClient", factory)


@pytest.fixture
def online(monkeypatch, fake_db, catalog):
    """Sync server running in-process against the fake KV store."""
    from coursebook.app import create_app
    from coursebook.routers import progress

    progress._rate_buckets.clear()
    app = create_app()

    def factory(base_url):
        return RemoteSyncClient("http://testserver", transport=httpx.ASGITransport(app=app))
    monkeypatch.setattr(cli, "RemoteSyncClient", factory)
    return fake_db


@pytest.fixture
def run_cli(tmp_path, course_file):
    state_dir = tmp_path / "state"

    def _run(*args):
        return cli.main(["--state-dir", str(state_dir), "--course-data", str(course_file), *args])

    _run.store = LocalStore(state_dir)
    return _run


class TestOfflineCommands:
    def test_done_and_status(self, offline, run_cli, capsys):
        assert run_cli("done", "intro") == 0
        assert run_cli("status") == 0
        out = capsys.readouterr().out
        assert "Completed: intro" in out
        assert "20% complete (1/5 lessons)" in out
        assert "local only" in out

    def test_undo(self, offline, run_cli):
        run_cli("done", "intro")
        run_cli("undo", "intro")
        assert run_cli.store.load_local().completed == {}

    def test_unknown_lesson_warns(self, offline, run_cli, capsys):
        run_cli("done", "ghost")
        assert "not in the course catalog" in capsys.readouterr().out

    def test_note(self, offline, run_cli):
        run_cli("note", "rag", "overlap 50 tokens")
        assert run_cli.store.load_local().notes == {"rag": "overlap 50 tokens"}

    def test_lessons_incomplete(self, offline, run_cli, capsys):
        run_cli("done", "intro")
        capsys.readouterr()
        run_cli("lessons", "--incomplete", "--focus", "ai")
        out = capsys.readouterr().out
        assert "rag" in out
        assert "intro" not in out
        assert "2 lesson(s)" in out

    def test_plan_and_show_plan(self, offline, run_cli, capsys):
        assert run_cli("plan", "--hours", "1", "--focus", "ai") == 0
        out = capsys.readouterr().out
        assert "Plan saved: ai, 60 min/week" in out
        assert "Week 1" in out
        assert run_cli.store.load_local().plan.focus == "ai"
        assert run_cli("show-plan") == 0

    def test_plan_with_infinite_hours(self, offline, run_cli, capsys):
        assert run_cli("plan", "--hours", "inf", "--focus", "ai") == 0
        assert "Plan saved: ai, 60 min/week" in capsys.readouterr().out
        plan = run_cli.store.load_local().plan
        assert plan.hours_per_week == 1.0
        assert "Infinity" not in run_cli.store.progress_path.read_text(encoding="utf-8")

    def test_done_reports_plan_week(self, offline, run_cli, capsys):
        run_cli("plan", "--hours", "1", "--focus", "ai")
        week = run_cli.store.load_local().plan.week_of("leads")
        capsys.readouterr()
        assert run_cli("done", "leads") == 0
        assert f"Completed: leads (plan week {week})" in capsys.readouterr().out

    def test_done_off_plan_lesson(self, offline, run_cli, capsys):
        run_cli("plan", "--hours", "1", "--focus", "ai")
        capsys.readouterr()
        run_cli("done", "ghost")
        out = capsys.readouterr().out
        assert "Completed: ghost\n" in out
        assert "plan week" not in out

    def test_show_plan_without_plan(self, offline, run_cli, capsys):
        assert run_cli("show-plan") == 1
        assert "No study plan yet" in capsys.readouterr().out

    def test_export_import(self, offline, run_cli, tmp_path):
        run_cli("done", "rag")
        backup = tmp_path / "backup.json"
        assert run_cli("export", "--output", str(backup)) == 0
        run_cli("undo", "rag")
        assert run_cli("import", str(backup)) == 0
        assert run_cli.store.load_local().completed == {"rag": True}

    def test_import_rejects_non_object(self, offline, run_cli, tmp_path, capsys):
        bad = tmp_path / "bad.json"
        bad.write_text("[1, 2]", encoding="utf-8")
        assert run_cli("import", str(bad)) == 1
        assert "Import failed" in capsys.readouterr().out

    def test_import_missing_file(self, offline, run_cli, tmp_path):
        assert run_cli("import", str(tmp_path / "absent.json")) == 1

    def test_key_is_stable(self, offline, run_cli, capsys):
        run_cli("key")
        first = capsys.readouterr().out.strip()
        run_cli("key")
        assert capsys.readouterr().out.strip() == first

    def test_join_rejects_short_key(self, offline, run_cli):
        run_cli("key")
        before = run_cli.store.load_key()
        assert run_cli("join", "short") == 1
        assert run_cli.store.load_key() == before

    def test_new_key(self, offline, run_cli, capsys):
        run_cli("done", "intro")
        old = run_cli.store.load_key()
        assert run_cli("new-key") == 0
        assert run_cli.store.load_key() != old
        assert run_cli.store.load_local().completed == {}
        assert old in capsys.readouterr().out


class TestOnlineCommands:
    """Commands push their change before exiting."""

    def test_done_is_pushed(self, online, run_cli):
        run_cli.store.save_key(VALID_KEY)
        assert run_cli("done", "intro") == 0
        stored = online.kv(f"progress:{VALID_KEY}")
        assert stored["completed"] == {"intro": True}

    def test_join_loads_other_device(self, online, run_cli, capsys):
        online.store["kv_store"].append({
            "key": f"progress:{OTHER_KEY}",
            "value": {"completed": {"agent": True}, "notes": {}, "plan": None,
                      "startedAt": "2026-01-01T00:00:00.000Z"},
        })
        assert run_cli("join", OTHER_KEY) == 0
        assert run_cli.store.load_key() == OTHER_KEY
        assert run_cli.store.load_local().completed == {"agent": True}
        assert "Sync: loaded" in capsys.readouterr().out
