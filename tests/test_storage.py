"""Session database and plan file loading tests."""

import json
from pathlib import Path

import pytest

from conftest import SessionDb, now_ms
from ocwatch.storage import (
    StorageError,
    calculate_plan_progress,
    check_database,
    load_plan_progress,
    load_snapshot,
    parse_boulder,
    session_status,
)
from ocwatch.storage.paths import db_path, plan_path

MINUTE_MS = 60 * 1000


def write_boulder(project_path: Path, data: dict[str, object]) -> Path:
    path = plan_path(project_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


class TestBoulder:
    def test_missing_file(self, project_path: Path) -> None:
        assert parse_boulder(project_path) is None
        assert load_plan_progress(project_path) is None

    def test_corrupt_file(self, project_path: Path) -> None:
        path = plan_path(project_path)
        path.parent.mkdir()
        path.write_text("{not json", encoding="utf-8")

        assert parse_boulder(project_path) is None

    def test_snake_case_keys(self, project_path: Path) -> None:
        write_boulder(
            project_path,
            {
                "active_plan": "/plans/auth.md",
                "session_ids": ["ses_1", "ses_2"],
                "status": "in_progress",
                "started_at": "2026-03-01T12:00:00Z",
                "plan_name": "auth",
            },
        )

        boulder = parse_boulder(project_path)

        assert boulder is not None
        assert boulder.active_plan == Path("/plans/auth.md")
        assert boulder.session_ids == ["ses_1", "ses_2"]
        assert boulder.status == "in_progress"
        assert boulder.started_at is not None
        assert boulder.started_at.year == 2026
        assert boulder.plan_name == "auth"

    def test_camel_case_fallback(self, project_path: Path) -> None:
        write_boulder(
            project_path,
            {"activePlan": "/plans/x.md", "sessionIDs": ["ses_1"], "planName": "x"},
        )

        boulder = parse_boulder(project_path)

        assert boulder is not None
        assert boulder.active_plan == Path("/plans/x.md")
        assert boulder.session_ids == ["ses_1"]
        assert boulder.plan_name == "x"

    def test_relative_plan_resolves_against_project(self, project_path: Path) -> None:
        write_boulder(project_path, {"active_plan": ".sisyphus/plans/p.md"})

        boulder = parse_boulder(project_path)

        assert boulder is not None
        assert boulder.active_plan == project_path / ".sisyphus/plans/p.md"


class TestPlanProgress:
    def test_counts_checkboxes(self, tmp_path: Path) -> None:
        plan = tmp_path / "plan.md"
        plan.write_text(
            "# Plan\n"
            "- [x] Write schema\n"
            "- [X] Add migration\n"
            "- [ ] Wire endpoint\n"
            "Some prose - [ ] inline\n"
            "  - [ ]   Indented task\n",
            encoding="utf-8",
        )

        progress = calculate_plan_progress(plan, "auth")

        assert progress is not None
        assert progress.total == 5
        assert progress.completed == 2
        assert progress.progress == pytest.approx(40.0)
        assert progress.plan_name == "auth"
        assert progress.tasks[0].description == "Write schema"
        assert progress.tasks[4].description == "Indented task"
        assert [t.completed for t in progress.tasks] == [True, True, False, False, False]

    def test_no_checkboxes(self, tmp_path: Path) -> None:
        plan = tmp_path / "plan.md"
        plan.write_text("nothing to do\n", encoding="utf-8")

        progress = calculate_plan_progress(plan)

        assert progress is not None
        assert progress.total == 0
        assert progress.progress == 0.0
        assert progress.plan_name is None

    def test_missing_plan_file(self, tmp_path: Path) -> None:
        assert calculate_plan_progress(tmp_path / "gone.md") is None

    def test_load_through_boulder(self, project_path: Path) -> None:
        plan = project_path / "plan.md"
        plan.write_text("- [x] a\n- [ ] b\n", encoding="utf-8")
        write_boulder(project_path, {"active_plan": "plan.md", "plan_name": "demo"})

        progress = load_plan_progress(project_path)

        assert progress is not None
        assert progress.completed == 1
        assert progress.total == 2
        assert progress.plan_name == "demo"

    def test_boulder_metadata_exposed(self, project_path: Path) -> None:
        (project_path / "plan.md").write_text("- [ ] a\n", encoding="utf-8")
        write_boulder(
            project_path,
            {
                "active_plan": "plan.md",
                "session_ids": ["ses_1"],
                "status": "in_progress",
                "started_at": "2026-03-01T12:00:00Z",
            },
        )

        progress = load_plan_progress(project_path)

        assert progress is not None
        assert progress.status == "in_progress"
        assert progress.session_ids == ["ses_1"]
        assert progress.started_at is not None
        data = progress.model_dump(mode="json", by_alias=True)
        assert data["sessionIDs"] == ["ses_1"]
        assert data["startedAt"].startswith("2026-03-01T12:00:00")
        assert data["planName"] is None


class TestSessionStatus:
    @pytest.mark.parametrize(
        ("age_ms", "expected"),
        [
            (0, "working"),
            (29_999, "working"),
            (30_000, "idle"),
            (5 * MINUTE_MS - 1, "idle"),
            (5 * MINUTE_MS, "completed"),
        ],
    )
    def test_thresholds(self, age_ms: int, expected: str) -> None:
        now = 10_000_000
        assert session_status(now - age_ms, now) == expected

    def test_no_activity_is_completed(self) -> None:
        assert session_status(None, 1000) == "completed"

    def test_pending_tool_is_working(self) -> None:
        assert session_status(0, 10 * MINUTE_MS, has_pending_tool=True) == "working"


class TestLoadSnapshot:
    def test_no_database(self, storage_path: Path, project_path: Path) -> None:
        snapshot = load_snapshot(storage_path, project_path)

        assert snapshot.sessions == []
        assert snapshot.active_session is None
        assert snapshot.plan_progress is None

    def test_sessions_and_statuses(
        self,
        storage_path: Path,
        project_path: Path,
        session_db: SessionDb,
    ) -> None:
        now = now_ms()
        session_db.insert_session("ses_idle", now - 2 * MINUTE_MS)
        session_db.insert_message("m1", "ses_idle", now - 2 * MINUTE_MS, {"role": "user"})
        session_db.insert_session("ses_done", now - 30 * MINUTE_MS)
        session_db.insert_message("m2", "ses_done", now - 30 * MINUTE_MS, {"role": "user"})
        session_db.insert_session("ses_empty", now - 3 * MINUTE_MS)

        snapshot = load_snapshot(storage_path, project_path, now_ms=now)
        statuses = {s.id: s.status for s in snapshot.sessions}

        assert [s.id for s in snapshot.sessions] == ["ses_idle", "ses_empty", "ses_done"]
        assert statuses == {
            "ses_idle": "idle",
            "ses_empty": "completed",
            "ses_done": "completed",
        }
        assert snapshot.active_session is not None
        assert snapshot.active_session.id == "ses_idle"
        assert snapshot.last_update == now

    def test_excludes_old_and_child_sessions(
        self,
        storage_path: Path,
        project_path: Path,
        session_db: SessionDb,
    ) -> None:
        now = now_ms()
        session_db.insert_session("ses_root", now - MINUTE_MS)
        session_db.insert_session("ses_child", now, parent_id="ses_root")
        session_db.insert_session("ses_old", now - 25 * 60 * MINUTE_MS)

        snapshot = load_snapshot(storage_path, project_path, now_ms=now)

        assert [s.id for s in snapshot.sessions] == ["ses_root"]

    def test_assistant_details(
        self,
        storage_path: Path,
        project_path: Path,
        session_db: SessionDb,
    ) -> None:
        now = now_ms()
        session_db.insert_session("ses_1", now - MINUTE_MS)
        session_db.insert_message(
            "m1",
            "ses_1",
            now - 20 * MINUTE_MS,
            {
                "role": "assistant",
                "agent": "plan",
                "modelID": "model-a",
                "tokens": {"input": 100, "output": 20, "reasoning": 7},
            },
        )
        session_db.insert_message(
            "m2",
            "ses_1",
            now - 10 * MINUTE_MS,
            {
                "role": "assistant",
                "agent": "build",
                "model": {"providerID": "p", "modelID": "model-b"},
                "tokens": {"input": 30, "output": 5},
            },
        )
        session_db.insert_message(
            "m3",
            "ses_1",
            now - 9 * MINUTE_MS,
            {"role": "user", "tokens": {"input": 1000}},
        )

        session = load_snapshot(storage_path, project_path, now_ms=now).sessions[0]

        assert session.agent == "build"
        assert session.model_id == "model-b"
        assert session.tokens == 155
        assert session.status == "completed"

    def test_pending_tool_marks_working(
        self,
        storage_path: Path,
        project_path: Path,
        session_db: SessionDb,
    ) -> None:
        now = now_ms()
        session_db.insert_session("ses_1", now - 20 * MINUTE_MS)
        session_db.insert_session("ses_2", now - MINUTE_MS)
        session_db.insert_message("m1", "ses_2", now - MINUTE_MS, {"role": "user"})
        session_db.insert_part(
            "p1",
            "ses_1",
            now - 20 * MINUTE_MS,
            {"type": "tool", "tool": "bash", "state": {"status": "running"}},
        )
        session_db.insert_part(
            "p2",
            "ses_2",
            now - MINUTE_MS,
            {"type": "tool", "tool": "read", "state": {"status": "completed"}},
        )

        snapshot = load_snapshot(storage_path, project_path, now_ms=now)
        by_id = {s.id: s for s in snapshot.sessions}

        assert by_id["ses_1"].status == "working"
        assert by_id["ses_1"].current_action == "Running bash"
        assert by_id["ses_2"].status == "idle"
        assert by_id["ses_2"].current_action is None
        assert snapshot.active_session is not None
        assert snapshot.active_session.id == "ses_1"

    def test_includes_plan_progress(
        self,
        storage_path: Path,
        project_path: Path,
    ) -> None:
        (project_path / "plan.md").write_text("- [x] done\n", encoding="utf-8")
        write_boulder(project_path, {"active_plan": "plan.md"})

        snapshot = load_snapshot(storage_path, project_path)

        assert snapshot.plan_progress is not None
        assert snapshot.plan_progress.progress == 100.0

    def test_unreadable_database_raises(
        self,
        storage_path: Path,
        project_path: Path,
    ) -> None:
        path = db_path(storage_path)
        path.parent.mkdir(parents=True)
        path.write_bytes(b"garbage" * 200)

        with pytest.raises(StorageError):
            load_snapshot(storage_path, project_path)


class TestCheckDatabase:
    def test_missing(self, storage_path: Path) -> None:
        with pytest.raises(StorageError) as exc_info:
            check_database(db_path(storage_path))
        assert exc_info.value.code == "ENOENT"

    def test_ok(self, session_db: SessionDb) -> None:
        check_database(session_db.path)
