"""Pytest configuration and fixtures."""

import json
import sqlite3
import sys
import time
from collections.abc import Callable, Iterator
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest
from fastapi.testclient import TestClient

from ocwatch.app import create_app
from ocwatch.config import Settings
from ocwatch.storage.paths import db_path

SCHEMA = """
CREATE TABLE session (
    id TEXT PRIMARY KEY,
    project_id TEXT NOT NULL,
    parent_id TEXT,
    slug TEXT,
    directory TEXT NOT NULL,
    title TEXT NOT NULL,
    version TEXT,
    time_created INTEGER NOT NULL,
    time_updated INTEGER NOT NULL
);
CREATE TABLE message (
    id TEXT PRIMARY KEY,
    session_id TEXT NOT NULL,
    time_created INTEGER NOT NULL,
    time_updated INTEGER NOT NULL,
    data TEXT NOT NULL
);
CREATE TABLE part (
    id TEXT PRIMARY KEY,
    message_id TEXT NOT NULL,
    session_id TEXT NOT NULL,
    time_created INTEGER NOT NULL,
    time_updated INTEGER NOT NULL,
    data TEXT NOT NULL
);
"""


def now_ms() -> int:
    return int(time.time() * 1000)


class SessionDb:
    """Writable fixture database with the agent tool's schema."""

    def __init__(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        self.path = path
        conn = sqlite3.connect(path)
        conn.executescript(SCHEMA)
        conn.commit()
        conn.close()

    def _execute(self, sql: str, params: tuple[object, ...]) -> None:
        conn = sqlite3.connect(self.path)
        try:
            conn.execute(sql, params)
            conn.commit()
        finally:
            conn.close()

    def insert_session(
        self,
        session_id: str,
        updated_ms: int,
        title: str | None = None,
        parent_id: str | None = None,
    ) -> None:
        self._execute(
            "INSERT INTO session VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                session_id,
                "proj_1",
                parent_id,
                None,
                "/work/project",
                title or f"Session {session_id}",
                None,
                updated_ms - 60_000,
                updated_ms,
            ),
        )

    def insert_message(
        self,
        message_id: str,
        session_id: str,
        created_ms: int,
        data: dict[str, object],
    ) -> None:
        self._execute(
            "INSERT INTO message VALUES (?, ?, ?, ?, ?)",
            (message_id, session_id, created_ms, created_ms, json.dumps(data)),
        )

    def insert_part(
        self,
        part_id: str,
        session_id: str,
        created_ms: int,
        data: dict[str, object],
    ) -> None:
        self._execute(
            "INSERT INTO part VALUES (?, ?, ?, ?, ?, ?)",
            (part_id, "msg_x", session_id, created_ms, created_ms, json.dumps(data)),
        )


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def storage_path(tmp_path: Path) -> Path:
    path = tmp_path / "data"
    path.mkdir()
    return path


@pytest.fixture
def project_path(tmp_path: Path) -> Path:
    path = tmp_path / "project"
    path.mkdir()
    return path


@pytest.fixture
def session_db(storage_path: Path) -> SessionDb:
    """Empty session database under the storage path."""
    return SessionDb(db_path(storage_path))


@pytest.fixture
def settings(storage_path: Path, project_path: Path) -> Settings:
    """Create test settings."""
    return Settings(
        host="127.0.0.1",
        port=8000,
        debug=True,
        storage_path=storage_path,
        project_path=project_path,
        debounce_ms=50,
        rebind_interval=0.2,
        watch_storage_trees=False,
    )


@pytest.fixture
def client(settings: Settings) -> TestClient:
    """Create test client with configured app."""
    app = create_app(settings)
    return TestClient(app)


@pytest.fixture
def wait_for() -> Callable[..., bool]:
    """Poll a predicate until it holds or the timeout elapses."""

    def _wait(predicate: Callable[[], bool], timeout: float = 2.0) -> bool:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if predicate():
                return True
            time.sleep(0.01)
        return predicate()

    return _wait


@pytest.fixture
def stop_after() -> Iterator[Callable[[object], None]]:
    """Collect objects with a ``stop()`` method and stop them after the test."""
    stoppables: list[object] = []
    yield stoppables.append
    for item in stoppables:
        item.stop()  # type: ignore[attr-defined]
