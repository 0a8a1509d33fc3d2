"""Read-only access to the agent tool's SQLite database."""
import json
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

import structlog

logger = structlog.get_logger()

SESSION_SCAN_LIMIT = 200
MESSAGE_SCAN_LIMIT = 100


class StorageError(Exception):
    """Raised when the database exists but cannot be read."""

    def __init__(self, message: str, path: str, code: str | None = None) -> None:
        """Initialize storage error.

        Args:
            message: Error description.
            path: Database path that caused the error.
            code: Optional error code.
        """
        super().__init__(message)
        self.path = path
        self.code = code


@dataclass(frozen=True)
class SessionRow:
    id: str
    project_id: str
    parent_id: str | None
    directory: str
    title: str
    time_created: int
    time_updated: int


@dataclass(frozen=True)
class MessageRow:
    id: str
    session_id: str
    time_created: int
    role: str | None
    data: dict[str, object]

    @property
    def tokens(self) -> int:
        """Input plus output tokens recorded on the message."""
        tokens = self.data.get("tokens")
        if not isinstance(tokens, dict):
            return 0
        total = 0
        for key in ("input", "output"):
            value = tokens.get(key)
            if isinstance(value, int | float):
                total += int(value)
        return total

    @property
    def agent(self) -> str | None:
        value = self.data.get("agent")
        return value if isinstance(value, str) else None

    @property
    def model_id(self) -> str | None:
        value = self.data.get("modelID")
        if isinstance(value, str):
            return value
        model = self.data.get("model")
        if isinstance(model, dict) and isinstance(model.get("modelID"), str):
            return model["modelID"]
        return None


def _parse_json(raw: str | None) -> dict[str, object]:
    if not raw:
        return {}
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        return {}
    return value if isinstance(value, dict) else {}


@contextmanager
def connect(path: Path) -> Iterator[sqlite3.Connection]:
    """Open the database read-only.

    Args:
        path: Database file path.

    Yields:
        Connection with ``sqlite3.Row`` rows.

    Raises:
        StorageError: If the database cannot be opened.
    """
    try:
        conn = sqlite3.connect(f"file:{path}?mode=ro", uri=True, timeout=5.0)
    except sqlite3.Error as e:
        raise StorageError(f"Failed to open database: {e}", str(path)) from e

    conn.row_factory = sqlite3.Row
    try:
        conn.execute("PRAGMA busy_timeout = 5000")
        yield conn
    finally:
        conn.close()


def query_sessions(
    conn: sqlite3.Connection,
    since_ms: int | None = None,
    limit: int = SESSION_SCAN_LIMIT,
) -> list[SessionRow]:
    """Root sessions, most recently updated first.

    Args:
        conn: Open connection.
        since_ms: Only sessions updated at or after this epoch-ms time.
        limit: Maximum rows returned.

    Returns:
        Session rows.
    """
    rows = conn.execute(
        """
        SELECT id, project_id, parent_id, directory, title,
               time_created, time_updated
        FROM session
        WHERE parent_id IS NULL
          AND (?1 IS NULL OR time_updated >= ?1)
        ORDER BY time_updated DESC
        LIMIT ?2
        """,
        (since_ms, limit),
    ).fetchall()
    return [
        SessionRow(
            id=row["id"],
            project_id=row["project_id"],
            parent_id=row["parent_id"],
            directory=row["directory"] or "",
            title=row["title"] or row["id"],
            time_created=row["time_created"],
            time_updated=row["time_updated"],
        )
        for row in rows
    ]


def query_messages(
    conn: sqlite3.Connection,
    session_id: str,
    limit: int = MESSAGE_SCAN_LIMIT,
) -> list[MessageRow]:
    """Messages of a session, newest first."""
    rows = conn.execute(
        """
        SELECT id, session_id, time_created,
               json_extract(data, '$.role') AS role, data
        FROM message
        WHERE session_id = ?1
        ORDER BY time_created DESC
        LIMIT ?2
        """,
        (session_id, limit),
    ).fetchall()
    return [
        MessageRow(
            id=row["id"],
            session_id=row["session_id"],
            time_created=row["time_created"],
            role=row["role"],
            data=_parse_json(row["data"]),
        )
        for row in rows
    ]


def query_pending_tool(conn: sqlite3.Connection, session_id: str) -> str | None:
    """Name of the most recent tool call still pending or running, if any."""
    row = conn.execute(
        """
        SELECT json_extract(data, '$.tool') AS tool
        FROM part
        WHERE session_id = ?1
          AND json_extract(data, '$.type') = 'tool'
          AND COALESCE(
                json_extract(data, '$.state.status'),
                CASE WHEN json_type(data, '$.state') = 'text'
                     THEN json_extract(data, '$.state') END
              ) IN ('pending', 'running')
        ORDER BY time_created DESC
        LIMIT 1
        """,
        (session_id,),
    ).fetchone()
    if row is None:
        return None
    return row["tool"] or "tool"


def check_database(path: Path) -> None:
    """Verify the database is queryable.

    Raises:
        StorageError: If it is missing or unreadable.
    """
    if not path.exists():
        raise StorageError("Database not found", str(path), "ENOENT")
    try:
        with connect(path) as conn:
            conn.execute("SELECT count(*) FROM sqlite_master").fetchone()
    except sqlite3.Error as e:
        raise StorageError(str(e), str(path)) from e
