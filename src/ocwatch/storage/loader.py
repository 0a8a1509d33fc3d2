"""Default snapshot loader backed by the session database and plan file."""
import sqlite3
from datetime import UTC, datetime
from pathlib import Path

import structlog

from ocwatch.snapshot.cache import RECENT_WINDOW_MS, build_snapshot
from ocwatch.snapshot.schemas import Session, SessionStatus, Snapshot, epoch_ms
from ocwatch.storage.boulder import load_plan_progress
from ocwatch.storage.db import (
    SessionRow,
    StorageError,
    connect,
    query_messages,
    query_pending_tool,
    query_sessions,
)
from ocwatch.storage.paths import db_path

logger = structlog.get_logger()

WORKING_THRESHOLD_MS = 30 * 1000
COMPLETED_THRESHOLD_MS = 5 * 60 * 1000

STATUS_PRIORITY: dict[SessionStatus, int] = {
    "working": 2,
    "idle": 1,
    "completed": 0,
}


def _from_ms(value: int) -> datetime:
    return datetime.fromtimestamp(value / 1000, tz=UTC)


def session_status(
    last_activity_ms: int | None,
    now_ms: int,
    has_pending_tool: bool = False,
) -> SessionStatus:
    """Derive a session's status from its latest activity.

    Args:
        last_activity_ms: Creation time of the newest message, if any.
        now_ms: Reference time.
        has_pending_tool: Whether a tool call is still running.

    Returns:
        ``working`` under 30 s or with a pending tool, ``idle`` under
        5 min, otherwise ``completed``.
    """
    if has_pending_tool:
        return "working"
    if last_activity_ms is None:
        return "completed"
    age = now_ms - last_activity_ms
    if age < WORKING_THRESHOLD_MS:
        return "working"
    if age < COMPLETED_THRESHOLD_MS:
        return "idle"
    return "completed"


def pick_active_session(sessions: list[Session]) -> Session | None:
    """Highest-priority non-completed session, most recent on ties."""
    best: Session | None = None
    for session in sessions:
        if STATUS_PRIORITY[session.status] == 0:
            continue
        if best is None or (STATUS_PRIORITY[session.status], session.updated_at) > (
            STATUS_PRIORITY[best.status],
            best.updated_at,
        ):
            best = session
    return best


def _summarize(conn: sqlite3.Connection, row: SessionRow, now_ms: int) -> Session:
    messages = query_messages(conn, row.id)
    pending_tool = query_pending_tool(conn, row.id)
    latest_assistant = next((m for m in messages if m.role == "assistant"), None)

    status = session_status(
        messages[0].time_created if messages else None,
        now_ms,
        has_pending_tool=pending_tool is not None,
    )
    return Session(
        id=row.id,
        project_id=row.project_id,
        parent_id=row.parent_id,
        title=row.title,
        directory=row.directory,
        status=status,
        current_action=f"Running {pending_tool}" if pending_tool else None,
        agent=latest_assistant.agent if latest_assistant else None,
        model_id=latest_assistant.model_id if latest_assistant else None,
        tokens=sum(m.tokens for m in messages if m.role == "assistant"),
        created_at=_from_ms(row.time_created),
        updated_at=_from_ms(row.time_updated),
    )


def load_sessions(storage_path: Path, now_ms: int) -> list[Session]:
    """Recent root sessions from the database; empty if it does not exist.

    Raises:
        StorageError: If the database exists but cannot be queried.
    """
    path = db_path(storage_path)
    if not path.exists():
        return []

    try:
        with connect(path) as conn:
            rows = query_sessions(conn, since_ms=now_ms - RECENT_WINDOW_MS)
            return [_summarize(conn, row, now_ms) for row in rows]
    except sqlite3.Error as e:
        raise StorageError(f"Failed to query sessions: {e}", str(path)) from e


def load_snapshot(
    storage_path: Path,
    project_path: Path,
    now_ms: int | None = None,
) -> Snapshot:
    """Build the dashboard snapshot from current on-disk state.

    Args:
        storage_path: Base storage path holding the database.
        project_path: Project root holding the plan file.
        now_ms: Reference time; defaults to now.

    Returns:
        Snapshot of recent sessions, the active session and plan progress.
    """
    now = now_ms if now_ms is not None else epoch_ms()
    sessions = load_sessions(storage_path, now)
    return build_snapshot(
        sessions,
        active_session=pick_active_session(sessions),
        plan_progress=load_plan_progress(project_path),
        now_ms=now,
    )
