"""On-disk state of the agent tool: paths, database and plan file."""
from ocwatch.storage.boulder import (
    Boulder,
    calculate_plan_progress,
    load_plan_progress,
    parse_boulder,
)
from ocwatch.storage.db import StorageError, check_database
from ocwatch.storage.loader import load_snapshot, session_status

__all__ = [
    "Boulder",
    "StorageError",
    "calculate_plan_progress",
    "check_database",
    "load_plan_progress",
    "load_snapshot",
    "parse_boulder",
    "session_status",
]
