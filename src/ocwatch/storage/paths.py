"""Locations of the agent tool's on-disk state."""
import os
from pathlib import Path
from typing import Literal

StorageTree = Literal["session", "message", "part"]

TOOL_DIRNAME = "opencode"
DB_FILENAME = "opencode.db"
WAL_SUFFIX = "-wal"
PLAN_DIRNAME = ".sisyphus"
PLAN_FILENAME = "boulder.json"

STORAGE_TREES: tuple[StorageTree, ...] = ("session", "message", "part")


def default_storage_path() -> Path:
    """Resolve the base data directory.

    Returns:
        ``$XDG_DATA_HOME`` when set, otherwise ``~/.local/share``.
    """
    xdg_data_home = os.environ.get("XDG_DATA_HOME")
    if xdg_data_home:
        return Path(xdg_data_home)
    return Path.home() / ".local" / "share"


def db_path(storage_path: Path) -> Path:
    """Path of the SQLite database under a storage root."""
    return storage_path / TOOL_DIRNAME / DB_FILENAME


def wal_path(storage_path: Path) -> Path:
    """Path of the database's write-ahead-log sibling."""
    db = db_path(storage_path)
    return db.with_name(db.name + WAL_SUFFIX)


def plan_path(project_path: Path) -> Path:
    """Path of the plan (boulder) file under a project root."""
    return project_path / PLAN_DIRNAME / PLAN_FILENAME


def storage_tree_paths(storage_path: Path) -> dict[str, Path]:
    """Per-kind directories of the file-based session storage.

    Args:
        storage_path: Base storage path.

    Returns:
        Mapping of tree name to directory path.
    """
    root = storage_path / TOOL_DIRNAME / "storage"
    return {name: root / name for name in STORAGE_TREES}
