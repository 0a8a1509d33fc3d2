"""Plan (boulder) file parsing and checkbox progress."""
import json
import re
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path

import structlog

from ocwatch.snapshot.schemas import PlanProgress, PlanTask
from ocwatch.storage.paths import plan_path

logger = structlog.get_logger()

CHECKBOX_PATTERN = re.compile(r"-\s+\[([ xX])\]\s*(.+)")


@dataclass(frozen=True)
class Boulder:
    """Contents of a boulder file.

    Attributes:
        active_plan: Absolute path of the active plan markdown, if any.
        session_ids: Sessions working on the plan.
        status: Free-form status string.
        started_at: When work on the plan started.
        plan_name: Human-readable plan name.
    """

    active_plan: Path | None
    session_ids: list[str] = field(default_factory=list)
    status: str = ""
    started_at: datetime | None = None
    plan_name: str = ""


def _parse_started_at(value: object) -> datetime | None:
    if isinstance(value, int | float):
        return datetime.fromtimestamp(value / 1000, tz=UTC)
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    return None


def parse_boulder(project_path: Path) -> Boulder | None:
    """Read ``.sisyphus/boulder.json`` under a project.

    Keys are snake_case on disk; camelCase is accepted as a fallback.

    Args:
        project_path: Project root.

    Returns:
        Parsed boulder, or None if missing or not valid JSON.
    """
    path = plan_path(project_path)
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError:
        return None

    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("boulder_corrupted", path=str(path))
        return None
    if not isinstance(data, dict):
        return None

    active = data.get("active_plan", data.get("activePlan"))
    active_plan: Path | None = None
    if isinstance(active, str) and active:
        active_plan = Path(active)
        if not active_plan.is_absolute():
            active_plan = project_path / active_plan

    session_ids = data.get("session_ids", data.get("sessionIDs")) or []

    return Boulder(
        active_plan=active_plan,
        session_ids=[str(s) for s in session_ids] if isinstance(session_ids, list) else [],
        status=str(data.get("status") or ""),
        started_at=_parse_started_at(data.get("started_at", data.get("startedAt"))),
        plan_name=str(data.get("plan_name", data.get("planName")) or ""),
    )


def parse_checkboxes(content: str) -> list[PlanTask]:
    """Extract markdown checkbox tasks in file order."""
    return [
        PlanTask(description=match.group(2).strip(), completed=match.group(1) in "xX")
        for match in CHECKBOX_PATTERN.finditer(content)
    ]


def calculate_plan_progress(
    plan_file: Path,
    plan_name: str | None = None,
) -> PlanProgress | None:
    """Count completed checkboxes in a plan file.

    Args:
        plan_file: Markdown plan path.
        plan_name: Name to attach to the result.

    Returns:
        Progress, or None if the file cannot be read.
    """
    try:
        content = plan_file.read_text(encoding="utf-8")
    except OSError:
        return None

    tasks = parse_checkboxes(content)
    completed = sum(1 for t in tasks if t.completed)
    total = len(tasks)
    return PlanProgress(
        completed=completed,
        total=total,
        progress=(completed / total) * 100 if total else 0.0,
        tasks=tasks,
        plan_name=plan_name or None,
    )


def load_plan_progress(project_path: Path) -> PlanProgress | None:
    """Progress of the project's active plan, with the boulder's metadata."""
    boulder = parse_boulder(project_path)
    if boulder is None or boulder.active_plan is None:
        return None
    progress = calculate_plan_progress(boulder.active_plan, boulder.plan_name)
    if progress is None:
        return None
    return progress.model_copy(
        update={
            "status": boulder.status or None,
            "started_at": boulder.started_at,
            "session_ids": list(boulder.session_ids),
        }
    )
