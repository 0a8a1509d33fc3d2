"""Pydantic schemas for the dashboard snapshot."""
import time
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

SessionStatus = Literal["working", "idle", "completed"]


def epoch_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


class Session(CamelModel):
    """Summary of one agent session as shown on the dashboard.

    Identifier suffixes are upper-case on the wire (``projectID``,
    ``parentID``, ``modelID``), matching the agent tool's own records.
    """

    id: str
    project_id: str = Field(alias="projectID")
    parent_id: str | None = Field(default=None, alias="parentID")
    title: str
    directory: str = ""
    status: SessionStatus = "completed"
    current_action: str | None = None
    agent: str | None = None
    model_id: str | None = Field(default=None, alias="modelID")
    tokens: int = 0
    created_at: datetime
    updated_at: datetime


class PlanTask(CamelModel):
    """One checkbox line of a plan file."""

    description: str
    completed: bool


class PlanProgress(CamelModel):
    """Checkbox completion of the active plan.

    Attributes:
        completed: Number of checked boxes.
        total: Number of boxes.
        progress: Percentage complete, 0-100.
        tasks: Every box in file order.
        plan_name: Name from the boulder file, if any.
        status: Plan status from the boulder file, if any.
        started_at: When work on the plan started, if known.
        session_ids: Sessions working on the plan.
    """

    completed: int
    total: int
    progress: float
    tasks: list[PlanTask] = Field(default_factory=list)
    plan_name: str | None = None
    status: str | None = None
    started_at: datetime | None = None
    session_ids: list[str] = Field(default_factory=list, alias="sessionIDs")


class Snapshot(CamelModel):
    """Point-in-time aggregate served by the poll endpoint."""

    sessions: list[Session] = Field(default_factory=list)
    active_session: Session | None = None
    plan_progress: PlanProgress | None = None
    last_update: int = Field(default_factory=epoch_ms)
