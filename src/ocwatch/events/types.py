"""Event types shared by the watcher and the SSE hub."""
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from ocwatch.snapshot.schemas import Snapshot


class WatcherEventKind(str, Enum):
    """Lifecycle and change notifications emitted by the watcher."""

    STARTED = "started"
    STOPPED = "stopped"
    CHANGE = "change"
    ERROR = "error"


class SseEventName(str, Enum):
    """Outward event names written to SSE subscribers."""

    CONNECTED = "connected"
    HEARTBEAT = "heartbeat"
    SESSION_UPDATE = "session-update"
    MESSAGE_UPDATE = "message-update"
    PART_UPDATE = "part-update"
    PLAN_UPDATE = "plan-update"


class WatcherEvent(BaseModel):
    """Tagged watcher notification.

    Attributes:
        kind: Which variant this is.
        event_type: Raw filesystem event type (change events only).
        filename: Path of the file that changed (change events only).
        error: Error description (error events only).
    """

    model_config = ConfigDict(frozen=True)

    kind: WatcherEventKind
    event_type: str | None = None
    filename: str | None = None
    error: str | None = None

    @classmethod
    def change(cls, event_type: str, filename: str) -> "WatcherEvent":
        return cls(kind=WatcherEventKind.CHANGE, event_type=event_type, filename=filename)


class ConnectedPayload(BaseModel):
    """First frame on every SSE connection."""

    connected: Literal[True] = True
    timestamp: int


class HeartbeatPayload(BaseModel):
    """Periodic liveness frame."""

    timestamp: int


class ChangePayload(BaseModel):
    """Frame forwarded to subscribers for every debounced change.

    Attributes:
        filename: Path reported by the watcher.
        event_type: Raw filesystem event type.
        timestamp: Epoch milliseconds at forwarding time.
        poll_data: Current cached snapshot, if any.
    """

    model_config = ConfigDict(populate_by_name=True)

    filename: str
    event_type: str = Field(serialization_alias="eventType")
    timestamp: int
    poll_data: Snapshot | None = Field(
        default=None,
        serialization_alias="pollData",
    )
