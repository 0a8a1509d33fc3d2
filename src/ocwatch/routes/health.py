"""Health check endpoints for liveness and readiness probes."""
from pathlib import Path
from typing import TYPE_CHECKING, Literal

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ocwatch.storage.db import StorageError, check_database

if TYPE_CHECKING:
    from ocwatch.config import Settings
    from ocwatch.events.watcher import WatcherProvider

router = APIRouter(prefix="/health", tags=["health"])


class LivenessResponse(BaseModel):
    """Response model for liveness probe.

    Attributes:
        status: Always 'alive' when process is running.
    """

    status: Literal["alive"]


class ReadinessCheck(BaseModel):
    """Individual dependency check result.

    Attributes:
        name: Identifier for the dependency being checked.
        status: Result of the check ('ok' or 'failed').
        message: Details, e.g. the error when status is 'failed'.
    """

    name: str
    status: Literal["ok", "failed"]
    message: str | None = None


class WatcherState(BaseModel):
    """Shared watcher status. It starts with the first SSE client."""

    running: bool
    bound: dict[str, str | None]


class ReadinessResponse(BaseModel):
    """Response model for readiness probe.

    Attributes:
        status: Overall readiness ('ready' or 'not_ready').
        checks: List of individual dependency check results.
        watcher: Shared watcher state.
    """

    status: Literal["ready", "not_ready"]
    checks: list[ReadinessCheck]
    watcher: WatcherState


def _check_directory(path: Path) -> ReadinessCheck:
    """Verify the storage directory exists and is listable."""
    name = f"dir:{path}"
    try:
        if path.is_dir():
            next(path.iterdir(), None)
            return ReadinessCheck(name=name, status="ok")
        return ReadinessCheck(name=name, status="failed", message="Directory not found")
    except PermissionError as e:
        return ReadinessCheck(name=name, status="failed", message=f"Permission denied: {e}")
    except OSError as e:
        return ReadinessCheck(name=name, status="failed", message=str(e))


def _check_database(path: Path) -> ReadinessCheck:
    """Verify the session database is queryable; absence is not a failure."""
    name = f"db:{path}"
    if not path.exists():
        return ReadinessCheck(name=name, status="ok", message="Database not created yet")
    try:
        check_database(path)
    except StorageError as e:
        return ReadinessCheck(name=name, status="failed", message=str(e))
    return ReadinessCheck(name=name, status="ok")


@router.get("/live", response_model=LivenessResponse)
async def liveness() -> LivenessResponse:
    """Liveness probe endpoint.

    Returns:
        Liveness status response.
    """
    return LivenessResponse(status="alive")


@router.get("/ready", response_model=ReadinessResponse)
async def readiness(request: Request) -> JSONResponse:
    """Readiness probe endpoint.

    Checks the storage directory and database. Returns 200 if all
    checks pass, 503 if any fail.

    Returns:
        Readiness status with individual check results.
    """
    settings: Settings = request.app.state.settings
    watchers: WatcherProvider = request.app.state.watcher_provider

    checks = [
        _check_directory(settings.storage_path),
        _check_database(settings.db_path),
    ]
    watcher = watchers.current
    state = WatcherState(
        running=watcher.is_running if watcher else False,
        bound={
            name: str(path) if path else None
            for name, path in (watcher.bound_paths.items() if watcher else [])
        },
    )

    all_ok = all(c.status == "ok" for c in checks)
    response = ReadinessResponse(
        status="ready" if all_ok else "not_ready",
        checks=checks,
        watcher=state,
    )
    code = status.HTTP_200_OK if all_ok else status.HTTP_503_SERVICE_UNAVAILABLE
    return JSONResponse(content=response.model_dump(), status_code=code)
