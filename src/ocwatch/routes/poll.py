"""Conditional-GET poll endpoint backed by the snapshot cache."""
from typing import TYPE_CHECKING

from fastapi import APIRouter, Request, Response, status

from ocwatch.snapshot.cache import matches_if_none_match

if TYPE_CHECKING:
    from ocwatch.snapshot.cache import SnapshotCache

router = APIRouter(tags=["poll"])


@router.get("/poll")
async def poll(request: Request) -> Response:
    """Return the current dashboard snapshot.

    Answers 304 with an empty body when ``If-None-Match`` equals the
    current ETag, otherwise 200 with the snapshot JSON. Snapshot load
    failures propagate to the 500 handler.

    Args:
        request: FastAPI request object.

    Returns:
        Snapshot response carrying an ``ETag`` header.
    """
    cache: SnapshotCache = request.app.state.snapshot_cache
    entry = await cache.poll()
    headers = {"ETag": entry.fingerprint, "Cache-Control": "no-cache"}

    if matches_if_none_match(request.headers.get("if-none-match"), entry.fingerprint):
        return Response(status_code=status.HTTP_304_NOT_MODIFIED, headers=headers)

    return Response(
        content=entry.data.model_dump_json(by_alias=True),
        media_type="application/json",
        headers=headers,
    )
