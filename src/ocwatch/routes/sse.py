"""SSE streaming endpoint for storage change notifications."""

from typing import TYPE_CHECKING

from fastapi import APIRouter, Request
from sse_starlette.sse import EventSourceResponse

if TYPE_CHECKING:
    from ocwatch.events.hub import SseHub

router = APIRouter(tags=["events"])


@router.get("/sse")
async def event_stream(request: Request) -> EventSourceResponse:
    """Stream change notifications via Server-Sent Events.

    The first frame is ``connected``; heartbeats follow every 30 seconds
    and ``session-update``, ``message-update``, ``part-update`` or
    ``plan-update`` frames on storage changes.

    Args:
        request: FastAPI request object.

    Returns:
        SSE response stream that ends on client disconnect or shutdown.
    """
    hub: SseHub = request.app.state.sse_hub

    return EventSourceResponse(
        hub.stream(),
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
