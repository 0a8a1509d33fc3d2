"""Access log for the poll and SSE endpoints."""
import time
from collections.abc import Awaitable, Callable

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = structlog.get_logger()

EXCLUDED_PATHS = frozenset({
    "/api/health/live",
    "/api/health/ready",
})


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs one ``http_request`` event per request.

    Health probes are skipped. Server errors log at error level and
    client errors at warning. A conditional poll answered from the ETag
    is flagged ``not_modified``. For the SSE stream the duration covers
    only the time until headers are sent.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        if request.url.path in EXCLUDED_PATHS:
            return await call_next(request)

        start = time.perf_counter()
        response = await call_next(request)
        duration_ms = round((time.perf_counter() - start) * 1000, 2)

        status = response.status_code
        if status >= 500:
            log = logger.error
        elif status >= 400:
            log = logger.warning
        else:
            log = logger.info

        log(
            "http_request",
            method=request.method,
            path=request.url.path,
            status=status,
            duration_ms=duration_ms,
            not_modified=status == 304,
            client=request.client.host if request.client else None,
        )
        return response
