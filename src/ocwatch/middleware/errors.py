"""Uniform JSON error responses."""
from http import HTTPStatus

import structlog
from fastapi import FastAPI
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.requests import Request

logger = structlog.get_logger()


class ErrorResponse(BaseModel):
    """Body of every error response.

    Attributes:
        error: Short error name.
        message: Human-readable description.
        status: HTTP status code.
    """

    error: str
    message: str
    status: int


def _error_response(error: str, message: str, status: int) -> JSONResponse:
    body = ErrorResponse(error=error, message=message, status=status)
    return JSONResponse(status_code=status, content=body.model_dump())


async def http_exception_handler(
    request: Request,
    exc: StarletteHTTPException,
) -> JSONResponse:
    """Render HTTP errors, including unknown routes, as ``ErrorResponse``."""
    if exc.status_code == 404:
        return _error_response(
            "Not Found",
            f"Route {request.url.path} not found",
            404,
        )
    return _error_response(
        HTTPStatus(exc.status_code).phrase,
        str(exc.detail),
        exc.status_code,
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Log an unexpected failure and answer 500."""
    logger.error(
        "unhandled_error",
        path=request.url.path,
        error_type=type(exc).__name__,
        error=str(exc),
        exc_info=exc,
    )
    return _error_response(type(exc).__name__, str(exc), 500)


def register_error_handlers(app: FastAPI) -> None:
    """Install the JSON error handlers on an application."""
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, unhandled_exception_handler)
