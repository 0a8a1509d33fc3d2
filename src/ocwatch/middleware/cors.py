"""CORS for the dashboard frontend."""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Frontend dev servers (Vite and the like) on any loopback port.
LOCAL_DEV_ORIGIN_REGEX = r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$"


def configure_cors(
    app: FastAPI,
    allowed_origins: list[str],
    allow_local_dev: bool = False,
) -> None:
    """Let the dashboard read snapshots, ETags and the event stream.

    Only safe methods are allowed. ``ETag`` is exposed so browser code
    can send it back as ``If-None-Match``.

    Args:
        app: FastAPI application instance.
        allowed_origins: Explicitly allowed origin URLs.
        allow_local_dev: Also allow any loopback origin.
    """
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_origin_regex=LOCAL_DEV_ORIGIN_REGEX if allow_local_dev else None,
        allow_methods=["GET", "OPTIONS"],
        allow_headers=["If-None-Match", "Cache-Control", "Last-Event-ID"],
        expose_headers=["ETag"],
        max_age=600,
    )
