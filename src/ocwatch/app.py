"""FastAPI application factory and lifespan management."""

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from functools import partial

import structlog
from fastapi import FastAPI

from ocwatch import __version__
from ocwatch.config import Settings
from ocwatch.events import SseHub, Watcher, WatcherProvider
from ocwatch.middleware.cors import configure_cors
from ocwatch.middleware.errors import register_error_handlers
from ocwatch.middleware.logging import RequestLoggingMiddleware
from ocwatch.routes import health, poll, sse
from ocwatch.snapshot import SnapshotCache
from ocwatch.storage import load_snapshot

logger = structlog.get_logger()


def build_watcher(settings: Settings) -> Watcher:
    """Construct the shared watcher from configuration."""
    return Watcher(
        storage_path=settings.storage_path,
        project_path=settings.project_path,
        debounce_ms=settings.debounce_ms,
        rebind_interval=settings.rebind_interval,
        tree_paths=settings.tree_paths,
    )


def install_components(app: FastAPI, settings: Settings) -> None:
    """Create the cache, watcher provider and SSE hub on ``app.state``.

    The cache refreshes only when its TTL expires; change frames carry
    the last computed snapshot.

    Args:
        app: FastAPI application instance.
        settings: Configuration instance.
    """
    cache = SnapshotCache(
        partial(load_snapshot, settings.storage_path, settings.project_path),
        ttl=settings.poll_cache_ttl,
    )

    watcher_provider = WatcherProvider(partial(build_watcher, settings))
    hub = SseHub(
        watcher_provider,
        cache,
        heartbeat_interval=settings.sse_heartbeat_interval,
        queue_size=settings.sse_queue_size,
    )

    app.state.snapshot_cache = cache
    app.state.watcher_provider = watcher_provider
    app.state.sse_hub = hub


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application lifecycle events.

    The watcher is created lazily by the first SSE connection; on
    shutdown every SSE connection is closed before the watcher stops.

    Args:
        app: FastAPI application instance.

    Yields:
        None during application runtime.
    """
    settings: Settings = app.state.settings
    logger.info(
        "api_startup",
        host=settings.host,
        port=settings.port,
        storage_path=str(settings.storage_path),
        project_path=str(settings.project_path),
    )

    try:
        yield
    finally:
        hub: SseHub = app.state.sse_hub
        await hub.shutdown()
        # Joining watcher threads blocks; keep it off the event loop.
        await asyncio.to_thread(app.state.watcher_provider.shutdown)
        logger.info("api_shutdown")


def create_app(settings: Settings | None = None) -> FastAPI:
    """Factory function to create configured FastAPI application.

    Args:
        settings: Configuration instance. Creates default if None.

    Returns:
        Configured FastAPI application.
    """
    if settings is None:
        settings = Settings()

    app = FastAPI(
        title="ocwatch",
        version=__version__,
        lifespan=lifespan,
        docs_url="/api/docs" if settings.debug else None,
        redoc_url=None,
        openapi_url="/api/openapi.json" if settings.debug else None,
    )
    app.state.settings = settings
    install_components(app, settings)

    configure_cors(app, settings.cors_origins, allow_local_dev=settings.debug)
    app.add_middleware(RequestLoggingMiddleware)
    register_error_handlers(app)

    app.include_router(health.router, prefix="/api")
    app.include_router(poll.router, prefix="/api")
    app.include_router(sse.router, prefix="/api")

    return app
