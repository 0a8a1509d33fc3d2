"""Entry point for the dashboard server."""

import contextlib
import sys

import structlog
import uvicorn

from ocwatch import __version__
from ocwatch.app import create_app
from ocwatch.config import Settings
from ocwatch.logging import configure_logging

logger = structlog.get_logger()


def serve(settings: Settings) -> None:
    """Run uvicorn until SIGINT/SIGTERM.

    uvicorn handles the signals and runs the application lifespan, which
    closes SSE connections and stops the watcher.

    Args:
        settings: Server configuration.
    """
    app = create_app(settings)
    config = uvicorn.Config(
        app,
        host=settings.host,
        port=settings.port,
        log_level="debug" if settings.debug else "warning",
        access_log=False,
    )
    uvicorn.Server(config).run()


def main() -> None:
    """Entry point for python -m ocwatch."""
    settings = Settings()
    configure_logging(debug=settings.debug, log_format=settings.log_format)
    logger.info("ocwatch_starting", version=__version__, port=settings.port)

    with contextlib.suppress(KeyboardInterrupt):
        serve(settings)

    sys.exit(0)


if __name__ == "__main__":
    main()
