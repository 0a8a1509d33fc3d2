"""Structured logging for the dashboard server."""

import logging
import sys
from typing import Literal

import structlog

LogFormat = Literal["json", "console"]

# Stdlib loggers re-routed through the root handler.
ROUTED_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access", "watchdog")

# watchdog logs every raw inotify event at DEBUG.
LEVEL_CAPS = {"watchdog": logging.WARNING}


def _renderer(log_format: LogFormat) -> list[structlog.types.Processor]:
    if log_format == "console":
        return [structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())]
    return [
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer(),
    ]


def configure_logging(debug: bool = False, log_format: LogFormat = "json") -> None:
    """Configure structlog and stdlib logging on stdout.

    Args:
        debug: Enable debug-level logging when True.
        log_format: ``json`` for one object per line, ``console`` for
            human-readable local output.
    """
    level = logging.DEBUG if debug else logging.INFO

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            *_renderer(log_format),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        level=level,
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    for name in ROUTED_LOGGERS:
        stdlib_logger = logging.getLogger(name)
        stdlib_logger.handlers = []
        stdlib_logger.propagate = True
        stdlib_logger.setLevel(max(level, LEVEL_CAPS.get(name, logging.NOTSET)))
