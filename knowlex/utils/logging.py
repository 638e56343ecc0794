"""Structured logging for Knowlex ingestion.

One shared structlog processor chain feeds either a coloured console
renderer (development) or a JSON renderer (production).  Standard-library
``logging`` records from uvicorn, aiosqlite and python-multipart go through
the same formatter, and the chattiest of those loggers are held at WARNING so
per-request and per-query lines don't bury the pipeline's own events.

Code that works on a single file wraps itself in :func:`file_log_context`;
every line logged inside it, including lines from parsers and the store,
carries ``file_id`` and ``project_id``.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterable, Iterator
from contextlib import contextmanager

import structlog

# stdlib loggers that log per request / per query at INFO or DEBUG.
DEFAULT_QUIET_LOGGERS: tuple[str, ...] = (
    "aiosqlite",
    "uvicorn.access",
    "multipart",
    "python_multipart",
)


def _shared_processors() -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
    ]


def configure_logging(
    log_level: str = "INFO",
    json_output: bool = False,
    quiet_loggers: Iterable[str] | None = None,
) -> structlog.BoundLogger:
    """Configure structlog and route stdlib logging through it.

    Args:
        log_level: Minimum level for Knowlex's own events.
        json_output: Render JSON lines instead of the console format.
        quiet_loggers: stdlib logger names raised to at least WARNING;
            defaults to :data:`DEFAULT_QUIET_LOGGERS`.

    Returns:
        A configured structlog BoundLogger.
    """
    level = logging.getLevelName(log_level.upper())
    shared = _shared_processors()

    if json_output:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    structlog.configure(
        processors=[*shared, renderer],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                *shared,
                renderer,
            ],
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    names = DEFAULT_QUIET_LOGGERS if quiet_loggers is None else tuple(quiet_loggers)
    for name in names:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    return structlog.get_logger()


@contextmanager
def file_log_context(file_id: str, project_id: str | None = None) -> Iterator[None]:
    """Bind ``file_id`` (and ``project_id``) to every log line in this context."""
    with structlog.contextvars.bound_contextvars(file_id=file_id, project_id=project_id):
        yield


def get_logger(name: str) -> structlog.BoundLogger:
    """Return a named structlog logger, configuring defaults on first use."""
    if not structlog.is_configured():
        configure_logging()

    return structlog.get_logger(logger_name=name)
