"""Structured logging setup.

structlog renders through the standard logging module so that events from
the broker protocol library (which logs via a stdlib logger) and our own
structlog events share the same handlers and format.

Sinks:
- stdout: every record at or above the configured level
- stderr: ERROR and above, duplicated for log routers that split streams
"""

from __future__ import annotations

import logging
import sys
from typing import Any, TextIO

import structlog

_HANDLER_MARKER = "_cfbrokerproxy_handler"

SHARED_PROCESSORS = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.processors.TimeStamper(fmt="iso", utc=True),
]


def _make_handler(stream: TextIO, level: int, formatter: logging.Formatter) -> logging.Handler:
    handler = logging.StreamHandler(stream)
    handler.setLevel(level)
    handler.setFormatter(formatter)
    setattr(handler, _HANDLER_MARKER, True)
    return handler


def configure_logging(
    level: str = "INFO",
    json_output: bool = True,
    stdout: TextIO | None = None,
    stderr: TextIO | None = None,
) -> None:
    """Configure structlog and the stdlib root logger.

    Safe to call more than once; handlers installed by a previous call are
    replaced.

    Args:
        level: Root log level name (DEBUG, INFO, ...)
        json_output: Render JSON lines (True) or human-readable console output
        stdout: Stream for all records (default: sys.stdout)
        stderr: Stream for ERROR and above (default: sys.stderr)
    """
    structlog.configure(
        processors=SHARED_PROCESSORS + [
            structlog.processors.StackInfoRenderer(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    renderer: Any
    if json_output:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False)

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=SHARED_PROCESSORS,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.format_exc_info,
            renderer,
        ],
    )

    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, _HANDLER_MARKER, False):
            root.removeHandler(handler)

    root.addHandler(_make_handler(stdout or sys.stdout, logging.DEBUG, formatter))
    root.addHandler(_make_handler(stderr or sys.stderr, logging.ERROR, formatter))
    set_log_level(level)


def set_log_level(level: str) -> None:
    """Apply a new level to the root logger."""
    logging.getLogger().setLevel(level.upper())


def on_config_updated(key: str, value: Any) -> None:
    """ConfigManager subscriber applying logging.level changes at runtime."""
    if key == "logging.level":
        set_log_level(value)
        structlog.get_logger(__name__).info("log_level_changed", level=value)
