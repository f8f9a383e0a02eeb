"""Structured logging for the Cognis runtime.

All modules log through structlog with event-style names
(``logger.info("tool_registered", tool_name=...)``). Output goes to stderr so
the ``agent`` command can print the reply on stdout untouched.
"""

from __future__ import annotations

import logging
import os
import sys

import structlog

LOG_LEVEL_ENV = "COGNIS_LOG_LEVEL"


def setup_logging(level: str | None = None) -> None:
    """Configure structlog with console output.

    ``level`` falls back to ``$COGNIS_LOG_LEVEL`` and then ``INFO``.
    """
    name = (level or os.environ.get(LOG_LEVEL_ENV) or "INFO").upper()
    log_level = getattr(logging, name, logging.INFO)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def bind_task(client_id: str = "", task_id: str = "") -> None:
    """Attach the current websocket client and task to every log line."""
    structlog.contextvars.clear_contextvars()
    values = {k: v for k, v in (("client_id", client_id), ("task_id", task_id)) if v}
    if values:
        structlog.contextvars.bind_contextvars(**values)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a named logger instance."""
    return structlog.get_logger(name)
