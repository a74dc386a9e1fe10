"""
Structured logging setup.

lorekeeper logs key/value events through structlog.  Call
``configure_logging`` once at process start (the CLI and the MCP server do
this); library users who skip it still get structlog's default console
output.
"""

from __future__ import annotations

import logging
import sys

import structlog
from structlog.typing import FilteringBoundLogger, Processor


def configure_logging(level: str = "INFO", json_output: bool = False) -> None:
    """
    Configure structlog and route standard-library logs through it.

    Logs go to stderr so they never mix with CLI output or the MCP stdio
    transport on stdout.
    """
    log_level = logging.getLevelName(level.upper())
    if not isinstance(log_level, int):
        log_level = logging.INFO

    shared: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
    ]
    if json_output:
        shared.append(structlog.processors.format_exc_info)
        renderer: Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=[*shared, renderer],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        # Resolve sys.stderr on every call so redirected streams are honoured.
        logger_factory=_stderr_logger,
        cache_logger_on_first_use=False,
    )

    # Third-party libraries (chromadb, sentence-transformers) use stdlib logging.
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
            foreign_pre_chain=shared,
        )
    )
    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(max(log_level, logging.WARNING))


def _stderr_logger(*_args: object) -> structlog.PrintLogger:
    return structlog.PrintLogger(sys.stderr)


def get_logger(name: str | None = None) -> FilteringBoundLogger:
    """Return a structlog logger, usually called with ``__name__``."""
    return structlog.get_logger(name)
