"""Structured logging for cfgctl.

Logs go to stderr by default so that dry-run output on stdout can be piped
into other tools. Events are snake_case names with keyword context; the
provider being generated is bound once per run with ``provider_context``.
"""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, TextIO

import structlog

# SDK loggers that log request bodies and credentials lookups at DEBUG.
SDK_LOGGERS = ("boto3", "botocore", "urllib3")


def _shared_processors() -> list[Any]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]


def _renderer(format: str, stream: TextIO) -> list[Any]:
    if format == "json":
        return [
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    colors = hasattr(stream, "isatty") and stream.isatty()
    return [structlog.dev.ConsoleRenderer(colors=colors)]


def setup_logging(level: str = "INFO", format: str = "console", output: str = "stderr") -> None:
    """Configure structured logging for cfgctl.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format: Log format (json or console)
        output: Output destination (stdout or stderr)
    """
    log_level = getattr(logging, level.upper(), logging.INFO)
    stream = sys.stdout if output == "stdout" else sys.stderr

    logging.basicConfig(format="%(message)s", stream=stream, level=log_level)
    for name in SDK_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))

    structlog.configure(
        processors=_shared_processors() + _renderer(format, stream),
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=stream),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.BoundLogger:
    """Get a structured logger, typically with ``__name__``."""
    return structlog.get_logger(name)


@contextmanager
def provider_context(provider: str) -> Iterator[None]:
    """Attach ``provider`` to every event logged inside the block."""
    with structlog.contextvars.bound_contextvars(provider=provider):
        yield


def log_error(
    logger: structlog.BoundLogger,
    error: Exception,
    operation: str | None = None,
    **kwargs: Any,
) -> None:
    """Log a failure as an ``error_occurred`` event.

    Args:
        logger: Logger instance
        error: Exception instance
        operation: Operation name (optional)
        **kwargs: Additional context fields
    """
    context = {
        "error_type": type(error).__name__,
        "error_message": str(error),
        **kwargs,
    }

    if operation:
        context["operation"] = operation

    logger.error("error_occurred", **context)
