from __future__ import annotations

import logging
import sys
import uuid
from typing import Any

from loguru import logger as loguru_logger

# Attributes every LogRecord carries; anything else came in through ``extra``.
_STANDARD_RECORD_FIELDS = frozenset(
    {
        "args",
        "msg",
        "name",
        "levelno",
        "levelname",
        "pathname",
        "filename",
        "module",
        "exc_info",
        "exc_text",
        "stack_info",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "taskName",
        "getMessage",
        "message",
    }
)

_NOISY_LOGGERS = (
    "httpx",
    "httpcore",
    "uvicorn.access",
    "peewee",
)


class InterceptHandler(logging.Handler):
    """Bridge stdlib log records into loguru, keeping ``extra`` fields as bound context."""

    def emit(self, record: logging.LogRecord) -> None:
        level: int | str
        try:
            level = loguru_logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        extra = extract_extra(record)
        loguru_logger.bind(logger_name=record.name, **extra).opt(
            depth=6, exception=record.exc_info
        ).log(level, record.getMessage())


def extract_extra(record: logging.LogRecord) -> dict[str, Any]:
    """Return the structured fields attached to a record via ``extra=``."""
    return {
        key: value
        for key, value in record.__dict__.items()
        if not key.startswith("_") and key not in _STANDARD_RECORD_FIELDS
    }


def setup_json_logging(
    level: str = "INFO",
    log_file: str | None = None,
    max_file_size: str = "50 MB",
    retention: str = "14 days",
) -> None:
    """Configure JSON logging through loguru.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional log file path for persistent logging
        max_file_size: Maximum size per log file (loguru format)
        retention: Log retention period (loguru format)
    """
    lvl = getattr(logging, level.upper(), logging.INFO)

    loguru_logger.remove()
    loguru_logger.add(
        sys.stdout,
        level=level.upper(),
        serialize=True,
        enqueue=True,
        backtrace=True,
        diagnose=False,
    )
    if log_file:
        loguru_logger.add(
            log_file,
            level=level.upper(),
            serialize=True,
            rotation=max_file_size,
            retention=retention,
            compression="gz",
            enqueue=True,
        )

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(lvl)
    root.addHandler(InterceptHandler())

    for noisy_logger in _NOISY_LOGGERS:
        logging.getLogger(noisy_logger).setLevel(logging.WARNING)

    loguru_logger.info(
        "json_logging_initialized",
        setup_config={"level": level, "log_file": log_file},
    )


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance by name."""
    return logging.getLogger(name)


def generate_correlation_id() -> str:
    """Generate a short correlation ID for tracing one sync cycle or request across logs."""
    return uuid.uuid4().hex[:12]


__all__ = [
    "InterceptHandler",
    "extract_extra",
    "generate_correlation_id",
    "get_logger",
    "setup_json_logging",
]
