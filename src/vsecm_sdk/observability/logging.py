"""
vsecm_sdk.observability.logging

Structured logging configuration for the SDK entrypoints.

Responsibilities:
- Configure `structlog` for JSON logs.
- Translate the 0..7 VSecM log level scale into stdlib levels.
- Provide a small wrapper for obtaining bound loggers.
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog

from vsecm_sdk.settings import LogLevel

_STDLIB_LEVELS: dict[LogLevel, int] = {
    LogLevel.OFF: logging.WARNING,
    LogLevel.FATAL: logging.CRITICAL,
    LogLevel.ERROR: logging.ERROR,
    LogLevel.WARN: logging.WARNING,
    LogLevel.INFO: logging.INFO,
    LogLevel.AUDIT: logging.INFO,
    LogLevel.DEBUG: logging.DEBUG,
    LogLevel.TRACE: logging.DEBUG,
}


def stdlib_level(level: LogLevel) -> int:
    return _STDLIB_LEVELS.get(level, logging.WARNING)


def configure_logging(*, service_name: str, level: LogLevel) -> None:
    """
    Structured JSON logs on stdout. Called once by each entrypoint.
    """

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=stdlib_level(level),
        force=True,
    )

    # structlog processors run on each log event; keep this list focused and stable.
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            _add_service_name(service_name),
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def _add_service_name(service_name: str):
    # Adds a stable "service" field for log routing/aggregation across environments.
    def processor(_: Any, __: str, event_dict: dict[str, Any]) -> dict[str, Any]:
        event_dict.setdefault("service", service_name)
        return event_dict

    return processor


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


# --- Module Notes -----------------------------------------------------------
# Cycle-scoped metadata (correlation ids) is bound via contextvars in
# `observability.correlation`.
