# backend/lineup_analytics/utils/logging.py
"""
Logging configuration for the lineup analytics service.

This module provides centralized logging setup with:
- Environment-based log levels
- Cycle ID tagging so all lines of one worker cycle can be grouped
- JSON format option for production environments
- Suppression of noisy third-party library logs

Usage:
    from lineup_analytics.utils import setup_logging

    # In main.py, before starting the worker
    setup_logging()

Components do not reach for a global logger object: each one accepts a
``logging.Logger`` in its constructor and falls back to
``logging.getLogger(__name__)``.

Log Levels:
    DEBUG   - Cache hits/misses, per-user timings
    INFO    - Cycle start/finish, worker lifecycle
    WARNING - Degraded dependencies (Redis down, breaker open, push failed)
    ERROR   - A whole cycle failed
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from lineup_analytics.config import settings
from lineup_analytics.utils.context import get_cycle_id

# =============================================================================
# CONSTANTS
# =============================================================================

# Default text format: timestamp | level | cycle_id | logger_name | message
DEFAULT_TEXT_FORMAT = "%(asctime)s | %(levelname)-8s | %(cycle_id)s | %(name)s | %(message)s"
DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Placeholder when no cycle is running
NO_CYCLE_ID = "-"

# Third-party loggers to suppress (set to WARNING to reduce noise)
NOISY_LOGGERS = [
    "redis",
    "urllib3",
    "httpx",
    "httpcore",
    "asyncio",
    "sqlalchemy.engine",
    "uvicorn.access",
]

_STANDARD_ATTRS = {
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "stack_info", "exc_info", "exc_text", "thread", "threadName",
    "cycle_id", "message", "taskName",
}


# =============================================================================
# CYCLE ID FILTER
# =============================================================================

class CycleIdFilter(logging.Filter):
    """
    Logging filter that adds the current cycle ID to log records.

    Access in format string: %(cycle_id)s
    """

    def filter(self, record: logging.LogRecord) -> bool:
        record.cycle_id = get_cycle_id() or NO_CYCLE_ID
        return True


# =============================================================================
# JSON FORMATTER
# =============================================================================

class JsonFormatter(logging.Formatter):
    """
    JSON formatter for structured logging in production.

    Output format:
    {
        "timestamp": "2024-01-15T10:30:00.123+00:00",
        "level": "INFO",
        "logger": "lineup_analytics.services.worker.analytics_worker",
        "cycle_id": "performance_aggregation-3f2a9c1d",
        "message": "Performance aggregation completed",
        "extra": { ... }
    }
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "cycle_id": getattr(record, "cycle_id", NO_CYCLE_ID),
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        extra = {}
        for key, value in record.__dict__.items():
            if key not in _STANDARD_ATTRS:
                try:
                    json.dumps(value)
                    extra[key] = value
                except (TypeError, ValueError):
                    extra[key] = str(value)

        if extra:
            log_entry["extra"] = extra

        return json.dumps(log_entry)


# =============================================================================
# SETUP FUNCTION
# =============================================================================

def setup_logging(
        level: str | None = None,
        log_format: str | None = None,
        suppress_noisy_loggers: bool = True,
) -> None:
    """
    Configure application-wide logging with cycle ID support.

    Call once at process startup.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
               Defaults to settings.log_level.
        log_format: Output format ('text' or 'json').
                    Defaults to settings.log_format.
        suppress_noisy_loggers: If True, set third-party loggers to WARNING.
    """
    log_level_str = level or settings.log_level
    log_level = _get_log_level(log_level_str)
    format_type = log_format or settings.log_format

    if format_type.lower() == "json":
        formatter: logging.Formatter = JsonFormatter()
    else:
        formatter = logging.Formatter(
            fmt=DEFAULT_TEXT_FORMAT,
            datefmt=DEFAULT_DATE_FORMAT,
        )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    handler.addFilter(CycleIdFilter())

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    if suppress_noisy_loggers:
        _suppress_noisy_loggers()

    logger = logging.getLogger(__name__)
    logger.info(
        f"Logging configured: level={log_level_str}, format={format_type}",
        extra={"config": {"level": log_level_str, "format": format_type}},
    )


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def _get_log_level(level_str: str) -> int:
    """
    Convert string log level to logging constant.

    Raises:
        ValueError: If level_str is not a valid log level
    """
    level_str = level_str.upper().strip()

    level_mapping = {
        "DEBUG": logging.DEBUG,
        "INFO": logging.INFO,
        "WARNING": logging.WARNING,
        "WARN": logging.WARNING,
        "ERROR": logging.ERROR,
        "CRITICAL": logging.CRITICAL,
    }

    if level_str not in level_mapping:
        valid_levels = ", ".join(level_mapping.keys())
        raise ValueError(
            f"Invalid log level: '{level_str}'. "
            f"Valid levels are: {valid_levels}"
        )

    return level_mapping[level_str]


def _suppress_noisy_loggers() -> None:
    for logger_name in NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(logging.WARNING)
