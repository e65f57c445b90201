"""
Centralized logging configuration with structured logging support.
"""
import json
import logging
import logging.config
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from prepgen.config import settings


class JSONFormatter(logging.Formatter):
    """
    JSON formatter for production logging.

    Produces structured log entries with consistent fields for log aggregation.
    """

    # Structured fields that callers may attach via ``extra=``
    EXTRA_FIELDS = (
        "model",
        "attempt",
        "session_id",
        "question_index",
        "error_category",
        "parse_strategy",
    )

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        timestamp = datetime.fromtimestamp(record.created, tz=timezone.utc)
        log_entry: Dict[str, Any] = {
            "timestamp": timestamp.isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for field in self.EXTRA_FIELDS:
            if hasattr(record, field):
                log_entry[field] = getattr(record, field)

        # Add source location for error-level logs
        if record.levelno >= logging.ERROR:
            log_entry["source"] = f"{record.pathname}:{record.lineno}"

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


def build_logging_config(
    level: Optional[str] = None,
    json_format: Optional[bool] = None,
) -> Dict[str, Any]:
    """
    Build a dictConfig mapping for the pipeline.

    Args:
        level: Log level name, defaults to ``settings.log_level``
        json_format: Use JSON output, defaults to production env or
            ``settings.log_format == "json"``

    Returns:
        Configuration dictionary for ``logging.config.dictConfig``
    """
    level_name = (level or settings.log_level or "INFO").upper()
    log_level = getattr(logging, level_name, logging.INFO)

    if json_format is None:
        json_format = settings.env == "production" or settings.log_format == "json"

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
            "json": {
                "()": JSONFormatter,
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": log_level,
                "formatter": "json" if json_format else "default",
                "stream": sys.stderr,
            },
        },
        "root": {
            "level": log_level,
            "handlers": ["console"],
        },
        "loggers": {
            "prepgen": {
                "level": log_level,
                "handlers": ["console"],
                "propagate": False,
            },
            # The OpenAI SDK and its transport log every request at INFO
            "openai": {
                "level": logging.WARNING,
                "handlers": ["console"],
                "propagate": False,
            },
            "httpx": {
                "level": logging.WARNING,
                "handlers": ["console"],
                "propagate": False,
            },
        },
    }


def setup_logging(level: Optional[str] = None, json_format: Optional[bool] = None) -> None:
    """
    Configure application-wide logging.

    Args:
        level: Log level name override
        json_format: Force JSON (True) or human-readable (False) output
    """
    logging.config.dictConfig(build_logging_config(level=level, json_format=json_format))
