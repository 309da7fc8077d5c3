"""Logging configuration for the backfill job.

Progress goes to stdout, errors go to stderr so an operator can tell them
apart when piping the job's output.
"""
from __future__ import annotations

import json
import logging
import logging.config
from pathlib import Path

from .config import LoggingSettings

TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DETAILED_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s"
JSON_FIELDS = {
    "timestamp": "asctime",
    "level": "levelname",
    "logger": "name",
    "message": "message",
}


class JsonFormatter(logging.Formatter):
    """One JSON object per record; the message is escaped by json.dumps."""

    def format(self, record: logging.LogRecord) -> str:
        record.message = record.getMessage()
        record.asctime = self.formatTime(record, self.datefmt)
        payload = {key: getattr(record, attr) for key, attr in JSON_FIELDS.items()}
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


class MaxLevelFilter(logging.Filter):
    """Pass only records strictly below ``level``."""

    def __init__(self, level: str | int = logging.ERROR) -> None:
        super().__init__()
        self.level = logging.getLevelName(level) if isinstance(level, str) else level

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno < self.level


def build_logging_config(logging_settings: LoggingSettings) -> dict:
    """Build a ``dictConfig`` mapping from settings."""
    formatter = "json" if logging_settings.format == "json" else "simple"
    level = logging_settings.level.upper()

    handlers: dict[str, dict] = {
        "stdout": {
            "class": "logging.StreamHandler",
            "level": "DEBUG",
            "formatter": formatter,
            "stream": "ext://sys.stdout",
            "filters": ["below_error"],
        },
        "stderr": {
            "class": "logging.StreamHandler",
            "level": "ERROR",
            "formatter": formatter,
            "stream": "ext://sys.stderr",
        },
    }
    if logging_settings.file:
        Path(logging_settings.file).parent.mkdir(parents=True, exist_ok=True)
        handlers["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "level": "DEBUG",
            "formatter": "detailed",
            "filename": logging_settings.file,
            "maxBytes": 10485760,  # 10MB
            "backupCount": 5,
        }

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {
            "below_error": {
                "()": MaxLevelFilter,
                "level": "ERROR",
            },
        },
        "formatters": {
            "simple": {"format": TEXT_FORMAT, "datefmt": "%Y-%m-%d %H:%M:%S"},
            "detailed": {"format": DETAILED_FORMAT, "datefmt": "%Y-%m-%d %H:%M:%S"},
            "json": {"()": JsonFormatter, "datefmt": "%Y-%m-%d %H:%M:%S"},
        },
        "handlers": handlers,
        "loggers": {
            "": {
                "level": level,
                "handlers": list(handlers),
            },
            "sqlalchemy": {
                "level": "WARNING",
                "propagate": True,
            },
        },
    }


def setup_logging(logging_settings: LoggingSettings | None = None) -> None:
    """Configure the root logger."""
    logging.config.dictConfig(build_logging_config(logging_settings or LoggingSettings()))
