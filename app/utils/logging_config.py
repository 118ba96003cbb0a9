import json
import logging
import logging.config
import os
import uuid
from datetime import datetime, UTC
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel

# LogRecord attributes that are not user supplied context
RESERVED_ATTRS = frozenset(
    [
        "timestamp",
        "level",
        "message",
        "logger",
        "request_id",
        "exc_info",
        "extra",
        "args",
        "exc_text",
        "stack_info",
        "created",
        "msecs",
        "relativeCreated",
        "levelno",
        "levelname",
        "msg",
        "name",
        "pathname",
        "filename",
        "module",
        "lineno",
        "funcName",
        "processName",
        "process",
        "threadName",
        "thread",
        "taskName",
        "req_id",
    ]
)


class JSONFormatter(logging.Formatter):
    def __init__(self) -> None:
        super().__init__()

    def _serialize_object(self, obj: Any) -> Any:
        if isinstance(obj, BaseModel):
            return obj.model_dump(mode="json")
        if isinstance(obj, Enum):
            return obj.value
        if isinstance(obj, datetime):
            return obj.isoformat()
        if isinstance(obj, Exception):
            return str(obj)
        if isinstance(obj, (set, frozenset)):
            return sorted(str(item) for item in obj)
        if isinstance(obj, (list, dict, str, int, float, bool)) or obj is None:
            return obj
        return str(obj)

    def format(self, record: logging.LogRecord) -> str:
        log_record = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
            "request_id": getattr(record, "req_id", None) or generate_request_id(),
        }

        if record.exc_info:
            log_record["exc_info"] = self.formatException(record.exc_info)

        # Everything passed through ``extra=`` ends up on the record itself
        for key, value in record.__dict__.items():
            if key not in RESERVED_ATTRS:
                log_record[key] = self._serialize_object(value)

        return json.dumps(log_record, default=self._serialize_object)


def generate_request_id() -> str:
    return str(uuid.uuid4())


def setup_logging(log_dir: str | Path | None = None) -> None:
    """Configure logging for the application."""
    log_dir = Path(log_dir or os.getenv("LOG_DIR", "logs"))
    log_dir.mkdir(parents=True, exist_ok=True)

    logging_config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {
                "()": "app.utils.logging_config.JSONFormatter",
            }
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "json",
                "stream": "ext://sys.stdout",
            },
            "file": {
                "class": "logging.FileHandler",
                "formatter": "json",
                "filename": str(log_dir / "app.log"),
                "mode": "a",
            },
        },
        "root": {
            "level": os.getenv("LOG_LEVEL", "INFO").upper(),
            "handlers": ["console", "file"],
        },
    }

    root = logging.getLogger()
    root.handlers = []

    logging.config.dictConfig(logging_config)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance.

    This will return a logger that inherits settings from the root logger,
    including log level and handlers.
    """
    return logging.getLogger(name)
