from __future__ import annotations

import json
import logging
import sys
from typing import Any

from taxcore.core.config import settings

PLAIN_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

# Attributes every LogRecord carries; anything else was passed via ``extra=``.
_RESERVED_ATTRS = frozenset(vars(logging.makeLogRecord({})).keys()) | {"message", "asctime"}


class JsonFormatter(logging.Formatter):
    """One JSON object per line; ``extra=`` fields are nested under ``context``."""

    def __init__(self, service: str = "taxcore"):
        super().__init__()
        self.service = service

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "service": self.service,
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        context = {
            key: value
            for key, value in record.__dict__.items()
            if not key.startswith("_") and key not in _RESERVED_ATTRS
        }
        if context:
            payload["context"] = context
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def build_handler(log_format: str) -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    if log_format.lower() == "json":
        handler.setFormatter(JsonFormatter(settings.APP_NAME))
    else:
        handler.setFormatter(logging.Formatter(PLAIN_FORMAT))
    return handler


def init_logging(level: int | None = None) -> None:
    """Install the stdout handler once; later calls are no-ops."""
    root = logging.getLogger()
    if root.handlers:
        return
    effective_level = level or getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
    root.setLevel(effective_level)
    root.addHandler(build_handler(settings.LOG_FORMAT))
    logging.getLogger("sqlalchemy.engine").setLevel(max(effective_level, logging.WARNING))
