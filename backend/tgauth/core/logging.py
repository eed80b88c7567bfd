"""Structured JSON logging for the auth service (одна строка — один JSON-объект)."""
from __future__ import annotations

import json
import logging
import sys
import time


SERVICE = "tgauth"

_STANDARD_ATTRS = (
    "name", "msg", "args", "created", "filename", "funcName", "levelname",
    "levelno", "lineno", "module", "msecs", "pathname", "process",
    "processName", "relativeCreated", "stack_info", "exc_info", "exc_text",
    "message", "taskName", "thread", "threadName", "event", "telegram_user_id",
)


class JsonFormatter(logging.Formatter):
    """One JSON object per line: timestamp, level, service, event, message + extras."""

    def format(self, record: logging.LogRecord) -> str:
        log = {
            "timestamp": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(record.created)),
            "level": record.levelname,
            "service": SERVICE,
            "event": getattr(record, "event", "log"),
            "message": record.getMessage(),
        }
        if getattr(record, "telegram_user_id", None):
            log["telegram_user_id"] = record.telegram_user_id
        if record.exc_info:
            log["exception"] = self.formatException(record.exc_info)
        # any extra passed via logger.info(..., extra={...})
        for k, v in record.__dict__.items():
            if k not in _STANDARD_ATTRS and v is not None:
                log[k] = v
        return json.dumps(log, ensure_ascii=False, default=str)


def setup_logging(level: str = "INFO") -> None:
    """Configure root logger: JSON to stdout."""
    root = logging.getLogger()
    root.setLevel(level)
    if not root.handlers:
        h = logging.StreamHandler(sys.stdout)
        h.setFormatter(JsonFormatter())
        root.addHandler(h)