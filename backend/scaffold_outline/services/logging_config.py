"""Structured logging configuration for the outline pipeline."""
import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Optional

# Optional fields callers attach with ``extra={...}``
_EXTRA_FIELDS = ("drawing_id", "stage", "duration_ms", "timed_function")


class JSONFormatter(logging.Formatter):
    """JSON structured log formatter for production."""
    def format(self, record):
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)
        for name in _EXTRA_FIELDS:
            if hasattr(record, name):
                log_entry[name] = getattr(record, name)
        return json.dumps(log_entry, ensure_ascii=False)


def setup_logging(level: Optional[str] = None, json_output: Optional[bool] = None):
    """
    Configure application logging.

    ``level`` defaults to $LOG_LEVEL (INFO); ``json_output`` defaults to
    $LOG_FORMAT != "text".
    """
    if level is None:
        level = os.getenv("LOG_LEVEL", "INFO")
    if json_output is None:
        json_output = os.getenv("LOG_FORMAT", "json").lower() != "text"

    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    handler = logging.StreamHandler(sys.stdout)
    if json_output:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s [%(name)s] %(levelname)s: %(message)s"
        ))

    root.handlers = [handler]

    # Suppress noisy loggers
    for name in ["ezdxf", "PIL", "celery.redirected"]:
        logging.getLogger(name).setLevel(logging.WARNING)
