"""
Logging setup for mathequiv.

Library modules only call ``logging.getLogger(__name__)`` and pass structured
fields through ``extra=``. Applications (the CLI included) call
``configure_logging`` once to attach a handler that renders those fields
either as trailing ``key=value`` pairs or as one JSON object per line.

Environment:
    MATHEQUIV_LOG_LEVEL   level name, default WARNING
    MATHEQUIV_LOG_JSON    "1"/"true" selects the JSON formatter
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional, TextIO

# Attributes every LogRecord has; anything else came in through ``extra=``.
_RESERVED = {
    "args", "asctime", "created", "exc_info", "exc_text", "filename",
    "funcName", "levelname", "levelno", "lineno", "module",
    "msecs", "message", "msg", "name", "pathname", "process",
    "processName", "relativeCreated", "stack_info", "thread",
    "threadName", "taskName",
}


def _extra_fields(record: logging.LogRecord) -> Dict[str, Any]:
    return {k: v for k, v in record.__dict__.items() if k not in _RESERVED}


class JsonFormatter(logging.Formatter):
    """JSON formatter for logging records"""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
        }
        log_data.update(_extra_fields(record))
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_data, default=str)


class TextFormatter(logging.Formatter):
    """Text formatter that appends extra fields to the message"""

    def format(self, record: logging.LogRecord) -> str:
        s = super().format(record)
        extra = _extra_fields(record)
        if extra:
            s += " " + " ".join(f"{k}={v}" for k, v in extra.items())
        return s


def configure_logging(level: Optional[str] = None, json_format: Optional[bool] = None,
                      stream: Optional[TextIO] = None) -> logging.Logger:
    """Attach a single handler to the ``mathequiv`` logger.

    Calling it again replaces the previous handler rather than stacking a
    second one.
    """
    if level is None:
        level = os.getenv("MATHEQUIV_LOG_LEVEL", "WARNING")
    if json_format is None:
        json_format = os.getenv("MATHEQUIV_LOG_JSON", "").strip().lower() in ("1", "true", "yes")

    logger = logging.getLogger("mathequiv")
    logger.setLevel(level.upper() if isinstance(level, str) else level)
    if logger.hasHandlers():
        logger.handlers.clear()
    logger.propagate = False

    if json_format:
        formatter: logging.Formatter = JsonFormatter()
    else:
        formatter = TextFormatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(formatter)
    logger.addHandler(handler)
    return logger
