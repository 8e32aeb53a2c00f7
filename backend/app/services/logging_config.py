"""Structured logging configuration for Precision Pulse."""
import logging
import json
import sys
from datetime import datetime, timezone

# Attributes passed through ``extra=`` that the JSON formatter promotes to top-level keys
_EXTRA_FIELDS = (
    "request_id",
    "duration_ms",
    "http_method",
    "http_path",
    "http_status",
    "user_id",
    "building",
    "shift",
    "container_id",
    "target_user_id",
    "role",
    "fields",
    "rollup",
    "row_count",
)


class JSONFormatter(logging.Formatter):
    """One JSON object per line for log shipping."""
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
        return json.dumps(log_entry, default=str)


def setup_logging(level: str = "INFO", json_output: bool = True):
    """Configure the root logger with a single stdout handler."""
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

    for name in ["uvicorn.access", "sqlalchemy.engine", "passlib"]:
        logging.getLogger(name).setLevel(logging.WARNING)
