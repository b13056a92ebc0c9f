"""Structured logging configuration.

JSON lines in production, a plain format for local runs. Every record carries
the request id and acting user from the log context; the matching context
passed in ``extra`` (project, job, candidate, rule) is promoted to top-level
keys so log search can filter on it.
"""

import logging
import json
import sys
from datetime import datetime, timezone

from .context import current_actor_id, get_request_id

# Structured extras promoted to top-level JSON keys
CONTEXT_FIELDS = (
    "project_id", "job_id", "candidate_id", "store_item_id", "rule_id", "task_id",
    "stage", "path", "status_code", "duration_ms",
)


class RequestContextFilter(logging.Filter):
    """Stamp request_id and actor_id on every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id()
        record.actor_id = current_actor_id() or "-"
        return True


class JSONFormatter(logging.Formatter):
    """Format log records as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "request_id": getattr(record, "request_id", "no-request-id"),
            "actor_id": getattr(record, "actor_id", "-"),
            "module": record.module,
            "function": record.funcName,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_data["error"] = str(record.exc_info[1])
            log_data["traceback"] = self.formatException(record.exc_info)

        for key in CONTEXT_FIELDS:
            if hasattr(record, key):
                value = getattr(record, key)
                log_data[key] = value if isinstance(value, (int, float)) else (
                    str(value) if value is not None else None
                )

        return json.dumps(log_data, default=str)


def configure_logging(level: str = "INFO", json_format: bool = True) -> None:
    """Configure application-wide logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_format: If True, use JSON formatter; otherwise use simple format
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(getattr(logging, level.upper()))
    if json_format:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(levelname)s - %(request_id)s - %(actor_id)s - %(name)s - %(message)s'
        ))
    handler.addFilter(RequestContextFilter())
    root_logger.addHandler(handler)

    # Suppress noisy third-party loggers
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("celery.app.trace").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
