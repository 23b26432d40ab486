"""Structured logging: JSON formatter and one-shot setup.

Extra fields (user_id, recurring_id, goal_id, path) are surfaced when a log
call passes them through ``extra``.
"""

import json
import logging
from datetime import datetime, timezone

EXTRA_FIELDS = ("user_id", "recurring_id", "goal_id", "path", "method", "executed")


class JSONFormatter(logging.Formatter):
    """Render each record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        log = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in EXTRA_FIELDS:
            val = record.__dict__.get(key)
            if val is not None:
                log[key] = val
        if record.exc_info:
            log["exception"] = self.formatException(record.exc_info)
        return json.dumps(log, ensure_ascii=False, default=str)


def setup_logging(level: str = "INFO", fmt: str = "text") -> None:
    handler = logging.StreamHandler()
    if fmt == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s: %(message)s",
        ))
    root = logging.getLogger()
    for existing in list(root.handlers):
        if getattr(existing, "_fintrack_handler", False):
            root.removeHandler(existing)
    handler._fintrack_handler = True
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
