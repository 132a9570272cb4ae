"""
Log output for the fitness assessment API.

Records are written to stdout either as one JSON object per line or as plain
text. Call sites attach request and store context through
``extra={"extra_fields": {...}}``, which the JSON formatter merges into the
top-level object.
"""
import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from core.config import settings

TEXT_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

# Third-party loggers that flood INFO with connection and query chatter
QUIET_LOGGERS = ("sqlalchemy.engine", "httpx", "google_genai")


class JSONFormatter(logging.Formatter):
    """One JSON line per record, with any ``extra_fields`` flattened in."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        extra_fields = getattr(record, "extra_fields", None)
        if isinstance(extra_fields, dict):
            payload.update(extra_fields)

        return json.dumps(payload, default=str)


def _wants_json(log_format: str, environment: str) -> bool:
    return log_format.lower() == "json" or environment == "production"


def setup_logging(level: Optional[str] = None, log_format: Optional[str] = None) -> logging.Logger:
    """
    Install a single stdout handler on the root logger.

    ``level`` and ``log_format`` default to LOG_LEVEL and LOG_FORMAT from the
    settings. Production always logs JSON.
    """
    log_level = getattr(logging, (level or settings.LOG_LEVEL).upper(), logging.INFO)
    if _wants_json(log_format or settings.LOG_FORMAT, settings.ENVIRONMENT):
        formatter: logging.Formatter = JSONFormatter()
    else:
        formatter = logging.Formatter(TEXT_FORMAT)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.setLevel(log_level)
    root.handlers.clear()
    root.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return root
