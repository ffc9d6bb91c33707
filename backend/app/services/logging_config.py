"""Structured logging configuration for PraxisFlow HR."""
import logging
import json
import sys
from datetime import datetime, timezone

# ``extra=`` keys copied into the JSON line when present.
# Staff identifiers are never passed as extras.
EXTRA_FIELDS = (
    "request_id",
    "practice_id",
    "aggregation_level",
    "k_used",
    "snapshot_count",
    "duration_ms",
    "http_method",
    "http_path",
    "http_status",
    "error_code",
)

QUIET_LOGGERS = ("uvicorn.access", "httpcore", "httpx", "sqlalchemy.engine", "asyncpg")

TEXT_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"


class JSONFormatter(logging.Formatter):
    """One JSON object per line, for log shipping in production."""
    def format(self, record):
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "function": record.funcName,
            "line": record.lineno,
        }
        for name in EXTRA_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                entry[name] = value
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def setup_logging(level: str = "INFO", json_output: bool = True):
    """Route all loggers to stdout, as JSON lines or plain text."""
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter() if json_output else logging.Formatter(TEXT_FORMAT))

    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.handlers = [handler]

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
