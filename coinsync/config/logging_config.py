"""
Root logging for the console runner.

LOG_LEVEL picks the level (INFO when unset or unknown) and LOG_JSON=1 writes
one JSON object per line. Records go to stderr so they never interleave with
the price board on stdout. Library modules only call getLogger(__name__).
"""
import json
import logging
import os
import sys
from datetime import datetime, timezone

TEXT_FORMAT = "%(asctime)s %(levelname)-7s [%(threadName)s] %(name)s: %(message)s"
_TRUTHY = ("1", "true", "yes", "on")


def _level_from_env() -> int:
    level = logging.getLevelName((os.getenv("LOG_LEVEL") or "INFO").strip().upper())
    return level if isinstance(level, int) else logging.INFO


class JsonFormatter(logging.Formatter):
    """Thread names keep scheduler and manual refresh cycles apart."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "time": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "thread": record.threadName,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


def configure_logging(stream=None) -> logging.Handler:
    level = _level_from_env()
    handler = logging.StreamHandler(stream or sys.stderr)
    if os.getenv("LOG_JSON", "").strip().lower() in _TRUTHY:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT))

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)

    # connection pool chatter from requests
    logging.getLogger("urllib3").setLevel(max(level, logging.WARNING))
    return handler
