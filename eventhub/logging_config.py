"""One JSON object per log line, with ``extra=`` fields lifted to the top level."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import IO, Any

# Attributes every LogRecord carries; anything else came in through ``extra=``.
_RESERVED = set(vars(logging.makeLogRecord({}))) | {"message", "asctime"}

# Chatty third-party loggers kept at WARNING unless running at DEBUG.
_QUIET = ("httpx", "httpcore", "aiosqlite")


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(
                timespec="milliseconds"
            ),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _RESERVED and not key.startswith("_")
        )
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        if record.stack_info:
            entry["stack"] = self.formatStack(record.stack_info)
        return json.dumps(entry, default=str)


def _resolve_level(name: str) -> int:
    return logging.getLevelNamesMapping().get(name.strip().upper(), logging.INFO)


def setup_logging(log_level: str = "INFO", stream: IO[str] | None = None) -> None:
    """Send all records to *stream* (stderr by default) as JSON lines.

    Handlers installed earlier are replaced. Unknown level names fall back
    to INFO.
    """
    level = _resolve_level(log_level)
    handler = logging.StreamHandler(stream)
    handler.setFormatter(JsonFormatter())
    logging.basicConfig(level=level, handlers=[handler], force=True)

    for name in _QUIET:
        logging.getLogger(name).setLevel(level if level <= logging.DEBUG else logging.WARNING)
