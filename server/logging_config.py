"""
Log output for the Spiller server.

Game code logs through plain `logging` and tags records with
`extra={"room_code": ..., "player_id": ...}`. The formatters here lift
those tags into each line: JSON in production, a compact colored line
everywhere else.
"""

import json
import logging
import sys
from datetime import datetime, timezone

QUIET_LOGGERS = ("uvicorn.access", "uvicorn.error", "websockets", "asyncio")


def record_context(record: logging.LogRecord) -> dict:
    """Room and player tags attached to a record, skipping empty ones."""
    context = {}
    for name in ("room_code", "player_id"):
        value = getattr(record, name, None)
        if value:
            context[name] = value
    return context


class JSONFormatter(logging.Formatter):
    """One JSON object per line, room and player tags as top-level keys."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **record_context(record),
        }
        if record.levelno >= logging.ERROR:
            entry["source"] = f"{record.pathname}:{record.lineno}"
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class DevelopmentFormatter(logging.Formatter):
    """`12:00:01.123 INFO     game [room=ab12cd player=p1] - Alice joined`"""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        level = f"{color}{record.levelname:8}\033[0m" if color else f"{record.levelname:8}"

        tags = record_context(record)
        if "player_id" in tags:
            tags["player"] = tags.pop("player_id")[:8]
        if "room_code" in tags:
            tags["room"] = tags.pop("room_code")
        context = " [" + ", ".join(f"{k}={v}" for k, v in sorted(tags.items(), reverse=True)) + "]" if tags else ""

        line = f"{datetime.now():%H:%M:%S.%f}"[:-3]
        line += f" {level} {record.name}{context} - {record.getMessage()}"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def setup_logging(level: str = "INFO", environment: str = "development") -> None:
    """Send all logs to stdout, JSON when environment is production."""
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter() if environment == "production" else DevelopmentFormatter())

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(__name__).info(f"Logging configured: level={level}, environment={environment}")
