# backend/position_tracker/utils/logging.py
"""
Logging setup for the Position Tracker.

One stdout handler on the root logger, in text or JSON (LOG_FORMAT), with
the request's correlation ID on every record. Backfill threads log under
their own thread names (``price-backfill_N``) so interleaved fetches can
be told apart.

Levels used across the codebase:
    DEBUG   - per-instrument simulation detail, skipped fetches
    INFO    - requests served, backfill runs, prices stored
    WARNING - failed fetches, oversells, missing metadata
    ERROR   - backfill timeouts, storage failures
"""

import json
import logging
import sys
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from position_tracker.config import settings
from position_tracker.utils.context import get_correlation_id

TEXT_FORMAT = "%(asctime)s | %(levelname)-8s | %(correlation_id)s | %(threadName)s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

NO_CORRELATION_ID = "no-correlation-id"

# yfinance and the HTTP clients underneath it
NOISY_LOGGERS = ("yfinance", "peewee", "urllib3", "requests", "curl_cffi", "httpx", "httpcore")

# Attributes every LogRecord has; anything else came in through ``extra=``
_RECORD_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", None, None).__dict__
) | {"message", "asctime", "correlation_id"}


class CorrelationIdFilter(logging.Filter):
    """Sets ``record.correlation_id`` from the request context."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = get_correlation_id() or NO_CORRELATION_ID
        return True


class JsonFormatter(logging.Formatter):
    """
    One JSON object per line.

    Example:
        {"timestamp": "2024-02-10T09:15:02.120000+00:00", "level": "INFO",
         "logger": "position_tracker.services.market_data.backfill",
         "correlation_id": "3f1c...", "thread": "price-backfill_0",
         "message": "Backfill finished: 3 quotes, 0 failed",
         "extra": {"quote_id": 7}}

    Decimal extras are written as strings so no precision is lost.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "correlation_id": getattr(record, "correlation_id", NO_CORRELATION_ID),
            "thread": record.threadName,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        extra = {k: v for k, v in record.__dict__.items() if k not in _RECORD_ATTRS}
        if extra:
            entry["extra"] = extra

        return json.dumps(entry, default=_json_default)


def _json_default(value: Any) -> str:
    if isinstance(value, Decimal):
        return str(value)
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return repr(value)


def setup_logging(level: str | None = None, log_format: str | None = None) -> None:
    """
    Install the root handler. Safe to call more than once.

    Args:
        level: Level name, defaults to settings.log_level
        log_format: "text" or "json", defaults to settings.log_format

    Raises:
        ValueError: If the level name is unknown
    """
    level_name = (level or settings.log_level).upper().strip()
    log_level = logging.getLevelName(level_name)
    if not isinstance(log_level, int):
        raise ValueError(f"Invalid log level: '{level_name}'")

    format_type = (log_format or settings.log_format).lower()
    if format_type == "json":
        formatter: logging.Formatter = JsonFormatter()
    else:
        formatter = logging.Formatter(fmt=TEXT_FORMAT, datefmt=DATE_FORMAT)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    handler.addFilter(CorrelationIdFilter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(log_level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(__name__).info(f"Logging configured: level={level_name}, format={format_type}")
