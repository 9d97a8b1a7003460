"""Logging setup: plain text or one JSON object per line."""
import json
import logging
import sys
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

_LOGGER_PREFIX = "spendwise"

_STDLIB_KEYS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
) | {"message", "taskName"}


class StructuredFormatter(logging.Formatter):
    """Formats each record as a single JSON line, merging ``extra`` fields."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, val in vars(record).items():
            if key not in _STDLIB_KEYS and key not in payload:
                payload[key] = val
        if record.exc_info and record.exc_info[1] is not None:
            payload["exc_type"] = type(record.exc_info[1]).__name__
            payload["traceback"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=_json_default)


def _json_default(obj: Any) -> Any:
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, datetime):
        return obj.isoformat()
    return str(obj)


def configure_logging(level: str = "INFO", fmt: str = "text") -> logging.Logger:
    """Attach a single stdout handler to the ``spendwise`` logger tree."""
    root = logging.getLogger(_LOGGER_PREFIX)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    if fmt == "json":
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        ))
    root.addHandler(handler)
    return root


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the spendwise namespace."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")
