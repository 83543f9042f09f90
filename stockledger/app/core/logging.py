"""Structured JSON logging for the stock ledger."""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

__all__ = [
    "StructuredFormatter",
    "get_logger",
    "configure_logging",
]

_LOGGER_PREFIX = "stockledger"

_STDLIB_KEYS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
) | {"message", "taskName"}


class StructuredFormatter(logging.Formatter):
    """Une ligne JSON par record."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        # champs passés via extra={...}
        for key, val in vars(record).items():
            if key not in _STDLIB_KEYS and key not in payload:
                payload[key] = val

        if record.exc_info and record.exc_info[1] is not None:
            exc = record.exc_info[1]
            payload["exc_type"] = type(exc).__name__
            payload["exc_message"] = str(exc)
            code = getattr(exc, "code", None)
            if code is not None:
                payload["exc_code"] = code
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str)


def get_logger(name: str) -> logging.Logger:
    """Logger rangé sous le namespace stockledger."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


def configure_logging(level: str = "INFO", json_output: bool = True) -> None:
    root = logging.getLogger(_LOGGER_PREFIX)
    root.setLevel(level)
    root.propagate = False

    for handler in list(root.handlers):
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    if json_output:
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
    root.addHandler(handler)
