"""Logging setup for the CLI and the HTTP service.

Modules log through `get_logger(__name__)`; entrypoints call
`configure_logging()` once with the level and format from Settings. Run
identifiers (tenant, trace, node) travel as `extra=` fields, which the JSON
formatter lifts into the payload.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, is_dataclass
from datetime import datetime, timezone
from typing import Any, Dict

# Attributes every LogRecord carries; anything else arrived through `extra=`
_STANDARD_ATTRS = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime"}

TEXT_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def _jsonable(value: Any) -> Any:
    if is_dataclass(value) and not isinstance(value, type):
        return asdict(value)
    return value


class JsonLogFormatter(logging.Formatter):
    """One JSON object per record, with run identifiers as top-level keys."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "time": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(
            (key, _jsonable(value))
            for key, value in record.__dict__.items()
            if key not in _STANDARD_ATTRS and not key.startswith("_")
        )
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def configure_logging(*, level: str = "INFO", json_logs: bool = False) -> None:
    """Install a stderr handler on the root logger unless one exists.

    Args:
        level: Root log level name, e.g. ``"DEBUG"``.
        json_logs: Emit JSON lines instead of plain text.
    """
    root = logging.getLogger()
    if root.handlers:
        return
    handler = logging.StreamHandler()
    handler.setFormatter(JsonLogFormatter() if json_logs else logging.Formatter(TEXT_FORMAT))
    root.addHandler(handler)
    root.setLevel(level.upper())


def get_logger(name: str) -> logging.Logger:
    """Logger under the ``rcaflow`` namespace."""
    if name != "rcaflow" and not name.startswith("rcaflow."):
        name = f"rcaflow.{name}"
    return logging.getLogger(name)
