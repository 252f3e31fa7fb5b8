"""
Structured logging for sync components.

Every component logs under the ``appdata_sync`` logger tree. When the
host opts in with ``configure_structured_logging``, records from that
tree are written as one JSON object per line, carrying the component
name and any sync context (remote file id, store key, status) attached
through ``SyncLoggerAdapter``.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from enum import Enum
from typing import Any, TextIO

PACKAGE_LOGGER = "appdata_sync"

# Attributes every LogRecord carries; anything else came from ``extra``
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {
    "message",
    "asctime",
}


def _jsonable(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    try:
        json.dumps(value)
    except (TypeError, ValueError):
        return str(value)
    return value


class StructuredJsonFormatter(logging.Formatter):
    """Render a record as a single-line JSON object.

    Fields: ``timestamp`` (record creation time, UTC ISO 8601), ``level``,
    ``logger``, ``component`` (logger name below the package, when there
    is one), ``message``, then every context field passed via ``extra``.
    Exceptions add ``error_type`` and the formatted ``exception``.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
        }
        prefix = f"{PACKAGE_LOGGER}."
        if record.name.startswith(prefix):
            entry["component"] = record.name[len(prefix):]
        entry["message"] = record.getMessage()

        if record.exc_info and record.exc_info[1] is not None:
            entry["error_type"] = type(record.exc_info[1]).__name__
            entry["exception"] = self.formatException(record.exc_info)

        entry.update(
            (key, _jsonable(value))
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRS and not key.startswith("_")
        )
        return json.dumps(entry, ensure_ascii=False)


def configure_structured_logging(
    level: int = logging.INFO,
    logger_name: str = PACKAGE_LOGGER,
    stream: TextIO | None = None,
) -> logging.Logger:
    """Send records from ``logger_name`` to ``stream`` as JSON lines.

    Calling this again replaces the handler rather than adding a second one.
    """
    logger = logging.getLogger(logger_name)
    logger.handlers.clear()

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(StructuredJsonFormatter())
    logger.addHandler(handler)
    logger.setLevel(level)
    return logger


def get_sync_logger(component: str) -> logging.Logger:
    """Logger for one sync component, e.g. ``get_sync_logger("service")``."""
    return logging.getLogger(f"{PACKAGE_LOGGER}.{component}")


class SyncLoggerAdapter(logging.LoggerAdapter):
    """Stamps sync context on every record.

    Context given at the call site overrides the adapter's own, and the
    caller's ``extra`` dict is left untouched.
    """

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs

    def bind(self, **context: Any) -> "SyncLoggerAdapter":
        """New adapter with additional context."""
        return SyncLoggerAdapter(self.logger, {**self.extra, **context})
