"""Structured JSON logging utilities."""

import json
import logging
import sys
import time
from typing import Any


class StructuredLogger:
    """Emits one compact JSON object per event: ts, level, event name, then the fields."""

    def __init__(self, name: str, level: int | None = None):
        self.logger = logging.getLogger(name)
        if level is not None:
            self.logger.setLevel(level)

    def _log(self, level: int, event: str, **fields: Any) -> None:
        if not self.logger.isEnabledFor(level):
            return
        record = {
            "ts": round(time.time(), 3),
            "level": logging.getLevelName(level),
            "event": event,
            **fields,
        }
        try:
            self.logger.log(level, json.dumps(record, separators=(",", ":"), default=str))
        except (TypeError, ValueError) as err:
            self.logger.log(level, f"LOG_SERIALIZE_ERROR event={event} error={err}")

    def debug(self, event: str, **fields: Any) -> None:
        self._log(logging.DEBUG, event, **fields)

    def info(self, event: str, **fields: Any) -> None:
        self._log(logging.INFO, event, **fields)

    def warning(self, event: str, **fields: Any) -> None:
        self._log(logging.WARNING, event, **fields)

    def error(self, event: str, **fields: Any) -> None:
        self._log(logging.ERROR, event, **fields)


def get_logger(name: str) -> StructuredLogger:
    """Get a structured logger instance for a specific module."""
    return StructuredLogger(name)


def configure_logging(level: str | int = logging.INFO) -> None:
    """Attach a single stdout handler to the package logger.

    Messages from StructuredLogger are already JSON, so the handler prints them verbatim.
    """
    root = logging.getLogger("weather_service")
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    root.setLevel(level)
    if not root.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter("%(message)s"))
        root.addHandler(handler)
