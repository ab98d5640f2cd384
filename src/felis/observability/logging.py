"""Structured logging for the cache layer.

Two formatters share one set of correlation context variables:
- JsonFormatter: one orjson object per line, for log aggregation
- ConsoleFormatter: aligned single-line output for development

Context is bound with LogContext around a unit of work. Mutations bind the
acting viewer, so invalidation warnings raised deep in the executor can be
traced back to the like or update that caused them:

    with LogContext(viewer_id=user_id):
        await coordinator.update(cat_id, {"total_likes": 3}, viewer_id=user_id)
"""

from __future__ import annotations

import contextvars
import logging
import sys
from datetime import datetime, timezone
from typing import Any

import orjson

request_id_var: contextvars.ContextVar[str] = contextvars.ContextVar("request_id", default="")
viewer_id_var: contextvars.ContextVar[str] = contextvars.ContextVar("viewer_id", default="")

_CONTEXT_VARS: dict[str, contextvars.ContextVar[str]] = {
    "request_id": request_id_var,
    "viewer_id": viewer_id_var,
}

# Attributes every LogRecord carries; anything else arrived through `extra=`
_RECORD_ATTRS = frozenset(
    logging.LogRecord("", logging.NOTSET, "", 0, "", None, None).__dict__
) | {"message", "taskName"}


def current_context() -> dict[str, str]:
    """Correlation values bound in the current context, skipping empty ones."""
    return {name: value for name, var in _CONTEXT_VARS.items() if (value := var.get())}


class JsonFormatter(logging.Formatter):
    """Format records as JSON objects.

    {"timestamp": "...", "level": "WARNING", "logger": "felis.cache.invalidation",
     "message": "Invalidation of scope owner:U1 failed: ...", "viewer_id": "u-7"}
    """

    def format(self, record: logging.LogRecord) -> str:
        data: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "function": record.funcName,
            "line": record.lineno,
        }
        data.update(current_context())

        if record.exc_info and record.exc_info[0] is not None:
            data["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": self.formatException(record.exc_info),
            }

        for key, value in record.__dict__.items():
            if key not in _RECORD_ATTRS and not key.startswith("_"):
                data[key] = value

        return orjson.dumps(data, default=str).decode()


class ConsoleFormatter(logging.Formatter):
    """Human-readable formatter.

    2026-01-10 12:34:56 | WARNING  | felis.cache.read_through | Cache read failed | viewer=u-7
    """

    LEVEL_COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self, use_colors: bool = True) -> None:
        super().__init__()
        self.use_colors = use_colors and sys.stderr.isatty()

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).strftime("%Y-%m-%d %H:%M:%S")
        level = f"{record.levelname:8}"
        if self.use_colors:
            level = f"{self.LEVEL_COLORS.get(record.levelname, '')}{level}{self.RESET}"

        line = f"{timestamp} | {level} | {record.name} | {record.getMessage()}"

        context = current_context()
        parts = []
        if "request_id" in context:
            parts.append(f"req={context['request_id'][:8]}")
        if "viewer_id" in context:
            parts.append(f"viewer={context['viewer_id']}")
        if parts:
            line += f" | {' '.join(parts)}"

        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(
    json_format: bool = True, level: str = "INFO", use_colors: bool = True
) -> None:
    """Install a single stderr handler on the root logger.

    Args:
        json_format: JSON lines instead of console lines
        level: root log level name
        use_colors: ANSI level colors for console output on a TTY
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper()))
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JsonFormatter() if json_format else ConsoleFormatter(use_colors))
    root.addHandler(handler)

    # Client libraries log every command at DEBUG
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("redis").setLevel(logging.WARNING)


class LogContext:
    """Bind correlation values for the duration of a block.

    Unknown names are ignored; empty or None values leave the outer binding
    in place.
    """

    def __init__(self, **values: str | None) -> None:
        self.values = values
        self._tokens: dict[str, contextvars.Token[str]] = {}

    def __enter__(self) -> LogContext:
        for name, value in self.values.items():
            var = _CONTEXT_VARS.get(name)
            if var is not None and value:
                self._tokens[name] = var.set(value)
        return self

    def __exit__(self, *args: Any) -> None:
        for name, token in self._tokens.items():
            _CONTEXT_VARS[name].reset(token)
        self._tokens.clear()
