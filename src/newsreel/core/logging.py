"""Logger setup with JSON and text formatters.

Run-scoped fields (``run_id``, ``program``, ``step``) travel on the records
themselves, bound through :func:`bind_run_logger` and handed to each run's
context, so no module-level state is needed to correlate log lines.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

ROOT_LOGGER = "newsreel"
_BOUND_FIELDS = ("run_id", "program", "step")


def _bound(record: logging.LogRecord) -> dict[str, Any]:
    return {
        name: getattr(record, name)
        for name in _BOUND_FIELDS
        if getattr(record, name, None) is not None
    }


class JsonFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(_bound(record))
        data = getattr(record, "data", None)
        if data:
            entry["data"] = data
        if record.exc_info and record.exc_info[1] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable formatter for development."""

    def format(self, record: logging.LogRecord) -> str:
        parts = [
            datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S"),
            f"[{record.levelname:8s}]",
            record.name,
        ]
        bound = _bound(record)
        if "run_id" in bound:
            parts.append(f"[{bound.get('program', '?')}:{bound['run_id']}]")
        if "step" in bound:
            parts.append(f"({bound['step']})")
        parts.append(f"- {record.getMessage()}")
        data = getattr(record, "data", None)
        if data:
            parts.append("| " + " ".join(f"{k}={v}" for k, v in data.items() if v is not None))
        text = " ".join(parts)
        if record.exc_info and record.exc_info[1] is not None:
            text = f"{text}\n{self.formatException(record.exc_info)}"
        return text


class RunLoggerAdapter(logging.LoggerAdapter):
    """Adapter that merges bound run fields with per-call extras."""

    def process(self, msg: Any, kwargs: Any) -> tuple[Any, Any]:
        extra = dict(self.extra or {})
        extra.update(kwargs.get("extra") or {})
        kwargs["extra"] = extra
        return msg, kwargs

    def for_step(self, step: str) -> "RunLoggerAdapter":
        return RunLoggerAdapter(self.logger, {**(self.extra or {}), "step": step})


def bind_run_logger(logger: logging.Logger, run_id: str, program: str) -> RunLoggerAdapter:
    """Logger bound to one run, passed explicitly through its context."""
    return RunLoggerAdapter(logger, {"run_id": run_id, "program": program})


def get_logger(name: str) -> logging.Logger:
    """Get a named logger under the package root. Configured by setup_logging()."""
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


def setup_logging(level: str = "INFO", log_format: str = "text") -> None:
    """Configure the root newsreel logger.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR).
        log_format: Output format ("json" or "text").
    """
    root_logger = logging.getLogger(ROOT_LOGGER)
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    root_logger.handlers.clear()

    formatter: logging.Formatter
    if log_format == "json":
        formatter = JsonFormatter()
    else:
        formatter = TextFormatter()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    root_logger.addHandler(handler)
