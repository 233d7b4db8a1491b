"""
Logging setup for workflow runs.

The executor stamps ``run_id`` and ``workflow_id`` into a ContextVar when a run
starts and swaps ``node_id`` on every visit. Both formatters read that context,
so a plain ``logger.info(...)`` inside a node executor comes out tagged with
the run and node it belongs to, even across awaits.

    flowengine run wf.json --log-format json   -> one JSON object per line
    flowengine run wf.json                     -> coloured, prefixed lines
"""

import json
import logging
import os
import re
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

trace_context: ContextVar[dict[str, Any] | None] = ContextVar("trace_context", default=None)

_ANSI = re.compile(r"\x1b\[[0-9;]*m")

# Client libraries whose records should flow through our handler.
QUIET_LOGGERS = ("LiteLLM", "httpx", "httpcore")


def strip_ansi_codes(text: str) -> str:
    return _ANSI.sub("", text)


def _active_context() -> dict[str, Any]:
    return {key: value for key, value in (trace_context.get() or {}).items() if value is not None}


class StructuredFormatter(logging.Formatter):
    """One JSON object per record: time, level, logger, message, trace ids and known extras."""

    EXTRA_FIELDS = ("event", "node_id", "latency_ms", "provider", "model", "status_code")

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": strip_ansi_codes(record.getMessage()),
            **_active_context(),
        }
        for field in self.EXTRA_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                entry[field] = strip_ansi_codes(value) if isinstance(value, str) else value
        if record.exc_info:
            entry["exception"] = strip_ansi_codes(self.formatException(record.exc_info))
        return json.dumps(entry, default=str)


class HumanReadableFormatter(logging.Formatter):
    """``[LEVEL   ] [run:xxxxxxxx | node:id] message [event]`` with a coloured level."""

    LEVEL_COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    RESET = "\033[0m"

    @staticmethod
    def _prefix() -> str:
        context = _active_context()
        tags = []
        if "run_id" in context:
            tags.append(f"run:{str(context['run_id'])[-8:]}")
        if "node_id" in context:
            tags.append(f"node:{context['node_id']}")
        return f"[{' | '.join(tags)}] " if tags else ""

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno, "")
        line = f"{color}[{record.levelname:<8}]{self.RESET} {self._prefix()}{record.getMessage()}"
        event = getattr(record, "event", None)
        if event is not None:
            line += f" [{event}]"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _resolve_format(format: str) -> str:
    if format != "auto":
        return format
    if os.getenv("LOG_FORMAT", "").lower() == "json":
        return "json"
    return "json" if os.getenv("ENV", "development").lower() == "production" else "human"


def configure_logging(level: str = "INFO", format: str = "auto") -> None:
    """
    Install a single root handler.

    Args:
        level: Standard level name, case-insensitive.
        format: "json", "human", or "auto" (json when LOG_FORMAT=json or
            ENV=production).
    """
    format = _resolve_format(format)
    handler = logging.StreamHandler()
    if format == "json":
        handler.setFormatter(StructuredFormatter())
        # keep third-party colour codes out of JSON messages
        os.environ["NO_COLOR"] = "1"
    else:
        handler.setFormatter(HumanReadableFormatter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level.upper())

    for name in QUIET_LOGGERS:
        client_logger = logging.getLogger(name)
        client_logger.handlers.clear()
        client_logger.propagate = True
        if format == "json":
            client_logger.setLevel(logging.WARNING)


def set_trace_context(**fields: Any) -> None:
    """Merge ``fields`` into the current trace context; a None value hides that key."""
    trace_context.set({**(trace_context.get() or {}), **fields})


def get_trace_context() -> dict[str, Any]:
    return _active_context()


def clear_trace_context() -> None:
    trace_context.set(None)
