"""Map Diagnostics Logging — JSON formatter, session-bound loggers, setup.

Invariants:
    - Every record carries timestamp, level, logger name, and message
    - Marker context (session_id, collectible_id, marker_key, marker_state,
      error_code, attempt, outcome) is surfaced only when present
    - Enum values are written as their .value, never their repr
    - A SessionLogger never overwrites a context field the call site passed

Design Decisions:
    - Stdlib logging with a JSON formatter: the host app owns handler configuration
    - LoggerAdapter per map session instead of threading session_id through every call
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, MutableMapping


MARKER_CONTEXT_FIELDS = (
    "session_id", "collectible_id", "marker_key", "marker_state",
    "error_code", "attempt", "outcome",
)


def marker_context(record: logging.LogRecord) -> dict[str, Any]:
    context = {}
    for key in MARKER_CONTEXT_FIELDS:
        val = record.__dict__.get(key)
        if val is not None:
            context[key] = getattr(val, "value", val)
    return context


class JSONFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        log = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **marker_context(record),
        }
        if record.exc_info:
            log["exception"] = self.formatException(record.exc_info)
        return json.dumps(log, ensure_ascii=False)


class ConsoleFormatter(logging.Formatter):
    """Human-readable line with marker context appended as key=value pairs."""

    def __init__(self):
        super().__init__("%(asctime)s %(levelname)s %(name)s: %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = marker_context(record)
        if context:
            line += " [" + " ".join(f"{k}={v}" for k, v in context.items()) + "]"
        return line


class SessionLogger(logging.LoggerAdapter):
    """Stamps session_id onto every record logged for one map session."""

    def process(
        self, msg: str, kwargs: MutableMapping[str, Any],
    ) -> tuple[str, MutableMapping[str, Any]]:
        extra = dict(self.extra)
        extra.update(kwargs.get("extra") or {})
        kwargs["extra"] = extra
        return msg, kwargs


def session_logger(logger: logging.Logger, session_id: str) -> SessionLogger:
    return SessionLogger(logger, {"session_id": session_id})


def setup_logging(level: str = "INFO", fmt: str = "json") -> logging.Handler:
    """Attach a stream handler to the root logger. Returns it so the host can remove it."""
    handler = logging.StreamHandler()
    handler.setFormatter(JSONFormatter() if fmt == "json" else ConsoleFormatter())
    logging.root.addHandler(handler)
    logging.root.setLevel(getattr(logging, level.upper(), logging.INFO))
    return handler
