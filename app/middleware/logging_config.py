"""
Structured logging configuration.

- Development: one-line colored records with actor and request id
- Production: one JSON object per record for the log shipper
- Level: LOG_LEVEL config key, then LOG_LEVEL env, then DEBUG/INFO

Every record emitted inside a request carries ``request_id``, ``actor_id``
and ``actor_role`` (RequestContextFilter), so service-level log lines such
as "Task 7 moved ..." can be traced back to the caller without passing the
actor into each ``logger`` call.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

from flask import g, has_request_context

# Keys copied from the record (via `extra=` or the context filter) into JSON output
CONTEXT_KEYS = (
    "request_id",
    "actor_id",
    "actor_role",
    "method",
    "path",
    "status",
    "duration_ms",
    "remote_addr",
    "questionnaire_id",
    "sprint_id",
    "board_id",
    "task_id",
    "event_type",
)

_LEVEL_COLORS = {
    "DEBUG": "\033[36m",
    "INFO": "\033[32m",
    "WARNING": "\033[33m",
    "ERROR": "\033[31m",
    "CRITICAL": "\033[35m",
}
_RESET = "\033[0m"


class RequestContextFilter(logging.Filter):
    """Stamp request id and actor onto records logged during a request."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not has_request_context():
            return True
        if getattr(record, "request_id", None) is None:
            record.request_id = getattr(g, "request_id", None)
        actor = getattr(g, "actor", None)
        if actor is not None and getattr(record, "actor_id", None) is None:
            record.actor_id = actor.id
            record.actor_role = actor.type
        return True


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "where": f"{record.module}.{record.funcName}:{record.lineno}",
        }
        entry.update({
            key: getattr(record, key)
            for key in CONTEXT_KEYS
            if getattr(record, key, None) is not None
        })
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """`12:04:09 INFO     app.services.task_ordering: Task 3 moved ... [41ms] <startup:100> #a1b2c3d4`"""

    def format(self, record: logging.LogRecord) -> str:
        stamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        color = _LEVEL_COLORS.get(record.levelname, "")
        parts = [f"{color}{stamp} {record.levelname:<8}{_RESET} {record.name}: {record.getMessage()}"]

        duration = getattr(record, "duration_ms", None)
        if duration is not None:
            parts.append(f"[{duration:.0f}ms]")
        if getattr(record, "actor_id", None) is not None:
            parts.append(f"<{getattr(record, 'actor_role', '?')}:{record.actor_id}>")
        request_id = getattr(record, "request_id", None)
        if request_id:
            parts.append(f"#{request_id}")

        line = " ".join(parts)
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _resolve_level(app, verbose_default: bool) -> tuple[str, int]:
    name = (
        app.config.get("LOG_LEVEL")
        or os.getenv("LOG_LEVEL")
        or ("DEBUG" if verbose_default else "INFO")
    ).upper()
    return name, getattr(logging, name, logging.INFO)


def configure_logging(app):
    """Install one stderr handler on the root logger for the app's environment."""
    testing = app.config.get("TESTING", False)
    structured = not app.config.get("DEBUG", False) and not testing
    level_name, level = _resolve_level(app, verbose_default=not structured)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if structured else ReadableFormatter())
    handler.addFilter(RequestContextFilter())
    handler.setLevel(level)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    # Library chatter stays at WARNING whatever the app level
    for name in ("werkzeug", "sqlalchemy.engine", "redis"):
        logging.getLogger(name).setLevel(logging.WARNING)
    app.logger.setLevel(level)

    if not testing:
        app.logger.info("Logging configured: level=%s format=%s",
                        level_name, "json" if structured else "readable")
