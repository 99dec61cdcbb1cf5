"""
Structured logging configuration.

Two record shapes reach the handlers:

    request lines   timing middleware  → method, path, status, duration_ms,
                                         remote_addr, request_id
    workflow lines  service modules    → actor_id, assignment_id,
                                         recipient_id, event_type

Production writes one JSON object per line; development writes a coloured
single line with the workflow context appended. LOG_LEVEL and LOG_FORMAT
("json" / "readable") override the environment defaults.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

REQUEST_FIELDS = ("method", "path", "status", "duration_ms", "remote_addr", "request_id")
WORKFLOW_FIELDS = ("actor_id", "assignment_id", "recipient_id", "event_type")


def record_extras(record: logging.LogRecord, fields=REQUEST_FIELDS + WORKFLOW_FIELDS) -> dict:
    """Extra fields present on ``record``, in ``fields`` order. Empty values are skipped."""
    extras = {}
    for key in fields:
        val = getattr(record, key, None)
        if val is not None and val != "":
            extras[key] = val
    return extras


class JSONFormatter(logging.Formatter):
    """One JSON object per record, for log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "line": record.lineno,
        }
        entry.update(record_extras(record))
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """Coloured one-liner for development consoles."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self, use_color: bool = True):
        super().__init__()
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        level = f"{record.levelname:<8}"
        if self.use_color:
            level = f"{self.COLORS.get(record.levelname, '')}{level}{self.RESET}"

        line = f"{ts} {level} {record.name}: {record.getMessage()}"
        ctx = record_extras(record, ("actor_id", "assignment_id", "event_type"))
        if ctx:
            line += " (" + " ".join(f"{k}={v}" for k, v in ctx.items()) + ")"
        duration = getattr(record, "duration_ms", None)
        if duration is not None:
            line += f" [{duration:.0f}ms]"
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def build_formatter(app) -> logging.Formatter:
    is_testing = app.config.get("TESTING", False)
    is_prod = not app.config.get("DEBUG", False) and not is_testing
    fmt = (os.getenv("LOG_FORMAT") or ("json" if is_prod else "readable")).lower()
    if fmt == "json":
        return JSONFormatter()
    return ReadableFormatter(use_color=sys.stderr.isatty())


def configure_logging(app):
    """Install a single stderr handler on the root logger.

    LOG_LEVEL defaults to INFO in production and DEBUG elsewhere.
    """
    is_testing = app.config.get("TESTING", False)
    is_prod = not app.config.get("DEBUG", False) and not is_testing

    level_name = os.getenv("LOG_LEVEL", "INFO" if is_prod else "DEBUG").upper()
    level = getattr(logging, level_name, logging.INFO)
    formatter = build_formatter(app)

    root = logging.getLogger()
    # app factory may run more than once per process (tests)
    root.handlers.clear()
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)
    handler.setLevel(level)
    root.addHandler(handler)
    root.setLevel(level)

    for noisy in ("werkzeug", "sqlalchemy.engine", "flask_limiter"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    app.logger.setLevel(level)
    if not is_testing:
        app.logger.info("Logging configured: level=%s format=%s",
                        level_name, type(formatter).__name__)
