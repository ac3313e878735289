"""
Structured logging configuration.

Every record logged while a request is in flight carries the request id
and the self-asserted actor (role, branch, username), so a workflow
transition in the service log can be traced back to the call that made it.

- Development: one readable line per record, actor and request id inline
- Production: one JSON object per record
- LOG_LEVEL sets the level, LOG_FORMAT=json|readable overrides the format
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

from flask import g, has_request_context, request

# Attributes copied from the log record into the JSON payload when present
CONTEXT_FIELDS = (
    "request_id", "actor_role", "actor_branch", "actor_username",
    "method", "path", "status", "duration_ms", "remote_addr",
)

_QUIET_LOGGERS = ("werkzeug", "urllib3", "sqlalchemy.engine", "alembic", "openpyxl")


class RequestContextFilter(logging.Filter):
    """Stamp request id and actor onto records emitted inside a request."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not has_request_context():
            return True
        if getattr(record, "request_id", None) is None:
            record.request_id = getattr(g, "request_id", None)
        args = request.args
        body = request.get_json(silent=True) if request.is_json else None
        body = body if isinstance(body, dict) else {}
        if getattr(record, "actor_role", None) is None:
            record.actor_role = args.get("role") or body.get("actorRole")
        if getattr(record, "actor_branch", None) is None:
            record.actor_branch = args.get("branchCode") or body.get("actorBranchCode")
        if getattr(record, "actor_username", None) is None:
            record.actor_username = args.get("username") or body.get("actorUsername")
        return True


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for key in CONTEXT_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                entry[key] = value
        if record.exc_info and record.exc_info[0] is not None:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """``12:04:31 INFO  assetdesk.services.bill_service [mgr1@BR1 #a1b2c3] Bill 4: ...``"""

    LEVEL_COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self, color=True):
        super().__init__()
        self.color = color

    @staticmethod
    def _context(record):
        who = getattr(record, "actor_username", None) or getattr(record, "actor_role", None)
        branch = getattr(record, "actor_branch", None)
        rid = getattr(record, "request_id", None)
        parts = []
        if who:
            parts.append(f"{who}@{branch}" if branch else who)
        if rid:
            parts.append(f"#{rid}")
        return f" [{' '.join(parts)}]" if parts else ""

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        level = f"{record.levelname:<5}"
        if self.color:
            level = f"{self.LEVEL_COLORS.get(record.levelno, '')}{level}{self.RESET}"
        line = f"{ts} {level} {record.name}{self._context(record)} {record.getMessage()}"
        duration = getattr(record, "duration_ms", None)
        if duration is not None:
            line += f" ({duration:.0f}ms)"
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _pick_formatter(is_prod):
    choice = os.getenv("LOG_FORMAT", "json" if is_prod else "readable").lower()
    if choice == "json":
        return JSONFormatter(), "json"
    return ReadableFormatter(color=sys.stderr.isatty()), "readable"


def configure_logging(app):
    """
    Install one stderr handler on the root logger.

    LOG_LEVEL defaults to INFO in production and DEBUG elsewhere.
    Repeated create_app() calls replace the handler instead of stacking.
    """
    is_testing = app.config.get("TESTING", False)
    is_prod = not app.config.get("DEBUG", False) and not is_testing

    level_name = os.getenv("LOG_LEVEL", "INFO" if is_prod else "DEBUG").upper()
    level = getattr(logging, level_name, logging.INFO)
    formatter, fmt_name = _pick_formatter(is_prod)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)
    handler.addFilter(RequestContextFilter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    app.logger.setLevel(level)
    if not is_testing:
        app.logger.info("Logging: level=%s format=%s store=%s",
                        level_name, fmt_name, app.config.get("RECORD_STORE"))
