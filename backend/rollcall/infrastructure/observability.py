"""Structured Logging - JSON or text output carrying Rollcall's correlation fields.

Invariants:
    - Every record carries timestamp, level, logger name and message
    - series_id, instance_id, actor_id, tenant_id, error_code, attempt, method, path
      are emitted when a call site passes them via extra=
    - setup_logging is idempotent: calling it again replaces its own handler
    - httpx request logs are held at WARNING: Bot API URLs embed the bot token

Design Decisions:
    - stdlib logging with a small formatter, no logging dependency
    - Text format appends the same extra fields as key=value pairs
"""

import json
import logging
from datetime import datetime, timezone

EXTRA_FIELDS = (
    "series_id", "instance_id", "actor_id", "tenant_id", "error_code",
    "attempt", "method", "path",
)
_QUIET_LOGGERS = ("httpx", "httpcore")


def _extras(record: logging.LogRecord) -> dict[str, str]:
    return {
        key: str(record.__dict__[key])
        for key in EXTRA_FIELDS
        if record.__dict__.get(key) is not None
    }


class JSONFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        log = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **_extras(record),
        }
        if record.exc_info:
            log["exception"] = self.formatException(record.exc_info)
        return json.dumps(log, ensure_ascii=False)


class TextFormatter(logging.Formatter):
    def __init__(self):
        super().__init__("%(asctime)s %(levelname)s %(name)s - %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        extras = _extras(record)
        if extras:
            line += " " + " ".join(f"{k}={v}" for k, v in extras.items())
        return line


class _RollcallHandler(logging.StreamHandler):
    """Marker type so setup_logging can find the handler it installed."""


def setup_logging(level: str = "INFO", fmt: str = "json") -> None:
    """Install the Rollcall handler on the root logger."""
    root = logging.getLogger()
    for handler in [h for h in root.handlers if isinstance(h, _RollcallHandler)]:
        root.removeHandler(handler)

    handler = _RollcallHandler()
    handler.setFormatter(JSONFormatter() if fmt == "json" else TextFormatter())
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
