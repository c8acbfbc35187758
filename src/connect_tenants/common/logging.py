"""Structured JSON logging for connect-tenants."""

import logging
import json
import sys
from datetime import datetime, timezone

# Keys whose values are credentials and must never reach a log line.
SENSITIVE_KEYS = frozenset({
    "shared_secret",
    "public_key",
    "oauth_client_token",
    "token",
    "jwt",
    "signature",
})
REDACTED = "***"

# Attributes every LogRecord carries; anything else came in through ``extra``.
_RESERVED_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__
) | {"message", "asctime"}


def redact(value):
    """Return a copy of ``value`` with credential entries masked."""
    if isinstance(value, dict):
        return {
            k: REDACTED if k in SENSITIVE_KEYS and v else redact(v)
            for k, v in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [redact(v) for v in value]
    return value


class JSONFormatter(logging.Formatter):
    """Format log records as JSON lines."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        extra = {
            k: v for k, v in record.__dict__.items()
            if k not in _RESERVED_ATTRS and not k.startswith("_")
        }
        if extra:
            log_entry.update(redact(extra))
        if record.exc_info and record.exc_info[1]:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, default=str)


def setup_logging(level: str = "INFO") -> None:
    """Configure structured logging for the application."""
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter())

    root = logging.getLogger("connect_tenants")
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.handlers = [handler]
    root.propagate = False


def get_logger(name: str) -> logging.Logger:
    """Get a logger scoped under connect_tenants."""
    return logging.getLogger(f"connect_tenants.{name}")
