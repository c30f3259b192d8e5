"""
Structured Logging Configuration Module

Ledger events (account openings, transfers, rejections, conflict retries,
logins) are logged through log_action, which attaches a fixed set of
structured fields to the record. Both formatters render those fields: one
JSON object per line, or key=value pairs appended to a plain text line.
"""

import logging
import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional


LEDGER_FIELDS = ("correlation_id", "user_id", "action", "resource", "extra")


def ledger_fields(record: logging.LogRecord) -> Dict[str, Any]:
    """Structured fields present on a record, in LEDGER_FIELDS order"""
    return {
        name: getattr(record, name)
        for name in LEDGER_FIELDS
        if getattr(record, name, None) is not None
    }


class JSONFormatter(logging.Formatter):
    """One JSON object per record; the timestamp is the event time"""

    def format(self, record):
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "module": record.module,
            "message": record.getMessage(),
        }
        log_entry.update(ledger_fields(record))

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


class TextFormatter(logging.Formatter):
    """Plain line followed by the ledger fields as key=value pairs"""

    def __init__(self):
        super().__init__("%(asctime)s %(levelname)s %(name)s: %(message)s")

    def format(self, record):
        line = super().format(record)
        fields = ledger_fields(record)
        extra = fields.pop("extra", None) or {}
        pairs = [f"{key}={value}" for key, value in fields.items()]
        pairs.extend(f"{key}={value}" for key, value in extra.items())
        return f"{line} [{' '.join(pairs)}]" if pairs else line


FORMATTERS = {
    "json": JSONFormatter,
    "text": TextFormatter,
}


def setup_logging(level: str = "INFO", fmt: str = "json", logger_name: str = "bank_ledger") -> logging.Logger:
    """
    Configure the ledger logger with a single stream handler.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        fmt: Key of FORMATTERS; unknown values fall back to json
        logger_name: Root of the logger tree to configure

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(logger_name)

    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(FORMATTERS.get(fmt, JSONFormatter)())

    logger.addHandler(handler)
    logger.setLevel(getattr(logging, level.upper()))
    logger.propagate = False

    return logger


def get_logger(name: str = "bank_ledger") -> logging.Logger:
    """Get logger instance"""
    return logging.getLogger(name)


def log_action(logger: logging.Logger, level: str, message: str,
               user_id: Optional[str] = None, action: Optional[str] = None,
               resource: Optional[str] = None, correlation_id: Optional[str] = None,
               extra: Optional[dict] = None):
    """
    Log a ledger event with structured fields.

    Args:
        logger: Logger instance
        level: Log level name (info, warning, error, ...)
        message: Human-readable summary
        user_id: ID of the employee performing the action
        action: Machine-readable event name, e.g. "transfer"
        resource: Affected entity, e.g. "account:12"
        correlation_id: Request correlation ID
        extra: Event-specific data
    """
    values = {
        "user_id": user_id,
        "action": action,
        "resource": resource,
        "correlation_id": correlation_id,
        "extra": extra or None,
    }
    logger.log(
        getattr(logging, level.upper()),
        message,
        extra={key: value for key, value in values.items() if value is not None}
    )
