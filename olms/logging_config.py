"""
Structured Logging Configuration Module

JSON log lines for loan operations. Business events carry who did what to
which record through the ``user_id``, ``action``, ``resource``,
``correlation_id`` and ``extra_data`` record attributes.
"""

import logging
import json
from datetime import datetime, timezone
from typing import Optional


# LogRecord attribute -> key in the JSON line
CONTEXT_FIELDS = (
    ("correlation_id", "correlation_id"),
    ("user_id", "user_id"),
    ("action", "action"),
    ("resource", "resource"),
    ("extra_data", "extra"),
)

TEXT_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


class JSONFormatter(logging.Formatter):
    """One JSON object per record; unset context fields are left out"""

    def format(self, record):
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for attribute, key in CONTEXT_FIELDS:
            value = getattr(record, attribute, None)
            if value is not None:
                entry[key] = value

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


def setup_logging(level: str = "INFO", fmt: str = "json",
                  log_file: Optional[str] = None,
                  logger_name: str = "olms") -> logging.Logger:
    """
    Configure the application logger.

    Args:
        level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        fmt: "json" for structured lines, anything else for plain text
        log_file: Append to this file instead of stderr
        logger_name: Root of the application logger tree

    Returns:
        The configured logger
    """
    logger = logging.getLogger(logger_name)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    handler = logging.FileHandler(log_file) if log_file else logging.StreamHandler()
    handler.setFormatter(JSONFormatter() if fmt == "json" else logging.Formatter(TEXT_FORMAT))

    logger.addHandler(handler)
    logger.setLevel(getattr(logging, level.upper()))
    logger.propagate = False
    return logger


def get_logger(name: str = "olms") -> logging.Logger:
    return logging.getLogger(name)


def log_action(logger: logging.Logger, level: str, message: str,
               user_id: Optional[str] = None, action: Optional[str] = None,
               resource: Optional[str] = None, correlation_id: Optional[str] = None,
               extra: Optional[dict] = None):
    """
    Log a staff action with its context fields.

    ``level`` is a level name such as "info" or "warning"; ``extra`` is any
    additional structured data for the line.
    """
    context = {
        'user_id': user_id,
        'action': action,
        'resource': resource,
        'correlation_id': correlation_id,
        'extra_data': extra or None,
    }
    logger.log(
        getattr(logging, level.upper()),
        message,
        extra={key: value for key, value in context.items() if value}
    )
