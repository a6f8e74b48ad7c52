"""
Structured Logging

Every minibank logger lives under the ``minibank`` namespace and writes one
JSON object per line. Events about an account carry its number in the
``account`` field; anything else an event wants to record goes in ``details``.
"""

import logging
import json
from datetime import datetime, timezone
from typing import Any, Optional


ROOT_LOGGER = "minibank"


class JSONFormatter(logging.Formatter):
    """One JSON object per record"""

    def format(self, record):
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "account": getattr(record, "account", None),
            "action": getattr(record, "action", None),
            "details": getattr(record, "details", None) or None,
        }
        log_entry = {k: v for k, v in log_entry.items() if v is not None}

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


def setup_logging(level: str = "INFO", log_file: Optional[str] = None) -> logging.Logger:
    """
    Route the ``minibank`` logger tree to stderr, or to ``log_file``

    Calling it again replaces the previous handler.
    """
    logger = logging.getLogger(ROOT_LOGGER)
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()

    handler = logging.FileHandler(log_file) if log_file else logging.StreamHandler()
    handler.setFormatter(JSONFormatter())
    logger.addHandler(handler)
    logger.setLevel(level.upper())
    logger.propagate = False
    return logger


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


def log_action(logger: logging.Logger, level: str, message: str,
               account: Optional[int] = None, action: Optional[str] = None,
               **details: Any) -> None:
    """Log a banking event with its account number, action name and details"""
    logger.log(
        logging.getLevelName(level.upper()), message,
        extra={"account": account, "action": action, "details": details},
    )
