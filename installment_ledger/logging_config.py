"""
Structured Logging Configuration Module

JSON (or plain text) logging for ledger operations. Lifecycle code attaches
plan, entry and action fields to each record through ``log_action``.
"""

import logging
import json
from datetime import datetime, timezone
from typing import Optional


class JSONFormatter(logging.Formatter):
    """Render each record as one JSON object per line"""

    def format(self, record):
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "action": getattr(record, 'action', None),
            "plan_id": getattr(record, 'plan_id', None),
            "entry_id": getattr(record, 'entry_id', None),
            "extra": getattr(record, 'extra', None)
        }

        log_entry = {k: v for k, v in log_entry.items() if v is not None}

        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


TEXT_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def setup_logging(level: str = "INFO", log_format: str = "json",
                  log_file: Optional[str] = None,
                  logger_name: str = "installment_ledger") -> logging.Logger:
    """
    Configure the package logger.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: "json" for structured output, anything else for plain text
        log_file: Optional file path; stdout when None
        logger_name: Name of the logger to configure

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(logger_name)

    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    if log_file:
        handler = logging.FileHandler(log_file)
    else:
        handler = logging.StreamHandler()

    if log_format == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT))

    logger.addHandler(handler)
    logger.setLevel(getattr(logging, level.upper()))
    logger.propagate = False

    return logger


def get_logger(name: str = "installment_ledger") -> logging.Logger:
    """Get logger instance"""
    return logging.getLogger(name)


def log_action(logger: logging.Logger, level: str, message: str,
               action: Optional[str] = None, plan_id: Optional[str] = None,
               entry_id: Optional[str] = None, extra: Optional[dict] = None):
    """
    Log a ledger action with structured fields.

    Args:
        logger: Logger instance
        level: Log level name (info, warning, error, ...)
        message: Log message
        action: Action being performed (apply_payment, create_plan, ...)
        plan_id: Installment plan the action touches
        entry_id: Payment entry the action touches
        extra: Additional structured data
    """
    fields = {}
    if action:
        fields['action'] = action
    if plan_id:
        fields['plan_id'] = plan_id
    if entry_id:
        fields['entry_id'] = entry_id
    if extra:
        fields['extra'] = extra

    logger.log(getattr(logging, level.upper()), message, extra=fields)
