"""
Structured Logging Configuration Module

JSON log lines for ledger operations. Money movements attach the action
name, the account being debited and the amount (as its stored decimal
string) so a transfer or bill payment can be traced from the log alone.
"""

import logging
import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from .currency import Money


TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# Record attributes copied into each JSON entry when log_action set them
LEDGER_FIELDS = ("action", "account_id", "amount")


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured ledger logging"""

    def format(self, record):
        log_entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for field in LEDGER_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                log_entry[field] = value

        extra = getattr(record, 'extra', None)
        if extra:
            log_entry['extra'] = extra

        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


def setup_logging(level: str = "INFO", logger_name: str = "acme_bank",
                  fmt: str = "json") -> logging.Logger:
    """
    Setup structured logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        logger_name: Name of the logger
        fmt: "json" for structured output, "text" for plain lines

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(logger_name)

    # Remove existing handlers to avoid duplicates
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    handler = logging.StreamHandler()
    if fmt == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT))

    logger.addHandler(handler)
    logger.setLevel(getattr(logging, level.upper()))
    logger.propagate = False

    return logger


def get_logger(name: str = "acme_bank") -> logging.Logger:
    """Get logger instance"""
    return logging.getLogger(name)


def log_action(logger: logging.Logger, level: str, message: str,
               action: Optional[str] = None, account_id: Optional[int] = None,
               amount: Optional[Money] = None, extra: Optional[dict] = None):
    """
    Log a ledger action with structured data.

    Args:
        logger: Logger instance
        level: Log level (info, warning, error, etc.)
        message: Log message
        action: Operation name, e.g. "transfer" or "pay_bill"
        account_id: Account the operation debits
        amount: Amount moved; logged as its stored decimal string
        extra: Additional structured data
    """
    levelno = getattr(logging, level.upper())
    if not logger.isEnabledFor(levelno):
        return

    record = logger.makeRecord(
        logger.name, levelno, __name__, 0, message, (), None
    )

    if action:
        record.action = action
    if account_id is not None:
        record.account_id = account_id
    if amount is not None:
        record.amount = amount.to_storage()
    if extra:
        record.extra = extra

    logger.handle(record)
