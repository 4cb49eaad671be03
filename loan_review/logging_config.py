"""
Structured Logging Configuration Module

JSON log lines for loan review operations. Records logged through
log_action carry the review action, the loan it concerns and a details
mapping, which the formatter lifts into top-level keys.
"""

import logging
import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional


TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# Record attributes set by log_action
STRUCTURED_FIELDS = ("action", "loan_id", "details")


class JSONFormatter(logging.Formatter):
    """One JSON object per record, keyed by the record's own time"""
    
    def format(self, record):
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for field in STRUCTURED_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                log_entry[field] = value
        
        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)
        
        return json.dumps(log_entry, default=str)


def setup_logging(level: str = "INFO", logger_name: str = "loan_review",
                  log_format: str = "json") -> logging.Logger:
    """
    Attach a single stream handler to the package logger.
    
    Args:
        level: Log level name
        logger_name: Logger to configure
        log_format: "json" or "text"
    """
    logger = logging.getLogger(logger_name)
    
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
    
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(TEXT_FORMAT) if log_format == "text" else JSONFormatter())
    
    logger.addHandler(handler)
    logger.setLevel(getattr(logging, level.upper()))
    logger.propagate = False
    
    return logger


def get_logger(name: str = "loan_review") -> logging.Logger:
    return logging.getLogger(name)


def log_action(logger: logging.Logger, level: str, message: str,
               action: Optional[str] = None, loan_id: Optional[str] = None,
               details: Optional[Dict[str, Any]] = None) -> None:
    """
    Log a review action with its loan and details attached to the record.
    
    Args:
        logger: Logger instance
        level: Level name (info, warning, ...)
        message: Log message
        action: Review action, e.g. "auto_decision"
        loan_id: Loan the action concerns
        details: Extra structured values, e.g. previous and new status
    """
    logger.log(
        getattr(logging, level.upper()), message,
        extra={"action": action, "loan_id": loan_id, "details": details}
    )
