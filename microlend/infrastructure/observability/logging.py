"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from pythonjsonlogger import jsonlogger

from microlend.config import settings


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = settings.service_name


def setup_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging"""
    logger = logging.getLogger()
    logger.setLevel(level)

    # Remove existing handlers
    logger.handlers.clear()

    # JSON handler for stdout
    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(message)s"
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def log_lifecycle(
    operation: str,
    loan_id: Any,
    status: str,
    request_id: Optional[str] = None,
    **fields: Any,
) -> None:
    """Log structured outcome of a loan lifecycle operation"""
    logging.getLogger("microlend.lifecycle").info(
        "Lifecycle operation completed",
        extra={
            "request_id": request_id,
            "step": operation,
            "loan_id": str(loan_id),
            "loan_status": status,
            **{key: str(value) for key, value in fields.items()},
        },
    )
