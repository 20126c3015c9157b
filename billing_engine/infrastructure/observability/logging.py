"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict
from pythonjsonlogger import jsonlogger

from billing_engine.config import settings

# Latency targets per operation, in milliseconds
PERFORMANCE_TARGETS_MS = {
    "update_plan": 300,
    "delete_plan": 200,
    "payoff_plan": 200,
    "budget_view": 300,
    "create_settlement": 200,
}


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


def log_operation(
    operation: str,
    user_id: str,
    success: bool,
    duration_ms: float,
    **fields: Any,
) -> None:
    """Log structured operation outcome; slow operations also raise a performance alert"""
    logger = logging.getLogger("billing_engine.operations")
    logger.info(
        "Operation completed",
        extra={
            "operation": operation,
            "user_id": user_id,
            "step": f"{operation}_complete",
            "outcome": "success" if success else "failure",
            "duration_ms": round(duration_ms, 2),
            **fields,
        },
    )

    target_ms = PERFORMANCE_TARGETS_MS.get(operation)
    if target_ms is not None and duration_ms > target_ms:
        logger.warning(
            "Performance alert",
            extra={
                "operation": operation,
                "user_id": user_id,
                "duration_ms": round(duration_ms, 2),
                "target_ms": target_ms,
            },
        )
