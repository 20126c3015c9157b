"""Shared transaction boundary for service operations"""

import logging
import time
import uuid
from typing import Any, Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from billing_engine.config import Settings, settings
from billing_engine.domain.exceptions import DomainException, PersistenceError, ValidationError
from billing_engine.domain.models import OverflowPolicy, Result
from billing_engine.infrastructure.observability.events import EventRecorder
from billing_engine.infrastructure.observability.logging import log_operation
from billing_engine.infrastructure.observability.metrics import record_operation

logger = logging.getLogger(__name__)


def parse_id(value: str, label: str = "ID") -> uuid.UUID:
    """Parse a UUID string, raising ValidationError for malformed input"""
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        raise ValidationError(f"Invalid {label} format")


def parse_optional_id(value: Optional[str], label: str = "ID") -> Optional[uuid.UUID]:
    if value is None or value == "":
        return None
    return parse_id(value, label)


class BillingService:
    """
    Base for services exposing Result-returning operations.

    Each public operation runs through `_run`, which commits on success and
    rolls back on any failure so a multi-step mutation is never partially
    applied. Domain errors become failed Results; store errors become
    PersistenceError.
    """

    def __init__(self, db: Session, recorder: EventRecorder | None = None, config: Settings = settings):
        self.db = db
        self.recorder = recorder or EventRecorder()
        self.config = config

    @property
    def overflow(self) -> OverflowPolicy:
        return OverflowPolicy(self.config.closing_day_overflow)

    def _run(
        self,
        operation: str,
        user_id: str,
        fn: Callable[[], Any],
        mutates: bool = True,
        **log_fields: Any,
    ) -> Result:
        start_time = time.perf_counter()

        try:
            data = fn()
            if mutates:
                self.db.commit()
            result = Result.ok(data)

        except DomainException as e:
            self.db.rollback()
            result = Result.fail(e)

        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(
                f"Persistence error during {operation}: {e}",
                extra={"operation": operation, "user_id": user_id},
            )
            result = Result.fail(PersistenceError(f"Failed to complete {operation}"))

        duration = time.perf_counter() - start_time
        record_operation(operation, result.success, duration)
        log_operation(
            operation,
            user_id,
            result.success,
            duration * 1000,
            error_code=result.error_code,
            **log_fields,
        )
        return result
