"""In-process telemetry sink handed to services"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List

from billing_engine.infrastructure.observability.metrics import event_counter

logger = logging.getLogger(__name__)


class EventRecorder:
    """
    Buffers fire-and-forget telemetry events.

    Recording never raises: a failure is logged and the triggering operation
    carries on. The API drains the buffer after each request and ships the
    batch to the analytics service in the background.
    """

    def __init__(self):
        self._events: List[Dict[str, Any]] = []

    def record(self, event: str, user_id: str, **properties: Any) -> None:
        try:
            event_counter.labels(event=event).inc()
            self._events.append(
                {
                    "event": event,
                    "user_id": user_id,
                    "occurred_at": datetime.now(timezone.utc).isoformat(),
                    "properties": {key: _jsonable(value) for key, value in properties.items()},
                }
            )
        except Exception as e:
            logger.warning(f"Failed to record event {event}: {e}", extra={"user_id": user_id})

    @property
    def events(self) -> List[Dict[str, Any]]:
        return list(self._events)

    def drain(self) -> List[Dict[str, Any]]:
        """Return buffered events and empty the buffer"""
        events, self._events = self._events, []
        return events


def _jsonable(value: Any) -> Any:
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    return str(value)
