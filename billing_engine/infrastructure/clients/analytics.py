"""Analytics webhook client with exponential backoff retry logic"""

import httpx
import asyncio
import logging
from typing import Any, Dict, List
from billing_engine.config import settings
from billing_engine.infrastructure.observability.metrics import (
    event_delivery_failure_counter,
    event_delivery_latency_histogram,
)

logger = logging.getLogger(__name__)


class AnalyticsClient:
    """Client for shipping recorded telemetry events to the analytics service"""

    def __init__(
        self,
        webhook_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        max_retries: int | None = None,
        backoff_base: float | None = None,
    ):
        self.webhook_url = webhook_url or settings.analytics_webhook_url
        self.transport = transport
        self.max_retries = max_retries if max_retries is not None else settings.webhook_max_retries
        self.backoff_base = backoff_base if backoff_base is not None else settings.webhook_backoff_base
        self.timeout = settings.http_timeout_seconds

    async def send_events(self, events: List[Dict[str, Any]]) -> bool:
        """
        Deliver a batch of events with retry logic.

        Retry strategy:
        - Exponential backoff: 1s, 2s, 4s, 8s, 16s (base * 2^attempt)
        - Retries on 5xx errors and network failures; 4xx is not retried
        - Tracks latency histogram and failure counter

        Delivery failures are logged and reported through the return value;
        they never propagate to the operation that produced the events.

        Args:
            events: Event dicts as produced by EventRecorder

        Returns:
            True when the batch was accepted
        """
        if not events:
            return True

        attempt = 0
        async with httpx.AsyncClient(transport=self.transport, timeout=self.timeout) as client:
            while attempt < self.max_retries:
                try:
                    with event_delivery_latency_histogram.time():
                        response = await client.post(
                            self.webhook_url,
                            json={"events": events},
                        )
                        response.raise_for_status()
                        return True  # Success

                except httpx.HTTPStatusError as e:
                    attempt += 1
                    event_delivery_failure_counter.inc()

                    if e.response.status_code < 500 or attempt >= self.max_retries:
                        logger.warning(
                            f"Analytics delivery failed with status {e.response.status_code}",
                            extra={"event_count": len(events), "attempts": attempt},
                        )
                        return False

                except httpx.RequestError as e:
                    attempt += 1
                    event_delivery_failure_counter.inc()

                    if attempt >= self.max_retries:
                        logger.warning(
                            f"Analytics delivery failed: {e}",
                            extra={"event_count": len(events), "attempts": attempt},
                        )
                        return False

                # Exponential backoff: 1s, 2s, 4s, 8s, 16s
                backoff = self.backoff_base * (2 ** (attempt - 1))
                await asyncio.sleep(backoff)

        return False
