"""Unit tests for the event recorder and analytics delivery"""

import httpx
import uuid
from billing_engine.infrastructure.clients.analytics import AnalyticsClient
from billing_engine.infrastructure.observability import events as events_module
from billing_engine.infrastructure.observability.events import EventRecorder


def test_recorder_buffers_and_drains():
    recorder = EventRecorder()
    plan_id = uuid.uuid4()

    recorder.record("installment_plan_created", "user_ana", plan_id=plan_id, total_amount_cents=1000)

    events = recorder.drain()
    assert len(events) == 1
    assert events[0]["event"] == "installment_plan_created"
    assert events[0]["properties"] == {"plan_id": str(plan_id), "total_amount_cents": 1000}
    assert recorder.drain() == []


def test_recorder_never_raises(monkeypatch):
    class BrokenCounter:
        def labels(self, **kwargs):
            raise RuntimeError("registry unavailable")

    monkeypatch.setattr(events_module, "event_counter", BrokenCounter())
    recorder = EventRecorder()

    recorder.record("installment_plan_created", "user_ana")

    assert recorder.events == []


def make_client(handler, max_retries: int = 3) -> AnalyticsClient:
    return AnalyticsClient(
        webhook_url="http://analytics.test/events",
        transport=httpx.MockTransport(handler),
        max_retries=max_retries,
        backoff_base=0,
    )


async def test_send_events_success():
    received = []

    def handler(request: httpx.Request) -> httpx.Response:
        received.append(request)
        return httpx.Response(202)

    delivered = await make_client(handler).send_events([{"event": "auto_payment_created"}])

    assert delivered is True
    assert len(received) == 1
    assert b"auto_payment_created" in received[0].content


async def test_send_events_retries_server_errors():
    statuses = iter([503, 500, 200])

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(next(statuses))

    assert await make_client(handler).send_events([{"event": "x"}]) is True


async def test_send_events_does_not_retry_client_errors():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(400)

    assert await make_client(handler).send_events([{"event": "x"}]) is False
    assert len(calls) == 1


async def test_send_events_gives_up_after_network_failures():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        raise httpx.ConnectError("connection refused", request=request)

    assert await make_client(handler, max_retries=2).send_events([{"event": "x"}]) is False
    assert len(calls) == 2


async def test_send_empty_batch():
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    assert await make_client(handler).send_events([]) is True
