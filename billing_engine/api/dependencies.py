"""Dependency injection for FastAPI endpoints"""

from fastapi import BackgroundTasks, Request
from billing_engine.infrastructure.clients.analytics import AnalyticsClient
from billing_engine.infrastructure.observability.events import EventRecorder
from billing_engine.services.settlement import SettlementCategoryCache


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_event_recorder() -> EventRecorder:
    """Fresh event buffer per request"""
    return EventRecorder()


def get_analytics_client() -> AnalyticsClient:
    """Provide analytics webhook client instance"""
    return AnalyticsClient()


def get_category_cache(request: Request) -> SettlementCategoryCache:
    """Process-wide settlement category cache held on the app"""
    return request.app.state.category_cache


def ship_events(
    background_tasks: BackgroundTasks,
    recorder: EventRecorder,
    analytics_client: AnalyticsClient,
) -> None:
    """Send the request's recorded events after the response is returned"""
    events = recorder.drain()
    if events:
        background_tasks.add_task(analytics_client.send_events, events)
