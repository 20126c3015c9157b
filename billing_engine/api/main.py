"""FastAPI application factory"""

from fastapi import FastAPI
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from billing_engine.api.middleware import RequestIDMiddleware, MetricsMiddleware
from billing_engine.api.v1 import budget, plans, statements
from billing_engine.infrastructure.observability.logging import setup_logging
from billing_engine.services.settlement import SettlementCategoryCache
from billing_engine.config import settings

# Setup structured logging
setup_logging(settings.log_level)


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="Billing Engine",
        description="Statement periods, installment plans, budgets and statement settlement",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Shared across requests until the process restarts
    app.state.category_cache = SettlementCategoryCache()

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    # Health check endpoint
    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    # Prometheus metrics endpoint
    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # Register API routers
    app.include_router(plans.router, prefix="/v1", tags=["plans"])
    app.include_router(budget.router, prefix="/v1", tags=["budget"])
    app.include_router(statements.router, prefix="/v1", tags=["statements"])

    return app


app = create_app()
