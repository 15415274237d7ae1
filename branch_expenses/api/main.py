"""FastAPI application factory"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from branch_expenses.api.middleware import RequestIDMiddleware, MetricsMiddleware
from branch_expenses.api.v1 import alerts, expenses, payments, recipients
from branch_expenses.config import get_settings
from branch_expenses.infrastructure.observability.logging import setup_logging
from branch_expenses.jobs.scheduler import start_scheduler

settings = get_settings()

# Setup structured logging
setup_logging(settings.log_level, settings.service_name)


@asynccontextmanager
async def lifespan(app: FastAPI):
    scheduler = start_scheduler(settings)
    app.state.scheduler = scheduler
    try:
        yield
    finally:
        if scheduler is not None:
            scheduler.shutdown(wait=False)


def create_app(enable_scheduler: bool = True) -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="Branch Expenses",
        description="Branch expense settlement and due-date alerting service",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan if enable_scheduler else None,
    )

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
    app.include_router(expenses.router, prefix="/v1", tags=["expenses"])
    app.include_router(payments.router, prefix="/v1", tags=["payments"])
    app.include_router(alerts.router, prefix="/v1", tags=["alerts"])
    app.include_router(recipients.router, prefix="/v1", tags=["recipients"])

    return app


app = create_app()
