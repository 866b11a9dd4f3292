"""FastAPI application factory"""

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.responses import Response

from agro_ledger.api.middleware import MetricsMiddleware, RequestIDMiddleware
from agro_ledger.api.v1 import accounts, alerts, documents, payment_orders, payment_terms
from agro_ledger.config import settings
from agro_ledger.domain.exceptions import (
    AmountExceedsBalance,
    CurrencyMismatch,
    DocumentNotFound,
    DomainException,
    InsufficientFunds,
    InvalidAmount,
    InvalidStateTransition,
    MissingReason,
)
from agro_ledger.infrastructure.database.session import SessionLocal
from agro_ledger.infrastructure.observability.logging import setup_logging
from agro_ledger.services.alert_checks import run_alert_polling

# Setup structured logging
setup_logging(settings.log_level)

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    InvalidAmount: 422,
    MissingReason: 422,
    AmountExceedsBalance: 409,
    InsufficientFunds: 409,
    CurrencyMismatch: 409,
    InvalidStateTransition: 409,
    DocumentNotFound: 404,
}


def status_for(exc: DomainException) -> int:
    for error_type, status in ERROR_STATUS.items():
        if isinstance(exc, error_type):
            return status
    return 400


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the periodic alert checks when enabled"""
    stop_event = asyncio.Event()
    polling = None
    if settings.alert_polling_enabled:
        polling = asyncio.create_task(
            run_alert_polling(SessionLocal, settings.alert_check_interval_seconds, stop_event)
        )
    yield
    if polling is not None:
        stop_event.set()
        await polling


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="Agro Ledger",
        description="Payables, receivables, payment orders and financial alerts for farm firms",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    @app.exception_handler(DomainException)
    async def domain_exception_handler(request: Request, exc: DomainException):
        return JSONResponse(status_code=status_for(exc), content={"detail": exc.to_dict()})

    # Health check endpoint
    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    # Prometheus metrics endpoint
    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # Register API routers; documents last, its /{collection} paths match any segment
    app.include_router(payment_terms.router, prefix="/v1", tags=["payment-terms"])
    app.include_router(payment_orders.router, prefix="/v1", tags=["payment-orders"])
    app.include_router(accounts.router, prefix="/v1", tags=["accounts"])
    app.include_router(alerts.router, prefix="/v1", tags=["alerts"])
    app.include_router(documents.router, prefix="/v1", tags=["documents"])

    return app


app = create_app()
