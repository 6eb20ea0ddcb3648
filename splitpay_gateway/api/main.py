"""FastAPI application factory"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from splitpay_gateway.api.middleware import RequestIDMiddleware, MetricsMiddleware
from splitpay_gateway.api.v1 import checkout, collections, payers, payments, payouts, webhooks
from splitpay_gateway.infrastructure.database.session import Database
from splitpay_gateway.infrastructure.observability.logging import setup_logging
from splitpay_gateway.infrastructure.providers.registry import ProviderRegistry, build_provider_registry
from splitpay_gateway.config import settings

# Setup structured logging
setup_logging(settings.log_level)


def create_app(providers: ProviderRegistry | None = None) -> FastAPI:
    """Create and configure FastAPI application"""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # One store client per process, closed at shutdown
        app.state.database = Database(settings.database_url)
        app.state.database.create_all()
        try:
            yield
        finally:
            app.state.database.dispose()

    app = FastAPI(
        title="SplitPay Gateway",
        description="Bill splitting, payment links and payment reconciliation service",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.providers = providers or build_provider_registry()

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
    app.include_router(collections.router, prefix="/v1", tags=["collections"])
    app.include_router(payers.router, prefix="/v1", tags=["payers"])
    app.include_router(checkout.router, prefix="/v1", tags=["checkout"])
    app.include_router(payments.router, prefix="/v1", tags=["payments"])
    app.include_router(webhooks.router, prefix="/v1", tags=["webhooks"])
    app.include_router(payouts.router, prefix="/v1", tags=["payouts"])

    return app


app = create_app()
