"""FastAPI application factory"""

from fastapi import FastAPI
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from microlend.api.middleware import RequestIDMiddleware, MetricsMiddleware
from microlend.api.v1 import admin, loans, users
from microlend.infrastructure.observability.logging import setup_logging
from microlend.config import settings

# Setup structured logging
setup_logging(settings.log_level)


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="MicroLend",
        description="Peer-to-peer micro-lending: loan lifecycle, wallet ledger and credit scoring",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
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
    app.include_router(users.router, prefix="/v1", tags=["users"])
    app.include_router(loans.router, prefix="/v1", tags=["loans"])
    app.include_router(admin.router, prefix="/v1", tags=["admin"])

    return app


app = create_app()
