"""
FastAPI application factory for the death verification API.

Creates the app with:
- Verification REST routes
- Middleware stack
- Health check endpoint
- Lifespan management (start/stop source HTTP clients)
"""
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI

from shared.config import get_settings
from shared.utils.logging import get_logger, setup_logging
from shared.utils.metrics import SERVICE_INFO, start_metrics_server

from api.dependencies import init_dependencies, reset_dependencies
from api.middleware import setup_middleware
from api.routes.verifications import router as verifications_router
from verifier.engine import DeathVerificationService, build_service

logger = get_logger(__name__)

API_VERSION = "1.0.0"


@asynccontextmanager
async def _noop_lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """No-op lifespan for testing with an injected service."""
    yield


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.
    Builds the verification service from configuration, starts its source
    clients, and closes them on shutdown.
    """
    settings = get_settings()
    setup_logging("api")
    start_metrics_server()
    SERVICE_INFO.info({"version": API_VERSION, "environment": settings.environment.value})

    service = build_service(settings)
    await service.start()
    init_dependencies(service)

    logger.info(
        "api_service_started",
        host=settings.api_host,
        port=settings.api_port,
        environment=settings.environment.value,
    )

    yield

    await service.close()
    reset_dependencies()
    logger.info("api_service_stopped")


def create_app(
    *,
    service: Optional[DeathVerificationService] = None,
    use_lifespan: bool = True,
) -> FastAPI:
    """
    Create and configure the FastAPI application.
    Pass ``service`` with use_lifespan=False to test against an injected service.
    """
    if service is not None:
        init_dependencies(service)

    settings = get_settings()
    app = FastAPI(
        title="Death Verification API",
        description="Multi-source death verification for inheritance claims",
        version=API_VERSION,
        lifespan=lifespan if use_lifespan else _noop_lifespan,
        debug=settings.debug,
        docs_url=None if settings.is_production else "/docs",
        redoc_url=None,
    )

    setup_middleware(app)
    app.include_router(verifications_router)

    @app.get("/health", tags=["system"])
    async def health() -> dict[str, str]:
        return {"status": "ok", "service": "api"}

    return app


# For running with uvicorn directly
app = create_app()
