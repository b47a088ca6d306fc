from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from grc_api.core.settings import settings
from grc_api.db.session import async_session
from .api.routes import api_router
from .core.logging import configure_logging
from .observability.tracing import configure_tracing
from .services.grc import GrcLifecycleScheduler


APP_VERSION = "0.1.0"


def _session_factory():
    return async_session()


@asynccontextmanager
async def lifespan(app: FastAPI):
    lifecycle_scheduler = GrcLifecycleScheduler(
        session_factory=_session_factory,
        interval_seconds=settings.qualification_scheduler_interval_seconds,
        claim_expiry_days=settings.grc_claim_expiry_days,
    )
    app.state.grc_lifecycle_scheduler = lifecycle_scheduler

    scheduler_enabled = settings.qualification_scheduler_enabled
    if scheduler_enabled:
        lifecycle_scheduler.start()
        logger.info(
            "GRC lifecycle scheduler enabled",
            interval_seconds=lifecycle_scheduler.interval_seconds,
            claim_expiry_days=lifecycle_scheduler.claim_expiry_days,
        )
    else:
        logger.info(
            "GRC lifecycle scheduler disabled",
            reason="qualification_scheduler_enabled is false",
        )

    try:
        yield
    finally:
        if scheduler_enabled and lifecycle_scheduler.is_running:
            await lifecycle_scheduler.stop()


def create_app() -> FastAPI:
    """Application factory for the GRC FastAPI service."""
    configure_logging(
        service_name="grc-api",
        environment=settings.environment,
        version=APP_VERSION,
    )

    app = FastAPI(
        title="GRC API",
        version=APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    configure_tracing(
        app,
        service_name="grc-api",
        service_version=APP_VERSION,
        environment=settings.environment,
    )

    # Member, merchant and admin portals call the API from the browser.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.frontend_url.rstrip("/")],
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type"],
    )

    app.include_router(api_router)

    @app.get("/healthz", tags=["Health"])
    async def health_check() -> dict[str, str]:
        return {
            "status": "ok",
            "environment": settings.environment,
            "version": APP_VERSION,
        }

    return app
