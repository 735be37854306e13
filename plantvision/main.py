"""PlantVision - role-gated plant inspection API."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from plantvision.core.blob_store import LocalBlobStore
from plantvision.core.config import settings
from plantvision.core.db_client import Store, utc_now
from plantvision.core.logging import configure_logfire, instrument_fastapi
from plantvision.core.scheduler import start_scheduler, stop_scheduler
from plantvision.core.security import TokenService
from plantvision.interface.audit_router import router as audit_router
from plantvision.interface.auth_router import router as auth_router
from plantvision.interface.equipment_router import router as equipment_router
from plantvision.interface.error_handlers import register_exception_handlers
from plantvision.interface.photos_router import files_router, router as photos_router
from plantvision.interface.tasks_router import router as tasks_router
from plantvision.interface.users_router import router as users_router
from plantvision.services.audit_service import AuditTrail


logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan context manager."""
    # Startup
    configure_logfire()

    store = Store(settings.database_path)
    await store.init_db()
    logger.info("Database initialized")

    audit = AuditTrail(store)
    app.state.store = store
    app.state.audit = audit
    app.state.blobs = LocalBlobStore(settings.blob_storage_dir)
    app.state.tokens = TokenService(settings.secret_key)

    if settings.is_production and settings.secret_key == "change-me-in-production":
        logger.warning("startup_validation", extra={"setting": "secret_key", "status": "default"})

    start_scheduler(store=store, audit=audit)
    try:
        yield
    finally:
        # Shutdown
        stop_scheduler()
        await audit.flush()
        await store.close()


def create_app() -> FastAPI:
    application = FastAPI(
        title="plantvision",
        description="Role-gated plant inspection API",
        version="0.1.0",
        lifespan=lifespan,
    )

    # Instrument FastAPI with Logfire
    instrument_fastapi(application)
    register_exception_handlers(application)

    # Register routers
    routers = (auth_router, users_router, equipment_router, photos_router, files_router, tasks_router, audit_router)
    for router in routers:
        application.include_router(router)

    @application.get("/health")
    async def health_check() -> JSONResponse:
        """Health check endpoint."""
        return JSONResponse(
            content={"status": "healthy", "timestamp": utc_now(), "environment": settings.environment},
            status_code=200,
        )

    return application


app = create_app()
