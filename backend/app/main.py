"""
FastAPI Application Entry Point.

This is the main application file for the Field Trip Tracking Backend.
"""

import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from backend.app.core.config import settings
from backend.app.api.v1.router import router as api_v1_router
from backend.app.core.observability import ObservabilityMiddleware, configure_logging
from backend.app.core.redis_client import ping_redis
from backend.app.db.session import engine, Base
from backend.app.domain.tracking.sweeper import sweeper_loop
from backend.app.core.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    generic_exception_handler
)

# Import models to ensure they are registered with Base
from backend.app.models.vehicle import Vehicle
from backend.app.models.service_site import ServiceSite
from backend.app.models.work_item import WorkItem
from backend.app.models.trip import Trip
from backend.app.models.trip_point import TripPoint
from backend.app.models.trip_stop import TripStop
from backend.app.models.trip_anomaly import TripAnomaly
from backend.app.models.trip_task_link import TripTaskLink
from backend.app.models.trip_reconciliation import TripReconciliation
from backend.app.models.audit_log import AuditLog
from backend.app.models.dlq import DeadLetterQueue

configure_logging(settings.log_level)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for application startup/shutdown.

    1. Creates database tables on startup.
    2. Starts the stale-trip sweeper when enabled.
    3. Cancels the sweeper on shutdown.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    sweeper_task = None
    if settings.sweeper_enabled:
        sweeper_task = asyncio.create_task(sweeper_loop(), name="stale-trip-sweeper")

    yield

    if sweeper_task is not None:
        sweeper_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweeper_task
        logger.info("Stale-trip sweeper stopped")


# Initialize FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.api_version,
    debug=settings.debug,
    description="GPS trip tracking and anomaly detection for field service operations",
    lifespan=lifespan,
)

app.add_middleware(ObservabilityMiddleware)

# Register global exception handlers
app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)


@app.get("/health", tags=["Health"])
async def health_check():
    """
    Health check endpoint.

    Returns:
        dict: Status, application information and Redis reachability
    """
    redis_ok = await ping_redis()
    return {
        "status": "healthy" if redis_ok else "degraded",
        "app_name": settings.app_name,
        "version": settings.api_version,
        "redis": "up" if redis_ok else "down",
    }


# Include API v1 router
app.include_router(api_v1_router, prefix=f"/{settings.api_version}")


@app.get("/", tags=["Root"])
async def root():
    """
    Root endpoint.

    Returns:
        dict: Welcome message and API documentation links
    """
    return {
        "message": "Welcome to the Field Trip Tracking Backend API",
        "docs": "/docs",
        "health": "/health",
    }
