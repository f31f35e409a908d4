"""FastAPI application entry point.

Catalog Sync API - keeps the product catalog and Shopify in step.
"""

import asyncio
from contextlib import asynccontextmanager, suppress
from collections.abc import AsyncGenerator
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from catalog_sync.container import build_container
from catalog_sync.errors import (
    CatalogSyncError,
    NotFoundError,
    QueueUnavailableError,
    RemoteChannelError,
    SchedulerClosedError,
    StaleReferenceError,
    SyncInProgressError,
    ValidationError,
)
from catalog_sync.routes import api_router
from catalog_sync.schemas.common import (
    INTERNAL_ERROR,
    NOT_FOUND,
    QUEUE_UNAVAILABLE,
    REMOTE_CHANNEL_ERROR,
    SCHEDULER_CLOSED,
    SYNC_IN_PROGRESS,
    VALIDATION_ERROR,
    ErrorResponse,
)
from catalog_sync.services.scheduler import JobScheduler
from catalog_sync.settings import get_settings
from catalog_sync.stores.postgres import ping_db

logger = logging.getLogger("uvicorn.error")

ERROR_STATUS: list[tuple[type[CatalogSyncError], int, str]] = [
    (ValidationError, 400, VALIDATION_ERROR),
    (NotFoundError, 404, NOT_FOUND),
    (SyncInProgressError, 409, SYNC_IN_PROGRESS),
    (StaleReferenceError, 502, REMOTE_CHANNEL_ERROR),
    (RemoteChannelError, 502, REMOTE_CHANNEL_ERROR),
    (QueueUnavailableError, 503, QUEUE_UNAVAILABLE),
    (SchedulerClosedError, 503, SCHEDULER_CLOSED),
]


def _error_status(exc: CatalogSyncError) -> tuple[int, str]:
    for error_type, status_code, code in ERROR_STATUS:
        if isinstance(exc, error_type):
            return status_code, code
    return 500, INTERNAL_ERROR


async def run_recurring_ticker(scheduler: JobScheduler, interval: float) -> None:
    """Fire due recurring jobs in-process (immediate mode only)."""
    while True:
        await asyncio.sleep(interval)
        try:
            fired = await scheduler.run_due_recurring()
            if fired:
                logger.info(f"Recurring jobs run: {', '.join(fired)}")
        except Exception as e:
            logger.exception(f"Recurring ticker error: {e}")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Builds the service container on startup and tears it down on shutdown.
    """
    # Startup
    settings = get_settings()
    container = await build_container(settings)
    app.state.container = container

    try:
        await ping_db(container.engine)
        logger.info("Postgres connected")
    except Exception:
        logger.exception("Postgres init failed")

    await container.scheduler.schedule_startup_jobs(settings.startup_recurring_jobs)

    ticker: asyncio.Task | None = None
    if container.queue.mode == "immediate":
        ticker = asyncio.create_task(run_recurring_ticker(container.scheduler, settings.scheduler_tick_seconds))

    yield

    # Shutdown
    if ticker is not None:
        ticker.cancel()
        with suppress(asyncio.CancelledError):
            await ticker
    await container.close()


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Catalog and inventory reconciliation with Shopify",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(CatalogSyncError)
    async def catalog_sync_exception_handler(request: Request, exc: CatalogSyncError) -> JSONResponse:
        """Map domain errors to the structured error format."""
        status_code, code = _error_status(exc)
        if status_code >= 500:
            logger.error(f"{code} on {request.method} {request.url.path}: {exc.message}")
        return JSONResponse(
            status_code=status_code,
            content=ErrorResponse.build(code, exc.message, exc.detail or None),
        )

    # Exception handler for structured error format
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Global exception handler returning structured error format."""
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        return JSONResponse(
            status_code=500,
            content=ErrorResponse.build(INTERNAL_ERROR, str(exc) if settings.debug else "Internal server error"),
        )

    # Health check endpoint
    @app.get("/health", tags=["health"])
    async def health_check() -> dict[str, bool]:
        """Health check endpoint."""
        return {"ok": True}

    # Include API routes
    app.include_router(api_router)

    return app


# Application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "catalog_sync.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
