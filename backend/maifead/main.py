"""
Main FastAPI application for the Maifead ingestion service.
"""
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI

from maifead import __version__
from maifead.api.routes import IngestionServices, router, set_services
from maifead.config import get_settings
from maifead.core.logging import configure_logging
from maifead.models.database import Database
from maifead.services.data_ingestion.http import FeedHttpClient, create_http_client
from maifead.services.data_ingestion.pipeline import FeedPipeline
from maifead.services.data_ingestion.rate_limiter import RateLimiter
from maifead.services.data_ingestion.registration import SourceRegistrar
from maifead.services.data_ingestion.retention import RetentionSweeper
from maifead.services.data_ingestion.scheduler import IngestionScheduler
from maifead.storage.sql import SqlItemRepository

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager - handles startup and shutdown."""
    settings = get_settings()
    configure_logging(settings.log_level, json_output=settings.log_json)

    # Initialize database
    logger.info("Initializing database", url=settings.database_url)
    database = Database(settings.database_url)
    await database.create_tables()
    repository = SqlItemRepository(database)

    # Outbound HTTP, shared by every source
    http = FeedHttpClient(
        create_http_client(settings),
        rate_limiter=RateLimiter(settings.host_limits),
        retries=settings.fetch_retries,
    )

    pipeline = FeedPipeline(repository, http, settings)
    sweeper = RetentionSweeper(repository)
    registrar = SourceRegistrar(repository, http, settings)
    scheduler = IngestionScheduler(pipeline, sweeper, settings)

    set_services(IngestionServices(pipeline=pipeline, registrar=registrar, scheduler=scheduler))
    scheduler.start()
    logger.info(
        "Scheduler started",
        fetch_interval_minutes=settings.fetch_interval_minutes,
        retention_time=f"{settings.retention_hour:02d}:{settings.retention_minute:02d} UTC",
    )

    yield

    # Shutdown
    logger.info("Shutting down")
    scheduler.stop()
    set_services(None)
    await http.aclose()
    await database.dispose()


# Create FastAPI app
app = FastAPI(
    title="Maifead Ingest",
    description="Feed ingestion and normalization for RSS, YouTube, Reddit and Bluesky.",
    version=__version__,
    lifespan=lifespan,
)

# Include API routes
app.include_router(router, prefix="/api/v1")


# Health check endpoint
@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": "maifead-ingest",
        "version": __version__,
    }


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "maifead.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
