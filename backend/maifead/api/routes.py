"""
FastAPI routes for the Maifead ingestion triggers.

Source CRUD, auth and item reads live elsewhere; these endpoints only
start refreshes, sweeps and icon backfills and report their outcome.
"""

from dataclasses import dataclass
from typing import Annotated, Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, status

from maifead.services.data_ingestion.pipeline import FeedPipeline
from maifead.services.data_ingestion.registration import SourceRegistrar
from maifead.services.data_ingestion.scheduler import IngestionScheduler

logger = structlog.get_logger(__name__)
router = APIRouter()


@dataclass
class IngestionServices:
    """Objects built once by the application lifespan."""
    pipeline: FeedPipeline
    registrar: SourceRegistrar
    scheduler: IngestionScheduler


_services: Optional[IngestionServices] = None


def set_services(services: Optional[IngestionServices]):
    """Install (or clear) the services the routes operate on."""
    global _services
    _services = services


def get_services() -> IngestionServices:
    if _services is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Ingestion services are not initialized",
        )
    return _services


ServicesDep = Annotated[IngestionServices, Depends(get_services)]


# ============================================================================
# Refresh Routes
# ============================================================================

@router.post("/sources/{source_id}/refresh")
async def refresh_source(source_id: str, services: ServicesDep):
    """Refresh a single source."""
    result = await services.pipeline.refresh_source_by_id(source_id)
    if result is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Source not found")

    return {
        "source_id": result.source_id,
        "success": result.success,
        "new_items": result.items_new,
        "errors": result.errors,
    }


@router.post("/users/{user_id}/refresh")
async def refresh_user_sources(user_id: str, services: ServicesDep):
    """Refresh every source belonging to a user."""
    summary = await services.pipeline.refresh_user_sources(user_id)
    return summary.to_dict()


# ============================================================================
# Admin Routes
# ============================================================================

@router.post("/admin/refresh-all")
async def refresh_all_sources(services: ServicesDep):
    """Refresh every source system-wide."""
    summary = await services.scheduler.fetch_now()
    return summary.to_dict()


@router.post("/admin/retention-sweep")
async def retention_sweep(services: ServicesDep):
    """Run the retention sweep now."""
    deleted = await services.scheduler.sweep_now()
    return {"deleted": deleted}


@router.post("/admin/update-icons")
async def update_icons(services: ServicesDep):
    """Look up icons for sources that have none."""
    updated = await services.registrar.refresh_missing_icons()
    logger.info("Icon update requested", updated=updated)
    return {"updated": updated}


@router.get("/admin/scheduler")
async def scheduler_status(services: ServicesDep):
    """Scheduler state and next run times."""
    return services.scheduler.get_status()
