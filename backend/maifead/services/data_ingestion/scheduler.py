"""
Ingestion Scheduler - periodic refreshes and the nightly retention sweep.

Both jobs run on an APScheduler AsyncIOScheduler in UTC. Each job allows a
single running instance; missed runs are coalesced.
"""

from datetime import datetime
from typing import Optional
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from maifead.config import Settings, get_settings
from maifead.models.domain import RefreshSummary
from maifead.services.data_ingestion.pipeline import FeedPipeline
from maifead.services.data_ingestion.retention import RetentionSweeper

logger = logging.getLogger(__name__)

REFRESH_JOB_ID = "refresh_all_sources"
RETENTION_JOB_ID = "retention_sweep"


class IngestionScheduler:
    """
    Schedules fetch cycles and retention sweeps.

    Features:
    - Refresh of every source on a fixed interval (default 15 minutes)
    - Retention sweep once a day at a fixed UTC time (default 02:00)
    - Manual triggers that share the job bodies
    """

    def __init__(
        self,
        pipeline: FeedPipeline,
        sweeper: RetentionSweeper,
        settings: Optional[Settings] = None,
        scheduler: Optional[AsyncIOScheduler] = None,
    ):
        """
        Initialize the scheduler.

        Args:
            pipeline: Refresh pipeline run by the interval job
            sweeper: Retention sweeper run by the nightly job
            settings: Interval and sweep time (default: global settings)
            scheduler: APScheduler instance to register jobs on
        """
        self.pipeline = pipeline
        self.sweeper = sweeper
        self.settings = settings or get_settings()
        self.scheduler = scheduler or AsyncIOScheduler(timezone="UTC")

        self._last_fetch: Optional[datetime] = None
        self._last_sweep: Optional[datetime] = None
        self._last_summary: Optional[RefreshSummary] = None
        self._last_deleted: Optional[int] = None

    def start(self):
        """Register both jobs and start the scheduler."""
        if self.scheduler.running:
            logger.warning("Scheduler already running")
            return

        self.scheduler.add_job(
            self._run_refresh,
            IntervalTrigger(minutes=self.settings.fetch_interval_minutes),
            id=REFRESH_JOB_ID,
            name="Refresh all sources",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self.scheduler.add_job(
            self._run_sweep,
            CronTrigger(
                hour=self.settings.retention_hour,
                minute=self.settings.retention_minute,
                timezone="UTC",
            ),
            id=RETENTION_JOB_ID,
            name="Retention sweep",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

        self.scheduler.start()
        logger.info(
            f"Ingestion scheduler started (refresh every {self.settings.fetch_interval_minutes} min, "
            f"sweep at {self.settings.retention_hour:02d}:{self.settings.retention_minute:02d} UTC)"
        )

    def stop(self):
        """Stop the scheduler without waiting for running jobs."""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        logger.info("Ingestion scheduler stopped")

    async def _run_refresh(self):
        """Scheduled fetch cycle; failures are logged, never raised into APScheduler."""
        try:
            await self.fetch_now()
        except Exception as e:
            logger.error(f"Scheduled refresh failed: {e}", exc_info=True)

    async def _run_sweep(self):
        try:
            await self.sweep_now()
        except Exception as e:
            logger.error(f"Scheduled retention sweep failed: {e}", exc_info=True)

    async def fetch_now(self) -> RefreshSummary:
        """Trigger an immediate refresh of every source."""
        started = self.pipeline.clock()
        summary = await self.pipeline.refresh_all_sources()

        for result in summary.results:
            logger.info(str(result))

        self._last_fetch = started
        self._last_summary = summary
        return summary

    async def sweep_now(self) -> int:
        """Trigger an immediate retention sweep."""
        started = self.sweeper.clock()
        deleted = await self.sweeper.sweep(started)
        self._last_sweep = started
        self._last_deleted = deleted
        return deleted

    @property
    def is_running(self) -> bool:
        return self.scheduler.running

    def get_status(self) -> dict:
        """Get scheduler status."""
        jobs = {}
        for job_id in (REFRESH_JOB_ID, RETENTION_JOB_ID):
            job = self.scheduler.get_job(job_id)
            next_run = getattr(job, "next_run_time", None) if job else None
            jobs[job_id] = next_run.isoformat() if next_run else None

        return {
            "running": self.is_running,
            "fetch_interval_minutes": self.settings.fetch_interval_minutes,
            "last_fetch": self._last_fetch.isoformat() if self._last_fetch else None,
            "last_fetch_new_items": self._last_summary.total_new if self._last_summary else None,
            "last_sweep": self._last_sweep.isoformat() if self._last_sweep else None,
            "last_sweep_deleted": self._last_deleted,
            "next_runs": jobs,
        }
