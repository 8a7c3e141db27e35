import logging
from datetime import datetime, timezone
from typing import Optional
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from core.config import settings
from core.database import build_engine, build_session_maker
from core.exceptions import SyncException
from ingestion.extractors.openlibrary_client import OpenLibraryClient
from ingestion.runner import SyncOrchestrator

logger = logging.getLogger(__name__)

JOB_ID = "catalog_sync"


class SyncScheduler:
    """
    Cron-driven sync runs, plus a manual trigger.

    A single job id with ``max_instances=1`` keeps runs single-flight
    inside this process: a tick (or manual trigger) that fires while a
    run is still draining is skipped by APScheduler.
    """

    def __init__(self, cron: Optional[str] = None):
        self.cron = cron or settings.SYNC_CRON
        self.scheduler = AsyncIOScheduler(timezone=timezone.utc)
        self.engine = build_engine()
        self.SessionLocal = build_session_maker(self.engine)

    async def run_sync_job(self):
        """Job to run one sync"""
        logger.info("Scheduler: Starting sync job")
        async with self.SessionLocal() as session:
            try:
                async with OpenLibraryClient() as client:
                    orchestrator = SyncOrchestrator(session, client)
                    result = await orchestrator.run()
                logger.info(
                    f"Scheduler: Sync job finished "
                    f"(loaded={result['records_loaded']}, watermark={result['watermark']})"
                )
            except SyncException as e:
                # Already persisted to run_error; the next tick retries
                logger.error(f"Scheduler: Sync job failed - {e.message}")

    def start(self):
        """Start the scheduler"""
        self.scheduler.add_job(
            self.run_sync_job,
            trigger=CronTrigger.from_crontab(self.cron, timezone=timezone.utc),
            id=JOB_ID,
            max_instances=1,
            coalesce=True,
            replace_existing=True
        )
        self.scheduler.start()
        logger.info(f"Sync scheduler started ({self.cron} UTC)")

    def trigger_now(self) -> Optional[datetime]:
        """Move the sync job's next run to now, returns the new run time"""
        job = self.scheduler.get_job(JOB_ID)
        if job is None:
            logger.warning("Manual trigger ignored: sync job is not scheduled")
            return None

        now = datetime.now(timezone.utc)
        job.modify(next_run_time=now)
        logger.info("Manual sync trigger accepted")
        return now

    def stop(self):
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        logger.info("Sync scheduler shutdown requested")
