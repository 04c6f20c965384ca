import logging

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.jobstores.memory import MemoryJobStore

from app.core.config import settings

logger = logging.getLogger(__name__)

SYNC_POLL_JOB_ID = "integration_sync_poll"

scheduler = BackgroundScheduler(
    jobstores={"default": MemoryJobStore()},
    job_defaults={"coalesce": True, "max_instances": 1},
)


def start_scheduler():
    """Start the scheduler with the periodic job that syncs due integrations."""
    from app.services.sync_service import SyncService

    scheduler.add_job(
        SyncService.run_due_syncs,
        "interval",
        seconds=settings.SYNC_POLL_SECONDS,
        id=SYNC_POLL_JOB_ID,
        replace_existing=True,
    )
    scheduler.start()
    logger.info(f"APScheduler started, polling integrations every {settings.SYNC_POLL_SECONDS}s")


def shutdown_scheduler():
    """Gracefully shut down the scheduler."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("APScheduler shut down")
