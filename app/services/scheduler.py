"""
Background Job Scheduler.

WHAT: Configures and manages APScheduler for background tasks.

WHY: Post-commit event dispatch is fire-and-forget. If the process dies
or a consumer is down, outbox rows stay pending or failed; a periodic
job picks them up again.

HOW: Uses APScheduler's AsyncIOScheduler with an in-memory job store.
The redelivery job calls NotificationDispatcher.redeliver_pending.

Example:
    # In main.py lifespan:
    await start_scheduler(dispatcher)
    ...
    await shutdown_scheduler()
"""

import logging
from typing import Optional

from apscheduler.executors.asyncio import AsyncIOExecutor
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from app.core.config import settings
from app.services.notification_dispatcher import NotificationDispatcher

logger = logging.getLogger(__name__)

OUTBOX_JOB_ID = "outbox_redelivery"

# Global scheduler instance
_scheduler: Optional[AsyncIOScheduler] = None


def get_scheduler() -> Optional[AsyncIOScheduler]:
    """Get the global scheduler instance."""
    return _scheduler


async def start_scheduler(dispatcher: NotificationDispatcher) -> None:
    """
    Start the background job scheduler.

    HOW:
    1. Creates AsyncIOScheduler with memory job store
    2. Registers the outbox redelivery job
    3. Starts the scheduler

    Note: Call this from the FastAPI lifespan.
    """
    global _scheduler

    if _scheduler is not None and _scheduler.running:
        logger.warning("Scheduler already running")
        return

    _scheduler = AsyncIOScheduler(
        jobstores={"default": MemoryJobStore()},
        executors={"default": AsyncIOExecutor()},
        job_defaults={
            "coalesce": True,  # Combine multiple missed runs into one
            "max_instances": 1,
            "misfire_grace_time": 60,
        },
        timezone="UTC",
    )

    _register_outbox_job(dispatcher)

    _scheduler.start()
    logger.info(
        f"Scheduler started with outbox redelivery every "
        f"{settings.OUTBOX_REDELIVERY_INTERVAL_SECONDS} seconds"
    )


def _register_outbox_job(dispatcher: NotificationDispatcher) -> None:
    if _scheduler is None:
        logger.error("Cannot register job: scheduler not initialized")
        return

    _scheduler.add_job(
        func=dispatcher.redeliver_pending,
        trigger=IntervalTrigger(seconds=settings.OUTBOX_REDELIVERY_INTERVAL_SECONDS),
        id=OUTBOX_JOB_ID,
        name="Outbox Redelivery",
        replace_existing=True,
    )
    logger.info(
        f"Registered outbox redelivery job "
        f"(interval: {settings.OUTBOX_REDELIVERY_INTERVAL_SECONDS}s)"
    )


async def shutdown_scheduler() -> None:
    """Stop the scheduler, waiting for a running job to finish."""
    global _scheduler

    if _scheduler is None:
        logger.info("Scheduler not running")
        return

    if not _scheduler.running:
        logger.info("Scheduler already stopped")
        _scheduler = None
        return

    logger.info("Shutting down scheduler...")
    _scheduler.shutdown(wait=True)
    _scheduler = None
    logger.info("Scheduler shut down successfully")


def get_scheduler_status() -> dict:
    """Scheduler state and job info for the health endpoint."""
    if _scheduler is None:
        return {"running": False, "jobs": []}

    return {
        "running": _scheduler.running,
        "jobs": [
            {
                "id": job.id,
                "name": job.name,
                "next_run_time": str(job.next_run_time) if job.next_run_time else None,
            }
            for job in _scheduler.get_jobs()
        ],
    }
