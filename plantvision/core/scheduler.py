"""Background maintenance jobs: the daily audit retention sweep."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from functools import partial

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from plantvision.core.config import constants, settings
from plantvision.core.db_client import Store
from plantvision.services.audit_service import AuditTrail, cleanup_audit_logs


logger = logging.getLogger(__name__)

AUDIT_CLEANUP_JOB_ID = "audit_cleanup"

scheduler = AsyncIOScheduler(timezone="UTC")


async def retry_job_with_backoff(
    job_func: Callable[[], Awaitable[None]],
    job_name: str,
    max_retries: int = constants.JOB_MAX_RETRIES,
    base_delay: float = 2.0,
) -> bool:
    """Run ``job_func`` up to ``max_retries`` times.

    After failed attempt N it sleeps ``base_delay ** (N - 1)`` seconds: 1, base_delay, base_delay**2, ...

    Returns True on the first success, False when every attempt raised.
    """
    for attempt in range(1, max_retries + 1):
        try:
            await job_func()
        except Exception as e:
            logger.warning(
                "scheduled_job_attempt_failed",
                extra={"job": job_name, "attempt": attempt, "max_retries": max_retries, "error": str(e)},
            )
            if attempt < max_retries:
                await asyncio.sleep(base_delay ** (attempt - 1))
            continue
        logger.info("scheduled_job_succeeded", extra={"job": job_name, "attempt": attempt})
        return True

    logger.error("scheduled_job_gave_up", extra={"job": job_name, "max_retries": max_retries})
    return False


async def run_audit_cleanup(*, store: Store, audit: AuditTrail) -> None:
    deleted = await cleanup_audit_logs(
        store=store, audit=audit, caller=None, retention_days=settings.audit_retention_days
    )
    logger.info(
        "audit_retention_sweep", extra={"deleted_count": deleted, "retention_days": settings.audit_retention_days}
    )


def start_scheduler(*, store: Store, audit: AuditTrail) -> None:
    """Register the retention sweep and start the scheduler; a no-op when the job is disabled."""
    if not settings.enable_audit_cleanup_job:
        logger.info("scheduler_disabled", extra={"job": AUDIT_CLEANUP_JOB_ID})
        return

    scheduler.add_job(
        retry_job_with_backoff,
        args=[partial(run_audit_cleanup, store=store, audit=audit), AUDIT_CLEANUP_JOB_ID],
        trigger=CronTrigger(hour=settings.audit_cleanup_hour, minute=0, timezone="UTC"),
        id=AUDIT_CLEANUP_JOB_ID,
        name="Audit log retention sweep",
        replace_existing=True,
    )
    scheduler.start()
    logger.info("scheduler_started", extra={"job": AUDIT_CLEANUP_JOB_ID, "hour_utc": settings.audit_cleanup_hour})


def stop_scheduler() -> None:
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("scheduler_stopped")
