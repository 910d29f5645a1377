# core/scheduler.py
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from datetime import datetime, timezone

from core.logging_config import logger
from jobs.prune_push_endpoints import run as prune_push_endpoints


def run_scheduled_cleanup():
    """Removes push endpoints flagged invalid during the day's dispatches."""
    start_time = datetime.now(timezone.utc)
    try:
        logger.info("[SCHEDULER] Starting push endpoint cleanup...")
        removed = prune_push_endpoints()
        duration = (datetime.now(timezone.utc) - start_time).total_seconds()
        logger.info(f"[SCHEDULER] Cleanup done in {duration:.1f}s ({removed} endpoint(s) removed)")

    except Exception as e:
        logger.exception(f"[SCHEDULER] ❌ Cleanup failed: {e}")


def start_scheduler() -> BackgroundScheduler:
    """
    Initialize the APScheduler background process.
    Runs the cleanup job nightly.
    """
    scheduler = BackgroundScheduler(timezone="UTC")

    scheduler.add_job(
        run_scheduled_cleanup,
        trigger=CronTrigger(hour=3, minute=0, timezone="UTC"),
        id="prune_push_endpoints",
        replace_existing=True,
    )

    scheduler.start()
    logger.info("⏰ Scheduler started. Push endpoint cleanup set for 03:00 UTC.")
    return scheduler
