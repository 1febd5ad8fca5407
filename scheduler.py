"""
Daily notification sweeps.

- 09:00 missing-log check for yesterday
- 10:00 reminder for drafts older than 24 hours

Both sweeps are safe to run more than once a day; see notifications.py.
"""

import logging
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from notifications import run_missing_log_sweep, run_stale_draft_sweep

logger = logging.getLogger(__name__)

_scheduler: Optional[BackgroundScheduler] = None


def init_scheduler() -> BackgroundScheduler:
    global _scheduler
    if _scheduler is not None and _scheduler.running:
        return _scheduler

    scheduler = BackgroundScheduler(timezone="UTC")
    scheduler.add_job(
        run_missing_log_sweep,
        CronTrigger(hour=9, minute=0),
        id="missing_log_sweep",
        replace_existing=True,
        coalesce=True,
    )
    scheduler.add_job(
        run_stale_draft_sweep,
        CronTrigger(hour=10, minute=0),
        id="stale_draft_sweep",
        replace_existing=True,
        coalesce=True,
    )
    scheduler.start()
    _scheduler = scheduler
    logger.info("Scheduled tasks initialized")
    return scheduler


def shutdown_scheduler():
    global _scheduler
    if _scheduler is not None and _scheduler.running:
        _scheduler.shutdown(wait=False)
        logger.info("Scheduled tasks stopped")
    _scheduler = None
