"""
Scheduler Module

One APScheduler instance per process. Hosts the shared polling jobs
(technician tracking, on-site progress) so every subscriber of a key
shares a single interval job.
"""

import os
import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

logger = logging.getLogger(__name__)

# Configuration from environment
POLLING_ENABLED = os.getenv("POLLING_ENABLED", "true").lower() == "true"

# Create scheduler
scheduler: Optional[AsyncIOScheduler] = None


def get_scheduler() -> AsyncIOScheduler:
    """Get or create the process scheduler"""
    global scheduler
    if scheduler is None:
        scheduler = AsyncIOScheduler()
    return scheduler


def start_scheduler():
    """Start the background scheduler"""
    if not POLLING_ENABLED:
        logger.info("[Scheduler] Polling disabled via POLLING_ENABLED env var")
        return

    sched = get_scheduler()
    if sched.running:
        return

    sched.start()
    logger.info("[Scheduler] Scheduler started successfully")


def stop_scheduler():
    """Stop the scheduler"""
    if scheduler is not None and scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("[Scheduler] Scheduler stopped")
