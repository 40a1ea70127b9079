from __future__ import annotations

from typing import Awaitable, Callable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from upwind.config import SchedulerConfig
from upwind.logging import get_logger

logger = get_logger(__name__)


def build_scheduler(
    job: Callable[[], Awaitable[object]], config: SchedulerConfig
) -> Optional[AsyncIOScheduler]:
    """Schedule periodic conflict re-scans, or return None when disabled."""

    if not config.enabled:
        logger.info("scheduler.disabled")
        return None

    scheduler = AsyncIOScheduler(timezone="UTC")
    trigger = CronTrigger.from_crontab(config.cron, timezone="UTC")
    scheduler.add_job(job, trigger=trigger, id="rescan-bookings", max_instances=1, coalesce=True)
    logger.info("scheduler.configured", cron=config.cron)
    return scheduler
