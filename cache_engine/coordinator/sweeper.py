"""
Market Mage — Expired-Row Sweeper
──────────────────────────────────
Periodic job that deletes remote rows past their expires_at.

Readers already ignore expired rows, so the sweep only reclaims space.
It is safe to run beside reads and writes, and from several processes.
"""

import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from cache_engine.cache.remote import RemoteSharedCache

log = logging.getLogger("mc.sweeper")

SWEEP_JOB_ID = "sweep:remote"


async def sweep_once(remote: RemoteSharedCache) -> int:
    removed = await remote.sweep_expired()
    log.info(f"Sweep complete — {removed} expired rows removed")
    return removed


def schedule_sweep(
    scheduler: AsyncIOScheduler,
    remote: RemoteSharedCache,
    interval_minutes: int,
) -> Optional[str]:
    """Register the sweep job. interval_minutes <= 0 disables it."""
    if interval_minutes <= 0:
        log.info("Expired-row sweep disabled")
        return None
    scheduler.add_job(
        sweep_once,
        IntervalTrigger(minutes=interval_minutes),
        args=[remote],
        id=SWEEP_JOB_ID,
        name=f"Remote cache sweep every {interval_minutes}m",
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )
    log.info(f"Expired-row sweep every {interval_minutes}m")
    return SWEEP_JOB_ID
