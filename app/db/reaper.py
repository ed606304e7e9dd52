from __future__ import annotations

"""Out-of-band removal of expired cache entries and ledger rows.

Reads already ignore stale entries; this only keeps the tables small.
"""

from datetime import datetime, timedelta

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from app.bot.exceptions import CacheUnavailable
from app.bot.services.logging import get_logger
from app.config.settings import CacheSettings
from app.db.store import LedgerStore, TranscriptStore
from app.utils.time import utcnow


async def reap_pass(
    transcripts: TranscriptStore,
    ledger: LedgerStore,
    settings: CacheSettings,
    *,
    now: datetime | None = None,
) -> dict[str, int]:
    now = now or utcnow()
    stats = {"transcripts": 0, "updates": 0}
    try:
        stats["transcripts"] = await transcripts.delete_created_before(now - timedelta(days=settings.retention_days))
        stats["updates"] = await ledger.delete_created_before(now - timedelta(hours=settings.ledger_retention_hours))
    except CacheUnavailable as e:
        get_logger().warning("reap_failed", operation=e.operation, error=repr(e.cause))
        return stats
    get_logger().info("reap_done", **stats)
    return stats


def start_reaper(transcripts: TranscriptStore, ledger: LedgerStore, settings: CacheSettings) -> AsyncIOScheduler:
    """Start AsyncIO scheduler running the reap pass every reaper_interval_minutes."""

    scheduler = AsyncIOScheduler()

    async def job_wrapper() -> None:
        await reap_pass(transcripts, ledger, settings)

    scheduler.add_job(
        job_wrapper,
        "interval",
        minutes=settings.reaper_interval_minutes,
        id="cache_reaper",
        max_instances=1,
        coalesce=True,
    )
    scheduler.start()
    return scheduler
