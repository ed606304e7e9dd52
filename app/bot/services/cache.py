from __future__ import annotations

"""Transcript cache and update ledger with degrade-on-failure policy.

Reads treat missing and stale entries the same way, and a failing store
on read is just a miss. Writes that fail are logged and dropped: the user
already has their answer.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from app.bot.exceptions import CacheUnavailable
from app.bot.services.logging import get_logger
from app.bot.services.metrics import metrics
from app.db.store import LedgerStore, TranscriptStore
from app.utils.time import is_older_than, utcnow


@dataclass(frozen=True)
class CacheKey:
    media_hash: str
    kind: str


class TranscriptCache:
    def __init__(
        self,
        store: TranscriptStore,
        *,
        retention: timedelta = timedelta(days=7),
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._retention = retention
        self._clock = clock

    async def get(self, key: CacheKey) -> Optional[str]:
        logger = get_logger(media_hash=key.media_hash, kind=key.kind)
        try:
            found = await self._store.load(key.media_hash, key.kind)
        except CacheUnavailable as e:
            logger.warning("cache_unavailable", operation=e.operation, error=repr(e.cause))
            metrics.inc("cache_lookups_total", labels={"result": "unavailable"})
            return None

        if found is None:
            result = "miss"
        elif is_older_than(found[1], self._retention, self._clock()):
            result = "stale"
        else:
            result = "hit"
        metrics.inc("cache_lookups_total", labels={"result": result})
        logger.info(f"cache_{result}")
        return found[0] if result == "hit" else None

    async def put(self, key: CacheKey, text: str) -> None:
        try:
            await self._store.save(key.media_hash, key.kind, text, self._clock())
        except CacheUnavailable as e:
            get_logger().warning("cache_write_failed", kind=key.kind, error=repr(e.cause))
            return
        get_logger().info("cache_saved", media_hash=key.media_hash, kind=key.kind)


class UpdateLedger:
    """Remembers handled update_ids so a redelivered update is not answered twice."""

    def __init__(self, store: LedgerStore, *, clock: Callable[[], datetime] = utcnow) -> None:
        self._store = store
        self._clock = clock

    async def claim(self, update_id: int) -> bool:
        """Return True if the caller should handle update_id."""

        try:
            return await self._store.insert(update_id, self._clock())
        except CacheUnavailable as e:
            get_logger().warning("ledger_unavailable", update_id=update_id, error=repr(e.cause))
            return True
