from __future__ import annotations

"""Credential pool for upstream API keys.

The pool lives for one pipeline invocation only. Rate-limit marks are
never persisted or shared, so every invocation starts with all keys usable.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterator, Optional

from app.utils.time import utcnow


@dataclass
class CredentialSlot:
    position: int  # 1-based, used in logs instead of the key itself
    api_key: str
    limited_until: Optional[datetime] = None

    def is_usable(self, now: datetime) -> bool:
        return self.limited_until is None or now >= self.limited_until


class CredentialPool:
    # Without a retry-after hint a limited key stays out for the rest of the invocation
    _DEFAULT_BACKOFF = timedelta(days=1)

    def __init__(self, api_keys: list[str]) -> None:
        if not api_keys:
            raise ValueError("credential pool needs at least one API key")
        self._slots = [CredentialSlot(position=i + 1, api_key=key) for i, key in enumerate(api_keys)]

    def __iter__(self) -> Iterator[CredentialSlot]:
        return iter(self._slots)

    def __len__(self) -> int:
        return len(self._slots)

    def mark_rate_limited(self, slot: CredentialSlot, retry_after: Optional[float] = None, *, now: datetime | None = None) -> None:
        now = now or utcnow()
        backoff = self._DEFAULT_BACKOFF
        if retry_after is not None and math.isfinite(retry_after):
            backoff = timedelta(seconds=min(max(0.0, retry_after), self._DEFAULT_BACKOFF.total_seconds()))
        slot.limited_until = now + backoff

    def usable(self, now: datetime | None = None) -> list[CredentialSlot]:
        now = now or utcnow()
        return [s for s in self._slots if s.is_usable(now)]
