from __future__ import annotations

"""Raw store operations for cached transcripts and processed updates.

Every backend failure is re-raised as CacheUnavailable; callers decide
how to degrade.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from app.bot.exceptions import CacheUnavailable
from app.db.base import SessionScope
from app.db.models import CachedTranscript, ProcessedUpdate


# asyncpg/aiosqlite connection failures surface as OSError before SQLAlchemy wraps them
_BACKEND_ERRORS = (SQLAlchemyError, OSError)


class TranscriptStore:
    def __init__(self, session_scope: SessionScope) -> None:
        self._session_scope = session_scope

    async def load(self, media_hash: str, kind: str) -> Optional[tuple[str, datetime]]:
        try:
            async with self._session_scope() as session:
                row = await session.get(CachedTranscript, (media_hash, kind))
                return (row.text, row.created_at) if row is not None else None
        except _BACKEND_ERRORS as e:
            raise CacheUnavailable("load", e) from e

    async def save(self, media_hash: str, kind: str, text: str, created_at: datetime) -> None:
        try:
            async with self._session_scope() as session:
                await session.merge(CachedTranscript(media_hash=media_hash, kind=kind, text=text, created_at=created_at))
        except _BACKEND_ERRORS as e:
            raise CacheUnavailable("save", e) from e

    async def delete_created_before(self, cutoff: datetime) -> int:
        try:
            async with self._session_scope() as session:
                result = await session.execute(delete(CachedTranscript).where(CachedTranscript.created_at < cutoff))
                return result.rowcount or 0
        except _BACKEND_ERRORS as e:
            raise CacheUnavailable("delete_transcripts", e) from e


class LedgerStore:
    def __init__(self, session_scope: SessionScope) -> None:
        self._session_scope = session_scope

    async def insert(self, update_id: int, created_at: datetime) -> bool:
        """Insert update_id; return False if it was already present."""

        try:
            async with self._session_scope() as session:
                session.add(ProcessedUpdate(update_id=update_id, created_at=created_at))
            return True
        except IntegrityError:
            return False
        except _BACKEND_ERRORS as e:
            raise CacheUnavailable("ledger_insert", e) from e

    async def delete_created_before(self, cutoff: datetime) -> int:
        try:
            async with self._session_scope() as session:
                result = await session.execute(delete(ProcessedUpdate).where(ProcessedUpdate.created_at < cutoff))
                return result.rowcount or 0
        except _BACKEND_ERRORS as e:
            raise CacheUnavailable("delete_updates", e) from e
