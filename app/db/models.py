from __future__ import annotations

"""SQLAlchemy ORM models for the transcript cache and update ledger."""

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class CachedTranscript(Base):
    __tablename__ = "transcript_cache"

    # sha256 hex digest of the media bytes
    media_hash: Mapped[str] = mapped_column(String(64), primary_key=True)
    # intent cache kind: transcribe / translate / summarize / stylize:<variant>
    kind: Mapped[str] = mapped_column(String(32), primary_key=True)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)


class ProcessedUpdate(Base):
    __tablename__ = "processed_updates"

    update_id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
