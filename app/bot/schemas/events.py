from __future__ import annotations

"""Inbound event model: the parts of a Telegram update the pipeline reads."""

from typing import Literal, Optional

from aiogram.types import Message, Update
from pydantic import BaseModel


MediaKind = Literal["voice", "video_note", "audio", "video"]


class MediaReference(BaseModel):
    file_id: str
    file_unique_id: str
    kind: MediaKind
    duration: Optional[int] = None  # seconds, as declared by Telegram
    file_size: Optional[int] = None  # bytes, as declared by Telegram
    mime_type: Optional[str] = None

    @property
    def is_auto_transcribed(self) -> bool:
        """Voice messages and video notes are transcribed without a command."""

        return self.kind in ("voice", "video_note")


class InboundEvent(BaseModel):
    update_id: int
    chat_id: int
    message_id: int
    text: Optional[str] = None  # message text, or caption for media messages
    media: Optional[MediaReference] = None
    reply_media: Optional[MediaReference] = None

    @classmethod
    def from_update(cls, update: Update) -> Optional["InboundEvent"]:
        """Build an event from a new-message update; other update kinds yield None."""

        message = update.message
        if message is None:
            return None
        reply = message.reply_to_message
        return cls(
            update_id=update.update_id,
            chat_id=message.chat.id,
            message_id=message.message_id,
            text=message.text if message.text is not None else message.caption,
            media=media_from_message(message),
            reply_media=media_from_message(reply) if reply is not None else None,
        )


def media_from_message(message: Message) -> Optional[MediaReference]:
    if message.voice:
        v = message.voice
        return MediaReference(
            file_id=v.file_id,
            file_unique_id=v.file_unique_id,
            kind="voice",
            duration=v.duration,
            file_size=v.file_size,
            mime_type=v.mime_type,
        )
    if message.video_note:
        vn = message.video_note
        return MediaReference(
            file_id=vn.file_id,
            file_unique_id=vn.file_unique_id,
            kind="video_note",
            duration=vn.duration,
            file_size=vn.file_size,
            mime_type="video/mp4",
        )
    if message.video:
        vd = message.video
        return MediaReference(
            file_id=vd.file_id,
            file_unique_id=vd.file_unique_id,
            kind="video",
            duration=vd.duration,
            file_size=vd.file_size,
            mime_type=vd.mime_type,
        )
    if message.audio:
        a = message.audio
        return MediaReference(
            file_id=a.file_id,
            file_unique_id=a.file_unique_id,
            kind="audio",
            duration=a.duration,
            file_size=a.file_size,
            mime_type=a.mime_type,
        )
    return None
