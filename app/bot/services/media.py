from __future__ import annotations

"""Download Telegram media into memory and fingerprint it."""

import asyncio
import hashlib
import io
import mimetypes
from dataclasses import dataclass
from functools import cached_property

import aiohttp
from aiogram import Bot
from aiogram.exceptions import TelegramAPIError

from app.bot.exceptions import MediaUnavailable
from app.bot.schemas.events import MediaReference
from app.bot.services.logging import get_logger


# Telegram stores voice notes as .oga; the speech API only sniffs well-known suffixes
_SUFFIX_FIXES = {".oga": ".ogg", ".opus": ".ogg"}


@dataclass(frozen=True)
class MediaBlob:
    data: bytes
    mime_type: str
    filename: str

    @cached_property
    def sha256(self) -> str:
        return hashlib.sha256(self.data).hexdigest()


def upload_filename(file_path: str | None, media: MediaReference) -> str:
    name = file_path.rsplit("/", 1)[-1] if file_path else f"{media.kind}_{media.file_unique_id}"
    stem, dot, suffix = name.rpartition(".")
    if not dot:
        guessed = mimetypes.guess_extension(media.mime_type or "") or ".ogg"
        return name + _SUFFIX_FIXES.get(guessed, guessed)
    return stem + _SUFFIX_FIXES.get("." + suffix.lower(), "." + suffix.lower())


class MediaFetcher:
    def __init__(self, bot: Bot, *, max_file_size_bytes: int) -> None:
        self._bot = bot
        self._max_file_size_bytes = max_file_size_bytes

    async def fetch(self, media: MediaReference) -> MediaBlob:
        """Download media; raise MediaUnavailable on any failure."""

        try:
            file = await self._bot.get_file(media.file_id)
        except TelegramAPIError as e:
            raise MediaUnavailable(media.file_id, "file lookup failed", e) from e
        if file.file_size and file.file_size > self._max_file_size_bytes:
            raise MediaUnavailable(media.file_id, f"file is {file.file_size} bytes")
        if not file.file_path:
            raise MediaUnavailable(media.file_id, "no file path returned")

        buf = io.BytesIO()
        try:
            await self._bot.download_file(file_path=file.file_path, destination=buf)
        except (TelegramAPIError, aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise MediaUnavailable(media.file_id, "download failed", e) from e

        mime_type = media.mime_type or mimetypes.guess_type(file.file_path)[0] or "application/octet-stream"
        blob = MediaBlob(data=buf.getvalue(), mime_type=mime_type, filename=upload_filename(file.file_path, media))
        get_logger().info("media_downloaded", kind=media.kind, size=len(blob.data), mime_type=mime_type)
        return blob
