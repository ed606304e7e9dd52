from __future__ import annotations

"""Exceptions raised inside the transcription pipeline.

Upstream rate limits and transient/fatal API errors are not exceptions;
they travel as outcome values (see app.bot.services.stt).
"""


class MediaUnavailable(Exception):
    """Raised when the media blob cannot be downloaded from Telegram."""

    def __init__(self, file_id: str, reason: str, cause: Exception | None = None):
        self.file_id = file_id
        self.reason = reason
        self.cause = cause
        super().__init__(f"Failed to download '{file_id}': {reason}")


class CacheUnavailable(Exception):
    """Raised when the backing store cannot serve a cache or ledger operation."""

    def __init__(self, operation: str, cause: Exception | None = None):
        self.operation = operation
        self.cause = cause
        super().__init__(f"Store operation '{operation}' failed")


class DeliveryFailure(Exception):
    """Raised when an outbound Telegram call fails."""

    def __init__(self, method: str, chat_id: int, cause: Exception | None = None):
        self.method = method
        self.chat_id = chat_id
        self.cause = cause
        super().__init__(f"Telegram call '{method}' to chat {chat_id} failed")
