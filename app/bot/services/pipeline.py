from __future__ import annotations

"""Request pipeline: one admitted webhook event in, at most one visible reaction out.

Stages: resolve -> claim update -> limits -> download -> cache check ->
failover transcription -> reply and cache write. Every branch ends in a
PipelineOutcome; nothing here decides the HTTP status, which is always 200.
"""

from dataclasses import dataclass
from enum import Enum
from time import monotonic
from typing import Callable, Optional

from app.bot.exceptions import MediaUnavailable
from app.bot.schemas.events import InboundEvent, MediaReference
from app.bot.services.cache import CacheKey, TranscriptCache, UpdateLedger
from app.bot.services.commands import Intent, Resolution, help_text, resolve
from app.bot.services.delivery import Messenger
from app.bot.services.failover import Exhausted, FailoverOrchestrator
from app.bot.services.logging import get_logger
from app.bot.services.media import MediaBlob, MediaFetcher
from app.bot.services.metrics import metrics
from app.bot.services.stt import NO_TEXT, SpeechRequest


WELCOME_TEXT = (
    "Welcome! Send a voice message or video note to transcribe it. "
    "You can also use /help to see all available commands."
)
DOWNLOAD_FAILED_TEXT = "Could not download the file."
NO_TEXT_FOUND_TEXT = "No text found in audio"
FAILURE_TEXT = "Error: could not process the audio right now. Please try again later."

RESULT_LABELS = {
    Intent.TRANSCRIBE: "transcript",
    Intent.TRANSLATE: "translation",
    Intent.SUMMARIZE: "summary",
    Intent.STYLIZE: "summary",
}


def privacy_text(retention_days: int) -> str:
    return (
        "Privacy Policy:\n"
        "- The bot caches: audio fingerprint → transcription/translation/summary\n"
        "- Nothing else is stored, not even in logs\n"
        f"- Cache entries expire after {retention_days} days\n"
        "- Audio is processed by Whisper (GroqCloud)\n"
        "- No guarantees about model accuracy or reliability"
    )



def _duration_label(seconds: int) -> str:
    if seconds >= 60 and seconds % 60 == 0:
        return f"{seconds // 60} minutes"
    return f"{seconds} seconds"

class PipelineOutcome(str, Enum):
    SKIPPED = "skipped"
    DUPLICATE = "duplicate"
    START = "start"
    HELP = "help"
    PRIVACY = "privacy"
    USAGE = "usage"
    TOO_LONG = "too_long"
    TOO_LARGE = "too_large"
    DOWNLOAD_FAILED = "download_failed"
    CACHE_HIT = "cache_hit"
    TRANSCRIBED = "transcribed"
    NO_TEXT = "no_text"
    RATE_LIMITED = "rate_limited"
    FAILED = "failed"


@dataclass(frozen=True)
class PipelineLimits:
    max_duration_seconds: int = 30 * 60
    max_file_size_bytes: int = 20 * 1024 * 1024
    invocation_budget_seconds: float = 55.0
    retention_days: int = 7
    rate_limit_reaction: str = "🥱"


class RequestPipeline:
    def __init__(
        self,
        *,
        messenger: Messenger,
        fetcher: MediaFetcher,
        cache: TranscriptCache,
        ledger: UpdateLedger,
        orchestrator: FailoverOrchestrator,
        limits: PipelineLimits = PipelineLimits(),
        bot_username: Optional[str] = None,
        clock: Callable[[], float] = monotonic,
    ) -> None:
        self._messenger = messenger
        self._fetcher = fetcher
        self._cache = cache
        self._ledger = ledger
        self._orchestrator = orchestrator
        self._limits = limits
        self._clock = clock
        self.bot_username = bot_username

    async def handle(self, event: InboundEvent) -> PipelineOutcome:
        deadline = self._clock() + self._limits.invocation_budget_seconds
        outcome = await self._handle(event, deadline)
        metrics.inc("pipeline_outcomes_total", labels={"outcome": outcome.value})
        get_logger(update_id=event.update_id, chat_id=event.chat_id).info("pipeline_done", outcome=outcome.value)
        return outcome

    async def _handle(self, event: InboundEvent, deadline: float) -> PipelineOutcome:
        resolution = resolve(event, self.bot_username)
        if resolution.intent is Intent.NONE:
            return PipelineOutcome.SKIPPED
        if not await self._ledger.claim(event.update_id):
            get_logger().info("update_already_handled", update_id=event.update_id)
            return PipelineOutcome.DUPLICATE

        if resolution.intent is Intent.START:
            await self._messenger.reply_text(event.chat_id, event.message_id, WELCOME_TEXT)
            return PipelineOutcome.START
        if resolution.intent is Intent.HELP:
            await self._messenger.reply_text(event.chat_id, event.message_id, help_text())
            return PipelineOutcome.HELP
        if resolution.intent is Intent.PRIVACY:
            await self._messenger.reply_text(event.chat_id, event.message_id, privacy_text(self._limits.retention_days))
            return PipelineOutcome.PRIVACY

        media = resolution.media
        if media is None:
            await self._messenger.reply_text(event.chat_id, event.message_id, resolution.usage or help_text())
            return PipelineOutcome.USAGE

        notice = self._limit_notice(media)
        if notice is not None:
            outcome, text = notice
            await self._messenger.reply_text(event.chat_id, event.message_id, text)
            return outcome

        try:
            blob = await self._fetcher.fetch(media)
        except MediaUnavailable as e:
            get_logger().warning("media_unavailable", file_id=e.file_id, reason=e.reason)
            await self._messenger.reply_text(event.chat_id, event.message_id, DOWNLOAD_FAILED_TEXT)
            return PipelineOutcome.DOWNLOAD_FAILED

        return await self._transcribe(event, resolution, blob, deadline)

    def _limit_notice(self, media: MediaReference) -> Optional[tuple[PipelineOutcome, str]]:
        limits = self._limits
        if media.duration is not None and media.duration > limits.max_duration_seconds:
            get_logger().warning("media_too_long", duration=media.duration, limit=limits.max_duration_seconds)
            return PipelineOutcome.TOO_LONG, f"Duration is above {_duration_label(limits.max_duration_seconds)}"
        if media.file_size is not None and media.file_size > limits.max_file_size_bytes:
            get_logger().warning("media_too_large", size=media.file_size, limit=limits.max_file_size_bytes)
            return (
                PipelineOutcome.TOO_LARGE,
                f"File can't be larger than {limits.max_file_size_bytes // (1024 * 1024)}MB "
                f"(is {media.file_size // (1024 * 1024)}MB)",
            )
        return None

    async def _transcribe(
        self, event: InboundEvent, resolution: Resolution, blob: MediaBlob, deadline: float
    ) -> PipelineOutcome:
        label = RESULT_LABELS[resolution.intent]
        italic = label == "summary"
        key = CacheKey(blob.sha256, resolution.cache_kind)

        cached = await self._cache.get(key)
        if cached is not None:
            await self._messenger.reply_result(event.chat_id, event.message_id, cached, label=label, italic=italic)
            return PipelineOutcome.CACHE_HIT

        translation_key = CacheKey(blob.sha256, Intent.TRANSLATE.value)
        source_text = None
        if italic:
            source_text = await self._cache.get(translation_key)
            if source_text == NO_TEXT:
                await self._messenger.reply_text(event.chat_id, event.message_id, NO_TEXT_FOUND_TEXT)
                return PipelineOutcome.NO_TEXT

        request = SpeechRequest(
            kind=key.kind,
            audio=blob.data,
            mime_type=blob.mime_type,
            filename=blob.filename,
            source_text=source_text,
        )
        await self._messenger.typing(event.chat_id)
        result = await self._orchestrator.run(request, deadline=deadline)

        if isinstance(result, Exhausted):
            if result.cause == "rate_limited":
                await self._messenger.react(event.chat_id, event.message_id, self._limits.rate_limit_reaction)
                return PipelineOutcome.RATE_LIMITED
            await self._messenger.reply_text(event.chat_id, event.message_id, FAILURE_TEXT)
            return PipelineOutcome.FAILED

        if italic and result.text == NO_TEXT:
            # Nothing was said; keep the translation, skip the summary entry
            await self._messenger.reply_text(event.chat_id, event.message_id, NO_TEXT_FOUND_TEXT)
            if result.source_text is not None:
                await self._cache.put(translation_key, result.source_text)
            return PipelineOutcome.NO_TEXT

        await self._messenger.reply_result(event.chat_id, event.message_id, result.text, label=label, italic=italic)
        await self._cache.put(key, result.text)
        if result.source_text is not None:
            await self._cache.put(translation_key, result.source_text)
        return PipelineOutcome.TRANSCRIBED
