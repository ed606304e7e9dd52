from __future__ import annotations

import hashlib
from datetime import datetime, timedelta, timezone

import pytest

from app.bot.exceptions import CacheUnavailable
from app.bot.services.cache import CacheKey, TranscriptCache, UpdateLedger
from app.bot.services.failover import FailoverOrchestrator
from app.bot.services.pipeline import (
    DOWNLOAD_FAILED_TEXT,
    NO_TEXT_FOUND_TEXT,
    FAILURE_TEXT,
    WELCOME_TEXT,
    PipelineLimits,
    PipelineOutcome,
    RequestPipeline,
)
from app.bot.services.stt import NO_TEXT, FatalError, RateLimited, Success, TransientError
from app.db.store import TranscriptStore
from tests.fakes import FakeCache, FakeFetcher, ScriptedRunner, make_event, voice


def _pipeline(messenger, fetcher, cache, ledger, runner, **limits) -> RequestPipeline:
    return RequestPipeline(
        messenger=messenger,
        fetcher=fetcher,
        cache=cache,
        ledger=ledger,
        orchestrator=FailoverOrchestrator(runner, list(runner.outcomes)),
        limits=PipelineLimits(**limits),
        bot_username="DuckBot",
    )


def fetcher_hash(fetcher: FakeFetcher) -> str:
    return hashlib.sha256(fetcher.data).hexdigest()


def _ok_runner(text: str = "hello there") -> ScriptedRunner:
    return ScriptedRunner({"key-a": Success(text)})


@pytest.mark.asyncio
async def test_plain_chat_message_is_skipped(messenger, fetcher, cache, ledger):
    runner = _ok_runner()
    pipeline = _pipeline(messenger, fetcher, cache, ledger, runner)

    outcome = await pipeline.handle(make_event(text="please /transcribe this", reply_media=voice()))

    assert outcome is PipelineOutcome.SKIPPED
    assert messenger.calls == []
    assert cache.gets == [] and runner.calls == []


@pytest.mark.asyncio
async def test_command_without_media_replies_with_usage(messenger, fetcher, cache, ledger):
    runner = _ok_runner()
    pipeline = _pipeline(messenger, fetcher, cache, ledger, runner)

    outcome = await pipeline.handle(make_event(text="/transcribe"))

    assert outcome is PipelineOutcome.USAGE
    assert messenger.visible == [
        ("reply_text", (100, 501, "Reply to an audio message or video note to transcribe it."))
    ]
    assert cache.gets == [] and cache.puts == []
    assert runner.calls == [] and fetcher.fetched == []


@pytest.mark.asyncio
async def test_too_long_media_short_circuits_before_cache(messenger, fetcher, cache, ledger):
    runner = _ok_runner()
    pipeline = _pipeline(messenger, fetcher, cache, ledger, runner, max_duration_seconds=60)

    outcome = await pipeline.handle(make_event(media=voice(duration=61)))

    assert outcome is PipelineOutcome.TOO_LONG
    assert messenger.visible == [("reply_text", (100, 501, "Duration is above 1 minutes"))]
    assert fetcher.fetched == [] and cache.gets == [] and runner.calls == []


@pytest.mark.asyncio
async def test_too_large_media_short_circuits(messenger, fetcher, cache, ledger):
    runner = _ok_runner()
    pipeline = _pipeline(messenger, fetcher, cache, ledger, runner, max_file_size_bytes=1024 * 1024)

    outcome = await pipeline.handle(make_event(media=voice(file_size=3 * 1024 * 1024)))

    assert outcome is PipelineOutcome.TOO_LARGE
    assert len(messenger.visible) == 1
    assert "1MB" in messenger.visible[0][1][2]
    assert fetcher.fetched == [] and runner.calls == []


@pytest.mark.asyncio
async def test_fresh_transcription_replies_and_caches(messenger, fetcher, cache, ledger):
    runner = _ok_runner("hello there")
    pipeline = _pipeline(messenger, fetcher, cache, ledger, runner)

    outcome = await pipeline.handle(make_event(media=voice()))

    assert outcome is PipelineOutcome.TRANSCRIBED
    assert messenger.visible == [("reply_result", (100, 501, "hello there", "transcript", False))]
    assert ("typing", (100,)) in messenger.calls
    assert len(cache.puts) == 1
    key, text = cache.puts[0]
    assert key.kind == "transcribe" and text == "hello there"
    assert len(key.media_hash) == 64


@pytest.mark.asyncio
async def test_second_request_for_same_media_hits_cache(messenger, fetcher, cache, ledger):
    runner = _ok_runner("hello there")
    pipeline = _pipeline(messenger, fetcher, cache, ledger, runner)

    await pipeline.handle(make_event(update_id=1, media=voice(unique="first-copy")))
    # A forwarded copy has a different Telegram id but identical bytes
    outcome = await pipeline.handle(make_event(update_id=2, text="/transcribe", reply_media=voice(unique="forwarded")))

    assert outcome is PipelineOutcome.CACHE_HIT
    assert runner.keys_called == ["key-a"]
    assert messenger.visible[-1] == ("reply_result", (100, 502, "hello there", "transcript", False))
    assert len(cache.puts) == 1


@pytest.mark.asyncio
async def test_same_media_under_other_intent_is_a_separate_entry(messenger, fetcher, cache, ledger):
    runner = _ok_runner("hola")
    pipeline = _pipeline(messenger, fetcher, cache, ledger, runner)

    await pipeline.handle(make_event(update_id=1, media=voice()))
    outcome = await pipeline.handle(make_event(update_id=2, text="/translate", reply_media=voice()))

    assert outcome is PipelineOutcome.TRANSCRIBED
    assert [k.kind for k, _ in cache.puts] == ["transcribe", "translate"]
    assert len(runner.calls) == 2


@pytest.mark.asyncio
async def test_stale_entry_is_refreshed(messenger, fetcher, ledger, session_scope):
    now = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)
    clock = {"now": now - timedelta(days=8)}
    cache = TranscriptCache(TranscriptStore(session_scope), clock=lambda: clock["now"])
    runner = ScriptedRunner({"key-a": Success("old text")})
    pipeline = _pipeline(messenger, fetcher, cache, ledger, runner)
    await pipeline.handle(make_event(update_id=1, media=voice()))

    clock["now"] = now
    runner.outcomes["key-a"] = Success("new text")
    outcome = await pipeline.handle(make_event(update_id=2, media=voice()))

    assert outcome is PipelineOutcome.TRANSCRIBED
    assert len(runner.calls) == 2
    key = CacheKey(fetcher_hash(fetcher), "transcribe")
    assert await cache.get(key) == "new text"


@pytest.mark.asyncio
async def test_all_rate_limited_reacts_instead_of_replying(messenger, fetcher, cache, ledger):
    runner = ScriptedRunner({"key-a": RateLimited(), "key-b": RateLimited(retry_after=3.0)})
    pipeline = _pipeline(messenger, fetcher, cache, ledger, runner, rate_limit_reaction="🥱")

    outcome = await pipeline.handle(make_event(media=voice()))

    assert outcome is PipelineOutcome.RATE_LIMITED
    assert messenger.visible == [("react", (100, 501, "🥱"))]
    assert cache.puts == []


@pytest.mark.asyncio
async def test_errors_produce_one_failure_notice(messenger, fetcher, cache, ledger):
    runner = ScriptedRunner({"key-a": RateLimited(), "key-b": TransientError("timeout"), "key-c": FatalError("HTTP 401")})
    pipeline = _pipeline(messenger, fetcher, cache, ledger, runner)

    outcome = await pipeline.handle(make_event(media=voice()))

    assert outcome is PipelineOutcome.FAILED
    assert messenger.visible == [("reply_text", (100, 501, FAILURE_TEXT))]
    assert runner.keys_called == ["key-a", "key-b", "key-c"]
    assert cache.puts == []


@pytest.mark.asyncio
async def test_redelivered_update_is_not_answered_twice(messenger, fetcher, cache, ledger):
    runner = _ok_runner()
    pipeline = _pipeline(messenger, fetcher, cache, ledger, runner)
    event = make_event(update_id=77, media=voice())

    first = await pipeline.handle(event)
    second = await pipeline.handle(event)

    assert first is PipelineOutcome.TRANSCRIBED
    assert second is PipelineOutcome.DUPLICATE
    assert len(messenger.visible) == 1
    assert len(cache.puts) == 1


@pytest.mark.asyncio
async def test_download_failure_sends_notice_without_cache(messenger, cache, ledger):
    fetcher = FakeFetcher(fail=True)
    runner = _ok_runner()
    pipeline = _pipeline(messenger, fetcher, cache, ledger, runner)

    outcome = await pipeline.handle(make_event(media=voice()))

    assert outcome is PipelineOutcome.DOWNLOAD_FAILED
    assert messenger.visible == [("reply_text", (100, 501, DOWNLOAD_FAILED_TEXT))]
    assert cache.gets == [] and runner.calls == []


@pytest.mark.asyncio
async def test_summary_translates_first_and_caches_both(messenger, fetcher, cache, ledger):
    runner = ScriptedRunner({"key-a": Success("They greet you.", source_text="Hello there")})
    pipeline = _pipeline(messenger, fetcher, cache, ledger, runner)

    outcome = await pipeline.handle(make_event(text="/summarize", reply_media=voice()))

    assert outcome is PipelineOutcome.TRANSCRIBED
    request = runner.calls[0][1]
    assert request.kind == "summarize" and request.source_text is None
    assert messenger.visible == [("reply_result", (100, 501, "They greet you.", "summary", True))]
    assert sorted(k.kind for k, _ in cache.puts) == ["summarize", "translate"]


@pytest.mark.asyncio
async def test_caveman_reuses_cached_translation(messenger, fetcher, cache, ledger):
    runner = ScriptedRunner({"key-a": Success("MAN SAY HELLO")})
    pipeline = _pipeline(messenger, fetcher, cache, ledger, runner)
    cache.entries[CacheKey(fetcher_hash(fetcher), "translate")] = "Hello there"

    outcome = await pipeline.handle(make_event(text="/caveman", reply_media=voice()))

    assert outcome is PipelineOutcome.TRANSCRIBED
    request = runner.calls[0][1]
    assert request.kind == "stylize:caveman"
    assert request.source_text == "Hello there"
    assert [k.kind for k, _ in cache.puts] == ["stylize:caveman"]


@pytest.mark.asyncio
async def test_start_and_help_reply_without_media_work(messenger, fetcher, cache, ledger):
    runner = _ok_runner()
    pipeline = _pipeline(messenger, fetcher, cache, ledger, runner)

    assert await pipeline.handle(make_event(update_id=1, text="/start")) is PipelineOutcome.START
    assert await pipeline.handle(make_event(update_id=2, text="/help@DuckBot")) is PipelineOutcome.HELP

    assert messenger.visible[0] == ("reply_text", (100, 501, WELCOME_TEXT))
    assert "/transcribe" in messenger.visible[1][1][2]
    assert fetcher.fetched == [] and runner.calls == []


@pytest.mark.asyncio
async def test_unavailable_cache_still_transcribes(messenger, fetcher, ledger):
    class BrokenStore:
        async def load(self, media_hash, kind):
            raise CacheUnavailable("load", ConnectionError("refused"))

        async def save(self, media_hash, kind, text, created_at):
            raise CacheUnavailable("save", ConnectionError("refused"))

    runner = _ok_runner("still works")
    pipeline = _pipeline(messenger, fetcher, TranscriptCache(BrokenStore()), ledger, runner)  # type: ignore[arg-type]

    outcome = await pipeline.handle(make_event(media=voice()))

    assert outcome is PipelineOutcome.TRANSCRIBED
    assert messenger.visible == [("reply_result", (100, 501, "still works", "transcript", False))]


@pytest.mark.asyncio
async def test_silent_audio_summary_reports_no_text(messenger, fetcher, cache, ledger):
    runner = ScriptedRunner({"key-a": Success(NO_TEXT, source_text=NO_TEXT)})
    pipeline = _pipeline(messenger, fetcher, cache, ledger, runner)

    outcome = await pipeline.handle(make_event(text="/summarize", reply_media=voice()))

    assert outcome is PipelineOutcome.NO_TEXT
    assert messenger.visible == [("reply_text", (100, 501, NO_TEXT_FOUND_TEXT))]
    assert [k.kind for k, _ in cache.puts] == ["translate"]


@pytest.mark.asyncio
async def test_cached_silent_translation_skips_upstream(messenger, fetcher, cache, ledger):
    runner = _ok_runner()
    pipeline = _pipeline(messenger, fetcher, cache, ledger, runner)
    cache.entries[CacheKey(fetcher_hash(fetcher), "translate")] = NO_TEXT

    outcome = await pipeline.handle(make_event(text="/caveman", reply_media=voice()))

    assert outcome is PipelineOutcome.NO_TEXT
    assert messenger.visible == [("reply_text", (100, 501, NO_TEXT_FOUND_TEXT))]
    assert runner.calls == [] and cache.puts == []


@pytest.mark.asyncio
@pytest.mark.parametrize("ceiling,notice", [(45, "45 seconds"), (90, "90 seconds"), (600, "10 minutes")])
async def test_duration_notice_wording(messenger, fetcher, cache, ledger, ceiling, notice):
    runner = _ok_runner()
    pipeline = _pipeline(messenger, fetcher, cache, ledger, runner, max_duration_seconds=ceiling)

    await pipeline.handle(make_event(media=voice(duration=ceiling + 1)))

    assert messenger.visible == [("reply_text", (100, 501, f"Duration is above {notice}"))]


@pytest.mark.asyncio
async def test_unavailable_ledger_still_transcribes(messenger, fetcher, cache):
    class BrokenLedgerStore:
        async def insert(self, update_id, created_at):
            raise CacheUnavailable("ledger_insert", ConnectionError("refused"))

    ledger = UpdateLedger(BrokenLedgerStore())  # type: ignore[arg-type]
    runner = _ok_runner("heard you")
    pipeline = _pipeline(messenger, fetcher, cache, ledger, runner)

    assert await ledger.claim(5) is True
    outcome = await pipeline.handle(make_event(update_id=5, media=voice()))

    assert outcome is PipelineOutcome.TRANSCRIBED
    assert messenger.visible == [("reply_result", (100, 505, "heard you", "transcript", False))]
