from __future__ import annotations

"""Initialize aiogram bot, store, speech client and the request pipeline."""

from datetime import timedelta

from aiogram import Bot
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode
from aiogram.exceptions import TelegramAPIError
from aiogram.types import BotCommand
from fastapi import FastAPI

from app.bot.services.cache import TranscriptCache, UpdateLedger
from app.bot.services.commands import COMMANDS
from app.bot.services.delivery import Messenger
from app.bot.services.failover import FailoverOrchestrator
from app.bot.services.logging import get_logger
from app.bot.services.media import MediaFetcher
from app.bot.services.pipeline import PipelineLimits, RequestPipeline
from app.bot.services.stt import SpeechClient
from app.config.settings import Settings, get_settings
from app.db.base import create_engine, make_session_scope
from app.db.reaper import start_reaper
from app.db.store import LedgerStore, TranscriptStore


logger = get_logger()


async def _register_commands(bot: Bot) -> str | None:
    """Publish the command menu and return the bot username; failures only warn."""

    try:
        await bot.set_my_commands([BotCommand(command=name, description=spec.description) for name, spec in COMMANDS.items()])
    except TelegramAPIError as e:
        logger.warning("set_commands_failed", error=repr(e))
    try:
        me = await bot.get_me()
    except TelegramAPIError as e:
        logger.warning("get_me_failed", error=repr(e))
        return None
    return me.username


def build_pipeline(bot: Bot, settings: Settings, transcripts: TranscriptStore, ledger: LedgerStore) -> RequestPipeline:
    speech = SpeechClient(
        base_url=settings.upstream_base_url,
        transcription_model=settings.transcription_model,
        chat_model=settings.chat_model,
        timeout=settings.upstream_timeout_seconds,
    )
    return RequestPipeline(
        messenger=Messenger(bot),
        fetcher=MediaFetcher(bot, max_file_size_bytes=settings.limits.max_file_size_bytes),
        cache=TranscriptCache(transcripts, retention=timedelta(days=settings.cache.retention_days)),
        ledger=UpdateLedger(ledger),
        orchestrator=FailoverOrchestrator(speech, settings.api_keys),
        limits=PipelineLimits(
            max_duration_seconds=settings.limits.max_duration_seconds,
            max_file_size_bytes=settings.limits.max_file_size_bytes,
            invocation_budget_seconds=settings.limits.invocation_budget_seconds,
            retention_days=settings.cache.retention_days,
            rate_limit_reaction=settings.rate_limit_reaction,
        ),
    )


async def setup_bot(app: FastAPI) -> None:
    settings = get_settings()
    bot = Bot(token=settings.telegram_bot_token, default=DefaultBotProperties(parse_mode=ParseMode.HTML))
    engine = create_engine(settings.db_dsn)
    session_scope = make_session_scope(engine)
    transcripts = TranscriptStore(session_scope)
    ledger = LedgerStore(session_scope)

    pipeline = build_pipeline(bot, settings, transcripts, ledger)
    pipeline.bot_username = await _register_commands(bot)

    scheduler = start_reaper(transcripts, ledger, settings.cache) if settings.cache.reaper_enabled else None

    # attach to app state for reuse
    app.state.bot = bot
    app.state.engine = engine
    app.state.pipeline = pipeline
    app.state.scheduler = scheduler

    logger.info(
        "bot_setup_complete",
        level=settings.log_level,
        credentials=len(settings.api_keys),
        bot_username=pipeline.bot_username,
        reaper=scheduler is not None,
    )


async def shutdown_bot(app: FastAPI) -> None:
    scheduler = getattr(app.state, "scheduler", None)
    if scheduler is not None:
        scheduler.shutdown(wait=False)
    await app.state.bot.session.close()
    await app.state.engine.dispose()
