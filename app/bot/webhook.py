from __future__ import annotations

"""Webhook endpoint for Telegram updates.

Always answers 200 so Telegram never re-delivers an update we have seen,
whatever happened while handling it.
"""

from aiogram.types import Update
from fastapi import APIRouter, Depends, Request
from pydantic import ValidationError

from app.bot.gatekeeper import admit
from app.bot.schemas.events import InboundEvent
from app.bot.services.logging import get_logger
from app.bot.services.metrics import metrics
from app.config.settings import Settings, get_settings


router = APIRouter()

_ACK = {"ok": True}


@router.post("/tg/webhook")
async def telegram_webhook(request: Request, settings: Settings = Depends(get_settings)) -> dict:
    logger = get_logger()
    if not admit(request.headers, settings.webhook_secret):
        logger.warning("webhook_rejected", client=request.client.host if request.client else None)
        metrics.inc("pipeline_outcomes_total", labels={"outcome": "rejected"})
        return _ACK

    try:
        body = await request.json()
        update = Update.model_validate(body)
    except (ValueError, ValidationError) as e:
        logger.warning("webhook_bad_payload", error=type(e).__name__)
        return _ACK

    event = InboundEvent.from_update(update)
    if event is None:
        logger.debug("webhook_non_message_update", update_id=update.update_id)
        return _ACK

    try:
        await request.app.state.pipeline.handle(event)
    except Exception:
        logger.exception("pipeline_crashed", update_id=event.update_id)
        metrics.inc("pipeline_outcomes_total", labels={"outcome": "crashed"})
    return _ACK
