from __future__ import annotations

"""Outbound Telegram calls: replies, result documents, reactions, typing.

Delivery failures are logged and reported as False; nothing is retried.
"""

import html
from typing import Awaitable, Callable

from aiogram import Bot
from aiogram.enums import ChatAction
from aiogram.exceptions import TelegramAPIError
from aiogram.types import BufferedInputFile, ReactionTypeEmoji, ReplyParameters

from app.bot.exceptions import DeliveryFailure
from app.bot.services.logging import get_logger
from app.bot.services.metrics import metrics


MESSAGE_LIMIT = 4096


def render_result(text: str, *, italic: bool = False) -> str:
    body = html.escape(text)
    return f"<i>{body}</i>" if italic else body


class Messenger:
    def __init__(self, bot: Bot) -> None:
        self._bot = bot

    async def _call(self, method: str, chat_id: int, send: Callable[[], Awaitable[object]]) -> None:
        try:
            await send()
        except TelegramAPIError as e:
            raise DeliveryFailure(method, chat_id, e) from e

    async def _deliver(self, method: str, chat_id: int, send: Callable[[], Awaitable[object]]) -> bool:
        try:
            await self._call(method, chat_id, send)
        except DeliveryFailure as e:
            get_logger().warning("delivery_failed", method=e.method, chat_id=e.chat_id, error=repr(e.cause))
            metrics.inc("delivery_failures_total", labels={"method": method})
            return False
        return True

    @staticmethod
    def _quote(message_id: int) -> ReplyParameters:
        return ReplyParameters(message_id=message_id, allow_sending_without_reply=True)

    async def reply_text(self, chat_id: int, message_id: int, text: str) -> bool:
        """Send a plain notice quoting message_id."""

        return await self._deliver(
            "send_message",
            chat_id,
            lambda: self._bot.send_message(chat_id, html.escape(text), reply_parameters=self._quote(message_id)),
        )

    async def reply_result(self, chat_id: int, message_id: int, text: str, *, label: str, italic: bool = False) -> bool:
        """Send a transcription result; oversized results go out as a .txt document."""

        body = render_result(text, italic=italic)
        if len(body) <= MESSAGE_LIMIT:
            return await self._deliver(
                "send_message",
                chat_id,
                lambda: self._bot.send_message(chat_id, body, reply_parameters=self._quote(message_id)),
            )
        document = BufferedInputFile(text.encode("utf-8"), filename=f"{label}.txt")
        return await self._deliver(
            "send_document",
            chat_id,
            lambda: self._bot.send_document(chat_id, document, reply_parameters=self._quote(message_id)),
        )

    async def react(self, chat_id: int, message_id: int, emoji: str) -> bool:
        return await self._deliver(
            "set_message_reaction",
            chat_id,
            lambda: self._bot.set_message_reaction(chat_id, message_id, reaction=[ReactionTypeEmoji(emoji=emoji)]),
        )

    async def typing(self, chat_id: int) -> bool:
        return await self._deliver(
            "send_chat_action",
            chat_id,
            lambda: self._bot.send_chat_action(chat_id, action=ChatAction.TYPING),
        )
