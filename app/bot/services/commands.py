from __future__ import annotations

"""Command resolution: map an inbound message to an intent and target media.

A command is recognised only when the text starts with "/" at offset 0.
The command word is matched case-insensitively and may carry an
"@botname" suffix; a suffix naming another bot means the command is not
ours.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from app.bot.schemas.events import InboundEvent, MediaReference


class Intent(str, Enum):
    TRANSCRIBE = "transcribe"
    TRANSLATE = "translate"
    SUMMARIZE = "summarize"
    STYLIZE = "stylize"
    START = "start"
    HELP = "help"
    PRIVACY = "privacy"
    NONE = "none"

    @property
    def needs_media(self) -> bool:
        return self in _MEDIA_INTENTS


_MEDIA_INTENTS = {Intent.TRANSCRIBE, Intent.TRANSLATE, Intent.SUMMARIZE, Intent.STYLIZE}


@dataclass(frozen=True)
class CommandSpec:
    intent: Intent
    description: str
    variant: Optional[str] = None
    usage: Optional[str] = None


COMMANDS: dict[str, CommandSpec] = {
    "help": CommandSpec(Intent.HELP, "display this text"),
    "start": CommandSpec(Intent.START, "welcome message"),
    "transcribe": CommandSpec(
        Intent.TRANSCRIBE,
        "transcribe the replied audio",
        usage="Reply to an audio message or video note to transcribe it.",
    ),
    "translate": CommandSpec(
        Intent.TRANSLATE,
        "transcribe & translate the replied audio to English",
        usage="Reply to an audio message or video note to translate it.",
    ),
    "summarize": CommandSpec(
        Intent.SUMMARIZE,
        "summarize the replied audio message",
        usage="Reply to an audio message or video note to summarize it.",
    ),
    "caveman": CommandSpec(
        Intent.STYLIZE,
        "summarize the replied audio message like a caveman",
        variant="caveman",
        usage="Reply to an audio message or video note to summarize it like a caveman.",
    ),
    "privacy": CommandSpec(Intent.PRIVACY, "show privacy policy"),
}

ALIASES: dict[str, str] = {"english": "translate", "en": "translate"}


@dataclass(frozen=True)
class Resolution:
    intent: Intent
    media: Optional[MediaReference] = None
    variant: Optional[str] = None
    command: Optional[str] = None

    @property
    def cache_kind(self) -> str:
        if self.intent is Intent.STYLIZE and self.variant:
            return f"stylize:{self.variant}"
        return self.intent.value

    @property
    def usage(self) -> Optional[str]:
        if self.command is None:
            return None
        return COMMANDS[self.command].usage


def parse_command(text: Optional[str], bot_username: Optional[str] = None) -> Optional[str]:
    """Return the canonical command name at the start of text, or None."""

    if not text or not text.startswith("/"):
        return None
    token = text.split(maxsplit=1)[0][1:]
    name, _, addressee = token.partition("@")
    if addressee and bot_username and addressee.lower() != bot_username.lower():
        return None
    name = name.lower()
    name = ALIASES.get(name, name)
    return name if name in COMMANDS else None


def resolve(event: InboundEvent, bot_username: Optional[str] = None) -> Resolution:
    """Resolve the intent of an event and the media it targets."""

    command = parse_command(event.text, bot_username)
    if command is None:
        if event.media is not None and event.media.is_auto_transcribed:
            return Resolution(Intent.TRANSCRIBE, media=event.media)
        return Resolution(Intent.NONE)

    spec = COMMANDS[command]
    if not spec.intent.needs_media:
        return Resolution(spec.intent, command=command)
    # Media on the command message itself wins over the replied-to message
    target = event.media or event.reply_media
    return Resolution(spec.intent, media=target, variant=spec.variant, command=command)


def help_text() -> str:
    lines = [f"/{name} - {spec.description}" for name, spec in COMMANDS.items()]
    aliases = ", ".join(f"/{alias}" for alias in ALIASES)
    lines.append(f"Aliases for /translate: {aliases}")
    return "\n".join(lines)
