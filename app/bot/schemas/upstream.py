from __future__ import annotations

"""Pydantic models for the OpenAI-compatible speech and chat endpoints."""

from typing import Optional

from pydantic import BaseModel, Field


class WhisperSegment(BaseModel):
    text: str
    avg_logprob: float = 0.0
    no_speech_prob: float = 0.0

    model_config = {"extra": "ignore"}

    @property
    def is_silent(self) -> bool:
        return self.no_speech_prob > 0.6 and self.avg_logprob < -0.4


class WhisperResponse(BaseModel):
    text: str
    segments: Optional[list[WhisperSegment]] = None
    language: Optional[str] = None
    duration: Optional[float] = None

    model_config = {"extra": "ignore"}

    def spoken_text(self) -> str:
        """Join non-silent segments; fall back to `text` when segments are absent."""

        if self.segments is None:
            return self.text.strip()
        return "".join(s.text for s in self.segments if not s.is_silent).strip()


class ChatMessage(BaseModel):
    role: str
    content: str


class ChatRequest(BaseModel):
    model: str
    messages: list[ChatMessage]
    temperature: float
    max_tokens: int = 512


class ChatChoice(BaseModel):
    message: ChatMessage


class ChatResponse(BaseModel):
    choices: list[ChatChoice] = Field(min_length=1)


class ApiErrorBody(BaseModel):
    message: Optional[str] = None
    type: Optional[str] = None
    code: Optional[str | int] = None

    model_config = {"extra": "allow"}


class ApiError(BaseModel):
    error: ApiErrorBody
