from __future__ import annotations

"""Speech-to-text client for an OpenAI-compatible API (Groq by default).

One call to `SpeechClient.run` is one attempt under one credential. The
result is always an outcome value; rate limits and upstream failures are
classified, never raised:

  - HTTP 429 or an error body with code "rate_limit_exceeded" -> RateLimited
  - network failures and timeouts                             -> TransientError
  - a success status with an unparseable body                 -> TransientError
  - any other error status                                    -> FatalError
  - a well-formed body                                        -> Success
"""

import math
from contextlib import asynccontextmanager
from dataclasses import dataclass
from time import perf_counter
from typing import AsyncIterator, Optional, Union

import httpx
from pydantic import ValidationError

from app.bot.schemas.upstream import ApiError, ChatMessage, ChatRequest, ChatResponse, WhisperResponse
from app.bot.services.logging import get_logger
from app.bot.services.metrics import metrics


NO_TEXT = "<no text>"


@dataclass(frozen=True)
class Success:
    text: str
    # English translation produced on the way to a summary, if any
    source_text: Optional[str] = None


@dataclass(frozen=True)
class RateLimited:
    retry_after: Optional[float] = None


@dataclass(frozen=True)
class TransientError:
    reason: str


@dataclass(frozen=True)
class FatalError:
    reason: str


Outcome = Union[Success, RateLimited, TransientError, FatalError]


@dataclass(frozen=True)
class RewriteStyle:
    prompt: str
    temperature: float


REWRITE_STYLES: dict[str, RewriteStyle] = {
    "summarize": RewriteStyle(
        prompt=(
            "You are an AI that explains transcriptions of voice messages. Don't speak as the user, "
            "instead describe what the user is saying. Always provide the summary in English, ensuring "
            "it is concise yet comprehensive. If the content is unclear, nonsensical, or you're unsure "
            "about the message's meaning, respond only with three question marks (???). Do not include "
            "any additional text, explanations, or formatting. Output strictly the summary or ???."
        ),
        temperature=0.4,
    ),
    "stylize:caveman": RewriteStyle(
        prompt=(
            "You are an AI that explains transcriptions of voice messages like a caveman. Don't speak "
            "as the user, instead describe what the user is saying in caveman language. Use all caps, "
            "no verbs. If the content is unclear, nonsensical, or you're unsure about the message's "
            "meaning, respond only with three question marks (???). Do not include any additional text, "
            "explanations, or formatting. Output strictly the summary or ???."
        ),
        temperature=0.7,
    ),
}

AUDIO_ENDPOINTS = {
    "transcribe": "/audio/transcriptions",
    "translate": "/audio/translations",
}


@dataclass(frozen=True)
class SpeechRequest:
    """What to compute for one media item.

    `kind` is the cache kind: transcribe, translate, summarize or
    stylize:<variant>. Rewrite kinds use `source_text` when given and
    otherwise translate `audio` first.
    """

    kind: str
    audio: Optional[bytes] = None
    mime_type: str = "application/octet-stream"
    filename: str = "audio"
    source_text: Optional[str] = None

    @property
    def is_rewrite(self) -> bool:
        return self.kind not in AUDIO_ENDPOINTS


# Longer hints are treated as "out for this invocation"
MAX_RETRY_AFTER_SECONDS = 24 * 60 * 60.0


def _retry_after(headers: httpx.Headers) -> Optional[float]:
    raw = headers.get("retry-after")
    if raw is None:
        return None
    try:
        value = float(raw)
    except ValueError:
        return None
    if not math.isfinite(value):
        return None
    return min(max(0.0, value), MAX_RETRY_AFTER_SECONDS)


def classify_error(resp: httpx.Response) -> Optional[Outcome]:
    """Return the failure outcome for a non-success response, None on success."""

    if resp.is_success:
        return None
    retry_after = _retry_after(resp.headers)
    if resp.status_code == 429:
        return RateLimited(retry_after=retry_after)
    try:
        body = ApiError.model_validate_json(resp.content)
    except ValidationError:
        return FatalError(f"HTTP {resp.status_code}")
    if body.error.code == "rate_limit_exceeded":
        return RateLimited(retry_after=retry_after)
    return FatalError(f"HTTP {resp.status_code}: {body.error.message or 'unknown error'}")


class SpeechClient:
    def __init__(
        self,
        *,
        base_url: str,
        transcription_model: str,
        chat_model: str,
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._transcription_model = transcription_model
        self._chat_model = chat_model
        self._timeout = timeout
        self._transport = transport

    @asynccontextmanager
    async def _client(self) -> AsyncIterator[httpx.AsyncClient]:
        async with httpx.AsyncClient(
            base_url=self._base_url,
            timeout=httpx.Timeout(self._timeout),
            transport=self._transport,
        ) as client:
            yield client

    async def run(self, api_key: str, request: SpeechRequest) -> Outcome:
        """Perform one attempt for request under api_key."""

        start = perf_counter()
        try:
            async with self._client() as client:
                if not request.is_rewrite:
                    return await self._audio(client, api_key, request.kind, request)

                produced: Optional[str] = None
                source = request.source_text
                if source is None:
                    step = await self._audio(client, api_key, "translate", request)
                    if not isinstance(step, Success):
                        return step
                    source = produced = step.text
                if source == NO_TEXT:
                    # Silent audio: nothing to summarize
                    return Success(NO_TEXT, source_text=produced)
                outcome = await self._rewrite(client, api_key, request.kind, source)
                if isinstance(outcome, Success) and produced is not None:
                    return Success(outcome.text, source_text=produced)
                return outcome
        except httpx.TimeoutException as e:
            return TransientError(f"timeout: {type(e).__name__}")
        except httpx.RequestError as e:
            return TransientError(f"network: {type(e).__name__}")
        finally:
            metrics.observe("upstream_request_seconds", perf_counter() - start, labels={"kind": request.kind})

    @staticmethod
    def _headers(api_key: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {api_key}", "Accept": "application/json"}

    async def _audio(self, client: httpx.AsyncClient, api_key: str, kind: str, request: SpeechRequest) -> Outcome:
        if request.audio is None:
            return FatalError("no audio supplied")
        resp = await client.post(
            AUDIO_ENDPOINTS[kind],
            headers=self._headers(api_key),
            data={"model": self._transcription_model, "response_format": "verbose_json", "temperature": "0"},
            files={"file": (request.filename, request.audio, request.mime_type)},
        )
        failure = classify_error(resp)
        if failure is not None:
            return failure
        try:
            body = WhisperResponse.model_validate_json(resp.content)
        except ValidationError:
            get_logger().warning("upstream_bad_body", endpoint=kind, status=resp.status_code, preview=resp.text[:200])
            return TransientError("malformed transcription response")
        return Success(body.spoken_text() or NO_TEXT)

    async def _rewrite(self, client: httpx.AsyncClient, api_key: str, kind: str, text: str) -> Outcome:
        style = REWRITE_STYLES.get(kind)
        if style is None:
            return FatalError(f"unknown rewrite kind {kind!r}")
        payload = ChatRequest(
            model=self._chat_model,
            messages=[
                ChatMessage(role="system", content=style.prompt),
                ChatMessage(role="user", content=text),
            ],
            temperature=style.temperature,
        )
        resp = await client.post("/chat/completions", headers=self._headers(api_key), json=payload.model_dump())
        failure = classify_error(resp)
        if failure is not None:
            return failure
        try:
            body = ChatResponse.model_validate_json(resp.content)
        except ValidationError:
            get_logger().warning("upstream_bad_body", endpoint=kind, status=resp.status_code, preview=resp.text[:200])
            return TransientError("malformed chat response")
        return Success(body.choices[0].message.content.strip() or NO_TEXT)
