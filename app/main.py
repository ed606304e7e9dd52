from __future__ import annotations

"""FastAPI app entry: webhook, healthz, metrics."""

import uuid
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse

from app.bot.loader import setup_bot, shutdown_bot
from app.bot.services.logging import configure_logging
from app.bot.services.metrics import metrics
from app.bot.webhook import router as webhook_router
from app.config.settings import get_settings


configure_logging(get_settings().log_level)
logger = structlog.get_logger()
logger.info("startup", upstream=get_settings().upstream_base_url, credentials=len(get_settings().api_keys))


@asynccontextmanager
async def lifespan(app: FastAPI):
    await setup_bot(app)
    yield
    await shutdown_bot(app)


app = FastAPI(lifespan=lifespan)
app.include_router(webhook_router)


@app.middleware("http")
async def add_trace_id(request: Request, call_next):
    trace_id = request.headers.get("X-Trace-Id") or uuid.uuid4().hex
    structlog.contextvars.bind_contextvars(trace_id=trace_id)
    try:
        response = await call_next(request)
    finally:
        structlog.contextvars.clear_contextvars()
    return response


@app.get("/healthz", response_class=PlainTextResponse)
async def healthz() -> str:
    return "ok"


@app.get("/metrics", response_class=PlainTextResponse)
async def metrics_endpoint() -> str:
    return metrics.to_prometheus()


if __name__ == "__main__":  # pragma: no cover - local run helper
    import uvicorn

    settings = get_settings()
    uvicorn.run("app.main:app", host=settings.app_host, port=settings.app_port)
