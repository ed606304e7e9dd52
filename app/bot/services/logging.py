from __future__ import annotations

"""Structured logging setup using structlog and orjson."""

import logging
import os
import sys
from typing import Any

import orjson
import structlog


def _orjson_dumps(obj: Any, default: Any | None = None, **_: Any) -> str:
    """Serializer compatible with structlog.JSONRenderer.

    structlog passes optional kwargs (e.g., default) to the serializer;
    only `default` is meaningful for orjson.
    """
    return orjson.dumps(
        obj,
        default=default,  # type: ignore[arg-type]
        option=orjson.OPT_SORT_KEYS | orjson.OPT_APPEND_NEWLINE,
    ).decode()


def _add_service(_: Any, __: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    event_dict.setdefault("service", "duck_transcriber")
    return event_dict


def configure_logging(level: str = "INFO") -> None:
    """Configure structlog with JSON rendering on stdout.

    LOG_LEVEL env var overrides provided level. Noisy third-party loggers
    (aiogram event dispatch, httpx request lines) are capped at WARNING.
    """
    env_level = os.getenv("LOG_LEVEL")
    if env_level:
        level = env_level
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    logging.basicConfig(level=numeric_level, handlers=[logging.StreamHandler(sys.stdout)], format="%(message)s")
    for noisy in ("httpx", "aiogram.event", "apscheduler.executors.default"):
        logging.getLogger(noisy).setLevel(max(numeric_level, logging.WARNING))

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            _add_service,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer(serializer=_orjson_dumps),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(**initial: Any) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger, optionally pre-bound with fields."""

    logger = structlog.get_logger()
    return logger.bind(**initial) if initial else logger
