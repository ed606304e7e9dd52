from __future__ import annotations

"""Webhook authenticity check.

Telegram echoes the secret given to setWebhook in the
X-Telegram-Bot-Api-Secret-Token header of every delivery.
"""

import hmac
from typing import Mapping, Optional


SECRET_HEADER = "X-Telegram-Bot-Api-Secret-Token"


def is_authentic(supplied: Optional[str], expected: str) -> bool:
    """Return True if supplied equals the configured secret (constant-time)."""

    if not supplied or not expected:
        return False
    return hmac.compare_digest(supplied.encode("utf-8"), expected.encode("utf-8"))


def admit(headers: Mapping[str, str], expected: str) -> bool:
    # Starlette headers are case-insensitive; plain dicts in tests may not be
    supplied = headers.get(SECRET_HEADER) or headers.get(SECRET_HEADER.lower())
    return is_authentic(supplied, expected)
