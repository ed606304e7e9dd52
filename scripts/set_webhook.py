from __future__ import annotations

"""Register the Telegram webhook for this deployment.

Usage:
  python scripts/set_webhook.py

Auto-loads `.env` from the project root (or parent dirs) using
python-dotenv. Requires env TELEGRAM_BOT_TOKEN, PUBLIC_BASE_URL,
WEBHOOK_SECRET. The secret is passed as `secret_token`, which Telegram
echoes back in the X-Telegram-Bot-Api-Secret-Token header.
"""

import os
import sys

import httpx
from dotenv import find_dotenv, load_dotenv


def main() -> None:
    load_dotenv(find_dotenv(), override=False)

    token = os.environ.get("TELEGRAM_BOT_TOKEN")
    base = os.environ.get("PUBLIC_BASE_URL")
    secret = os.environ.get("WEBHOOK_SECRET")
    if not token or not base or not secret:
        print("Please set TELEGRAM_BOT_TOKEN, PUBLIC_BASE_URL, WEBHOOK_SECRET", file=sys.stderr)
        sys.exit(1)
    payload = {
        "url": f"{base.rstrip('/')}/tg/webhook",
        "secret_token": secret,
        "allowed_updates": ["message"],
        "drop_pending_updates": "--drop-pending" in sys.argv,
    }
    resp = httpx.post(f"https://api.telegram.org/bot{token}/setWebhook", json=payload)
    print(resp.status_code, resp.text)


if __name__ == "__main__":
    main()
