#!/usr/bin/env python3
"""
Register the webhook URL with Telegram.

Usage:
    TELEGRAM_BOT_TOKEN=... python scripts/set_webhook.py https://api.example.com/webhooks/telegram \
        --secret-token "$WEBHOOK_SECRET"

Only message updates are requested; the handler ignores everything else.
"""

import argparse
import os
import sys
from pathlib import Path

import httpx

sys.path.insert(0, str(Path(__file__).parent.parent / "functions"))

from shared.constants import TELEGRAM_API


def set_webhook(token: str, url: str, secret_token: str = None, drop_pending: bool = False) -> dict:
    payload = {
        "url": url,
        "allowed_updates": ["message"],
        "drop_pending_updates": drop_pending,
    }
    if secret_token:
        payload["secret_token"] = secret_token

    with httpx.Client(timeout=30.0) as client:
        response = client.post(f"{TELEGRAM_API}/bot{token}/setWebhook", json=payload)
        response.raise_for_status()
        return response.json()


def main():
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("url", help="Public HTTPS URL of the webhook")
    parser.add_argument("--secret-token", default=os.environ.get("TELEGRAM_WEBHOOK_SECRET"))
    parser.add_argument("--drop-pending", action="store_true", help="Discard updates queued while offline")
    args = parser.parse_args()

    token = os.environ.get("TELEGRAM_BOT_TOKEN")
    if not token:
        print("TELEGRAM_BOT_TOKEN is not set")
        return 1

    try:
        result = set_webhook(token, args.url, args.secret_token, args.drop_pending)
    except httpx.HTTPError as e:
        print(f"setWebhook failed: {e}")
        return 1

    print(result.get("description") or result)
    return 0 if result.get("ok") else 1


if __name__ == "__main__":
    sys.exit(main())
