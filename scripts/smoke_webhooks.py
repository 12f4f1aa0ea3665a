"""
Smoke tests against a running app instance.

Runs lightweight HTTP checks:
- GET /health
- POST /api/telegram/webhook (a /help command from a throwaway chat)
- GET /api/requests/pending when ADMIN_API_KEY is set

Only checks "no crash / no regression" (2xx responses); Telegram itself may be
unreachable from the shell the script runs in.

Usage:
    BASE_URL=https://bot.example.com python scripts/smoke_webhooks.py
"""

from __future__ import annotations

import os
import time

import httpx

from app.core.config import settings
from app.core.logging import get_logger, setup_logging


logger = get_logger(__name__)


def _base_url() -> str:
    port = os.environ.get("PORT", "8000")
    return os.environ.get("BASE_URL", f"http://127.0.0.1:{port}").rstrip("/")


def _timeout_seconds() -> float:
    return float(os.environ.get("SMOKE_TIMEOUT_SECONDS", "10"))


def _telegram_payload() -> dict:
    # a fresh update_id each run, otherwise the dedup table swallows the call
    now = int(time.time())
    return {
        "update_id": now,
        "message": {
            "message_id": 1,
            "chat": {"id": 999, "type": "private"},
            "text": "/help",
            "date": now,
            "from": {"id": 999, "first_name": "Smoke"},
        },
    }


def _check_status(resp: httpx.Response, expected_family: int = 2) -> None:
    family = resp.status_code // 100
    if family != expected_family:
        raise RuntimeError(
            f"Unexpected status {resp.status_code} for {resp.request.method} {resp.request.url}. "
            f"Body: {(resp.text or '')[:500]}"
        )


def run_smoke_checks(
    client: httpx.Client,
    base_url: str,
    webhook_secret: str = "",
    admin_api_key: str = "",
) -> list[str]:
    """Run every check; returns the URLs that answered 2xx, raises on the first failure"""
    checked = []

    health_url = f"{base_url}/health"
    logger.info("Checking health endpoint", extra_data={"url": health_url})
    resp = client.get(health_url)
    _check_status(resp)
    checked.append(health_url)

    telegram_url = f"{base_url}/api/telegram/webhook"
    headers = {"X-Telegram-Bot-Api-Secret-Token": webhook_secret} if webhook_secret else {}
    logger.info("Posting telegram webhook payload", extra_data={"url": telegram_url})
    resp = client.post(telegram_url, json=_telegram_payload(), headers=headers)
    _check_status(resp)
    checked.append(telegram_url)

    if admin_api_key:
        pending_url = f"{base_url}/api/requests/pending"
        logger.info("Checking staff API", extra_data={"url": pending_url})
        resp = client.get(pending_url, headers={"X-Admin-API-Key": admin_api_key})
        _check_status(resp)
        checked.append(pending_url)
    else:
        logger.info("ADMIN_API_KEY not set, staff API check skipped")

    return checked


def main() -> None:
    setup_logging(level="INFO", json_format=False, app_name="driver-helper-bot-smoke")

    base_url = _base_url()
    timeout = _timeout_seconds()

    logger.info("Starting smoke tests", extra_data={"base_url": base_url, "timeout_seconds": timeout})

    with httpx.Client(timeout=timeout) as client:
        checked = run_smoke_checks(
            client,
            base_url,
            webhook_secret=settings.TELEGRAM_WEBHOOK_SECRET_TOKEN,
            admin_api_key=settings.ADMIN_API_KEY,
        )

    logger.info("Smoke tests completed successfully", extra_data={"checked": len(checked)})


if __name__ == "__main__":
    main()
