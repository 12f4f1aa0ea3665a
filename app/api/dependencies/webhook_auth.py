"""
Telegram webhook authentication.

Telegram sends ``X-Telegram-Bot-Api-Secret-Token`` with every webhook call when
``secret_token`` was given to ``setWebhook``. This dependency checks it against
``TELEGRAM_WEBHOOK_SECRET_TOKEN``.

Usage:
    @router.post("/webhook")
    async def telegram_webhook(
        ...,
        _: None = Depends(verify_telegram_webhook_token),
    ):
        ...
"""
import hmac

from fastapi import Header, HTTPException, status

from app.core.config import settings
from app.core.logging import get_logger

logger = get_logger(__name__)


async def verify_telegram_webhook_token(
    x_telegram_bot_api_secret_token: str | None = Header(None),
) -> None:
    """
    Check ``X-Telegram-Bot-Api-Secret-Token``.

    - No ``TELEGRAM_WEBHOOK_SECRET_TOKEN`` configured: skipped (warned at startup).
    - Header missing or different: 401 Unauthorized.
    """
    expected = settings.TELEGRAM_WEBHOOK_SECRET_TOKEN
    if not expected:
        return

    if not x_telegram_bot_api_secret_token:
        logger.warning("Webhook call without X-Telegram-Bot-Api-Secret-Token")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing webhook secret token",
        )

    if not hmac.compare_digest(x_telegram_bot_api_secret_token, expected):
        logger.warning("Webhook call with a wrong secret token")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid webhook secret token",
        )
