"""
Tests for the request guards: the Telegram secret token and the staff API key.
"""
import pytest
from fastapi import HTTPException
from unittest.mock import patch

from app.core.config import settings
from app.api.dependencies.admin_auth import require_admin_api_key
from app.api.dependencies.webhook_auth import verify_telegram_webhook_token


class TestVerifyTelegramWebhookToken:
    """Called directly, without HTTP"""

    @pytest.mark.asyncio
    @pytest.mark.unit
    async def test_skips_when_secret_not_configured(self) -> None:
        with patch.object(settings, "TELEGRAM_WEBHOOK_SECRET_TOKEN", ""):
            await verify_telegram_webhook_token(None)
            await verify_telegram_webhook_token("anything")

    @pytest.mark.asyncio
    @pytest.mark.unit
    @pytest.mark.parametrize("header", [None, "", "wrong-token", "my-secret "])
    async def test_rejects_missing_or_wrong_header(self, header) -> None:
        with patch.object(settings, "TELEGRAM_WEBHOOK_SECRET_TOKEN", "my-secret"):
            with pytest.raises(HTTPException) as exc_info:
                await verify_telegram_webhook_token(header)

        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    @pytest.mark.unit
    async def test_accepts_valid_token(self) -> None:
        with patch.object(settings, "TELEGRAM_WEBHOOK_SECRET_TOKEN", "my-secret"):
            await verify_telegram_webhook_token("my-secret")


class TestRequireAdminApiKey:

    @pytest.mark.asyncio
    @pytest.mark.unit
    async def test_accepts_the_configured_key(self) -> None:
        with patch.object(settings, "ADMIN_API_KEY", "staff-key"):
            await require_admin_api_key("staff-key")

    @pytest.mark.asyncio
    @pytest.mark.unit
    @pytest.mark.parametrize("api_key, expected", [(None, 401), ("", 401), ("other", 403)])
    async def test_rejects(self, api_key, expected) -> None:
        with patch.object(settings, "ADMIN_API_KEY", "staff-key"):
            with pytest.raises(HTTPException) as exc_info:
                await require_admin_api_key(api_key)

        assert exc_info.value.status_code == expected

    @pytest.mark.asyncio
    @pytest.mark.unit
    async def test_unconfigured_key_refuses_even_an_empty_match(self) -> None:
        with patch.object(settings, "ADMIN_API_KEY", ""):
            with pytest.raises(HTTPException) as exc_info:
                await require_admin_api_key("")

        assert exc_info.value.status_code == 403
