"""
Telegram Bot API transport (httpx + circuit breaker).
"""
from __future__ import annotations

from typing import Any, Optional

import httpx

from app.core.circuit_breaker import CircuitBreaker, get_telegram_circuit_breaker
from app.core.config import settings
from app.core.exceptions import CircuitBreakerOpenError, TelegramError
from app.core.logging import get_logger
from app.domain.services.telegram.base_transport import (
    BaseChatTransport,
    InlineKeyboard,
    ReplyKeyboard,
)

TELEGRAM_API_BASE = "https://api.telegram.org"


def build_reply_markup(
    keyboard: Optional[ReplyKeyboard] = None,
    inline_keyboard: Optional[InlineKeyboard] = None,
) -> Optional[dict[str, Any]]:
    """Translate keyboards into the Bot API ``reply_markup`` object"""
    if inline_keyboard:
        return {
            "inline_keyboard": [
                [{"text": b.text, "callback_data": b.callback_data} for b in row]
                for row in inline_keyboard
            ]
        }
    if keyboard:
        return {
            "keyboard": [[{"text": label} for label in row] for row in keyboard],
            "resize_keyboard": True,
        }
    return None


def _breaker_open(operation: str, error: CircuitBreakerOpenError) -> TelegramError:
    return TelegramError(
        f"{operation} skipped, circuit breaker open",
        details={"operation": operation, "retry_after_seconds": error.details.get("retry_after_seconds")},
    )


class BotApiTransport(BaseChatTransport):
    """Sends through https://api.telegram.org/bot<token>/<method>"""

    def __init__(
        self,
        token: str,
        circuit_breaker: CircuitBreaker | None = None,
        timeout: float = 30.0,
        logger=None,
    ):
        self._token = token
        self._circuit_breaker = circuit_breaker or get_telegram_circuit_breaker()
        self._timeout = timeout
        self._logger = logger or get_logger(__name__)

    @property
    def _base_url(self) -> str:
        return f"{TELEGRAM_API_BASE}/bot{self._token}"

    async def _call(self, method: str, payload: dict[str, Any]) -> Any:
        async def _post():
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    f"{self._base_url}/{method}", json=payload, timeout=self._timeout
                )
            if response.status_code != 200:
                raise TelegramError.from_response(method, response)
            body = response.json()
            if not body.get("ok"):
                raise TelegramError(
                    f"{method} returned ok=false",
                    details={"operation": method, "description": body.get("description")},
                )
            return body.get("result")

        try:
            return await self._circuit_breaker.execute(_post)
        except CircuitBreakerOpenError as e:
            raise _breaker_open(method, e) from e
        except httpx.HTTPError as e:
            raise TelegramError(
                f"{method} request failed: {e}", details={"operation": method}
            ) from e

    async def send_text(
        self,
        chat_id: int | str,
        text: str,
        keyboard: Optional[ReplyKeyboard] = None,
        inline_keyboard: Optional[InlineKeyboard] = None,
    ) -> None:
        payload: dict[str, Any] = {"chat_id": chat_id, "text": text}
        reply_markup = build_reply_markup(keyboard, inline_keyboard)
        if reply_markup:
            payload["reply_markup"] = reply_markup

        await self._call("sendMessage", payload)
        self._logger.debug(
            "Telegram message sent",
            extra_data={"chat_id": str(chat_id), "has_markup": reply_markup is not None},
        )

    async def answer_callback(self, callback_query_id: str, text: Optional[str] = None) -> None:
        payload: dict[str, Any] = {"callback_query_id": callback_query_id}
        if text:
            payload["text"] = text
        await self._call("answerCallbackQuery", payload)

    async def download_file(self, file_id: str) -> tuple[bytes, str]:
        result = await self._call("getFile", {"file_id": file_id})
        file_path = (result or {}).get("file_path")
        if not file_path:
            raise TelegramError(
                "getFile missing file_path",
                details={"operation": "getFile", "file_id": file_id},
            )

        async def _fetch() -> bytes:
            async with httpx.AsyncClient() as client:
                response = await client.get(
                    f"{TELEGRAM_API_BASE}/file/bot{self._token}/{file_path}",
                    timeout=self._timeout,
                )
            if response.status_code != 200:
                raise TelegramError.from_response("downloadFile", response)
            return response.content

        try:
            content = await self._circuit_breaker.execute(_fetch)
        except CircuitBreakerOpenError as e:
            raise _breaker_open("downloadFile", e) from e
        except httpx.HTTPError as e:
            raise TelegramError(
                f"downloadFile request failed: {e}", details={"operation": "downloadFile"}
            ) from e
        return content, file_path


class DisabledTransport(BaseChatTransport):
    """Used when no bot token is configured; logs instead of sending"""

    def __init__(self, logger=None):
        self._logger = logger or get_logger(__name__)

    async def send_text(self, chat_id, text, keyboard=None, inline_keyboard=None) -> None:
        self._logger.warning(
            "Telegram bot token not configured, message dropped",
            extra_data={"chat_id": str(chat_id)},
        )

    async def answer_callback(self, callback_query_id: str, text: Optional[str] = None) -> None:
        return None

    async def download_file(self, file_id: str) -> tuple[bytes, str]:
        raise TelegramError("bot token not configured", details={"file_id": file_id})


def create_transport() -> BaseChatTransport:
    if settings.TELEGRAM_BOT_TOKEN:
        return BotApiTransport(settings.TELEGRAM_BOT_TOKEN)
    return DisabledTransport()
