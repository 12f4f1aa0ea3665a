"""
Chat transport contract.

The conversation engine only talks to this interface; the Bot API client and
the recording fake used in tests both implement it.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Sequence


@dataclass(frozen=True)
class InlineButton:
    """Inline keyboard button; ``callback_data`` comes back in the button press update"""
    text: str
    callback_data: str


ReplyKeyboard = Sequence[Sequence[str]]
InlineKeyboard = Sequence[Sequence[InlineButton]]


class BaseChatTransport(ABC):

    @abstractmethod
    async def send_text(
        self,
        chat_id: int | str,
        text: str,
        keyboard: Optional[ReplyKeyboard] = None,
        inline_keyboard: Optional[InlineKeyboard] = None,
    ) -> None:
        """
        Send a plain-text message.

        Args:
            chat_id: destination chat (user id for private chats, negative for groups).
            text: message body, sent as-is.
            keyboard: reply keyboard rows, e.g. [["📊 View Status", "❓ Help"]].
            inline_keyboard: inline button rows; wins over ``keyboard`` when both are given.

        Raises:
            TelegramError: the API refused or could not be reached.
        """

    @abstractmethod
    async def answer_callback(self, callback_query_id: str, text: Optional[str] = None) -> None:
        """Acknowledge a button press so the client stops its spinner."""

    @abstractmethod
    async def download_file(self, file_id: str) -> tuple[bytes, str]:
        """
        Resolve an attachment reference to its bytes.

        Returns:
            (content, file_path) where file_path carries the original extension.

        Raises:
            TelegramError: the file could not be resolved or fetched.
        """
