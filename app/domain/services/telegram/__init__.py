"""
Telegram chat transport.
"""
from app.domain.services.telegram.base_transport import (
    BaseChatTransport,
    InlineButton,
    InlineKeyboard,
    ReplyKeyboard,
)
from app.domain.services.telegram.transport_factory import get_transport, set_transport

__all__ = [
    "BaseChatTransport",
    "InlineButton",
    "InlineKeyboard",
    "ReplyKeyboard",
    "get_transport",
    "set_transport",
]
