"""
Process-wide chat transport singleton.
"""
from __future__ import annotations

import threading

from app.core.logging import get_logger
from app.domain.services.telegram.base_transport import BaseChatTransport

logger = get_logger(__name__)

_transport: BaseChatTransport | None = None
_lock = threading.Lock()


def get_transport() -> BaseChatTransport:
    """Return the configured transport, creating it on first use"""
    global _transport
    if _transport is None:
        with _lock:
            if _transport is None:
                from app.domain.services.telegram.bot_api_transport import create_transport

                _transport = create_transport()
                logger.info(
                    "Chat transport initialized",
                    extra_data={"transport": type(_transport).__name__},
                )
    return _transport


def set_transport(transport: BaseChatTransport | None) -> None:
    """Install a transport explicitly (tests, alternative clients); None resets"""
    global _transport
    with _lock:
        _transport = transport
