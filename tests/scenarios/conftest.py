"""
Fixtures and helpers for end-to-end scenario tests.

Provides:
- Telegram update payload builders (text, photo, document, button press)
- Short send helpers that post to the webhook and assert 200
- DB assertion helpers (driver status, live sessions)
"""
from typing import Optional

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.driver import Driver
from app.state_machine.manager import SessionStore
from app.state_machine.states import SessionKind

WEBHOOK_PATH = "/api/telegram/webhook"


# ============================================================================
# Payload builders
# ============================================================================

_update_counter = 0


def _next_update_id() -> int:
    """Unique update_id per payload so the dedup table never collides"""
    global _update_counter
    _update_counter += 1
    return _update_counter


def _chat(chat_id: int) -> dict:
    return {"id": chat_id, "type": "private" if chat_id > 0 else "supergroup"}


def build_tg_message(
    chat_id: int,
    text: str,
    *,
    user_id: Optional[int] = None,
    name: str = "Test",
    update_id: Optional[int] = None,
) -> dict:
    """Text message; ``user_id`` defaults to the chat (private chat)"""
    uid = update_id if update_id is not None else _next_update_id()
    return {
        "update_id": uid,
        "message": {
            "message_id": uid,
            "chat": _chat(chat_id),
            "text": text,
            "date": 1700000000 + uid,
            "from": {"id": user_id or chat_id, "first_name": name},
        },
    }


def build_tg_callback(
    chat_id: int,
    data: str,
    *,
    user_id: Optional[int] = None,
    name: str = "Test",
) -> dict:
    """Inline button press on a message in ``chat_id``"""
    uid = _next_update_id()
    return {
        "update_id": uid,
        "callback_query": {
            "id": f"cb-{uid}",
            "data": data,
            "from": {"id": user_id or chat_id, "first_name": name},
            "message": {
                "message_id": uid,
                "chat": _chat(chat_id),
                "text": "",
                "date": 1700000000 + uid,
            },
        },
    }


def build_tg_photo(
    chat_id: int,
    file_id: str = "test_photo_file_id",
    *,
    name: str = "Test",
) -> dict:
    """Compressed photo in two sizes; the larger one is last"""
    uid = _next_update_id()
    return {
        "update_id": uid,
        "message": {
            "message_id": uid,
            "chat": _chat(chat_id),
            "date": 1700000000 + uid,
            "from": {"id": chat_id, "first_name": name},
            "photo": [
                {
                    "file_id": f"{file_id}-thumb",
                    "file_unique_id": f"u_{file_id}_{uid}_s",
                    "width": 90,
                    "height": 90,
                },
                {
                    "file_id": file_id,
                    "file_unique_id": f"u_{file_id}_{uid}",
                    "width": 1280,
                    "height": 960,
                },
            ],
        },
    }


def build_tg_document(
    chat_id: int,
    file_name: str = "cdl.pdf",
    mime_type: str = "application/pdf",
    *,
    file_id: str = "test_document_file_id",
    name: str = "Test",
) -> dict:
    """File sent as a document instead of a compressed photo"""
    uid = _next_update_id()
    return {
        "update_id": uid,
        "message": {
            "message_id": uid,
            "chat": _chat(chat_id),
            "date": 1700000000 + uid,
            "from": {"id": chat_id, "first_name": name},
            "document": {
                "file_id": file_id,
                "file_unique_id": f"u_{file_id}_{uid}",
                "file_name": file_name,
                "mime_type": mime_type,
            },
        },
    }


# ============================================================================
# Send helpers
# ============================================================================

async def _post(client, payload: dict, headers: Optional[dict] = None) -> dict:
    resp = await client.post(WEBHOOK_PATH, json=payload, headers=headers or {})
    assert resp.status_code == 200, f"Telegram webhook returned {resp.status_code}: {resp.text}"
    return resp.json()


async def send_tg(client, chat_id: int, text: str, **kwargs) -> dict:
    """Post a text message to the webhook; asserts 200 and returns the JSON body"""
    return await _post(client, build_tg_message(chat_id, text, **kwargs))


async def send_tg_callback(client, chat_id: int, data: str, **kwargs) -> dict:
    return await _post(client, build_tg_callback(chat_id, data, **kwargs))


async def send_tg_photo(client, chat_id: int, file_id: str = "test_photo", **kwargs) -> dict:
    return await _post(client, build_tg_photo(chat_id, file_id, **kwargs))


async def send_tg_document(client, chat_id: int, file_name: str = "cdl.pdf", **kwargs) -> dict:
    return await _post(client, build_tg_document(chat_id, file_name, **kwargs))


# ============================================================================
# Counter reset between tests
# ============================================================================

@pytest.fixture(autouse=True)
def _reset_counters():
    global _update_counter
    _update_counter = 0
    yield


# ============================================================================
# DB assertion helpers
# ============================================================================

async def assert_driver_status(
    db_session: AsyncSession,
    telegram_id: int,
    expected_status,
) -> Driver:
    """Fresh read of the driver row; returns the driver"""
    result = await db_session.execute(
        select(Driver).where(Driver.telegram_id == telegram_id).execution_options(
            populate_existing=True
        )
    )
    driver = result.scalar_one()
    assert driver.status == expected_status, (
        f"expected: {expected_status}, actual: {driver.status}"
    )
    return driver


async def assert_session(
    db_session: AsyncSession,
    telegram_id: int,
    kind: SessionKind,
    step: Optional[int] = None,
    live: bool = True,
):
    """Check that a session is (or is not) live, optionally at a given step"""
    session = await SessionStore(db_session).get(telegram_id, kind)
    if not live:
        assert session is None, f"expected no live {kind.value} session, found step {session.step}"
        return None
    assert session is not None, f"expected a live {kind.value} session"
    if step is not None:
        assert session.step == step, f"expected step {step}, actual: {session.step}"
    return session
