"""
Telegram Webhook Handler - Bot Gateway Layer
"""
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies.webhook_auth import verify_telegram_webhook_token
from app.core.config import settings
from app.core.logging import get_logger
from app.db.database import get_db
from app.domain.services.telegram import get_transport
from app.domain.services.update_dedup_service import (
    mark_update_completed,
    mark_update_failed,
    try_acquire_update,
)
from app.state_machine.dispatcher import ConversationDispatcher, InboundUpdate
from app.state_machine.handlers import Actor, InboundPhoto

logger = get_logger(__name__)

router = APIRouter()


class TelegramUser(BaseModel):
    id: int
    first_name: str
    last_name: Optional[str] = None
    username: Optional[str] = None


class TelegramChat(BaseModel):
    id: int
    type: str


class TelegramPhotoSize(BaseModel):
    file_id: str
    file_unique_id: str
    width: int
    height: int


class TelegramDocument(BaseModel):
    """A file sent as a document rather than a compressed photo"""
    file_id: str
    file_unique_id: str
    file_name: Optional[str] = None
    mime_type: Optional[str] = None


class TelegramMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message_id: int
    from_user: Optional[TelegramUser] = Field(default=None, alias="from")
    chat: TelegramChat
    text: Optional[str] = None
    caption: Optional[str] = None
    photo: Optional[List[TelegramPhotoSize]] = None
    document: Optional[TelegramDocument] = None
    date: int


class TelegramCallbackQuery(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    from_user: Optional[TelegramUser] = Field(default=None, alias="from")
    message: Optional[TelegramMessage] = None
    data: Optional[str] = None


class TelegramUpdate(BaseModel):
    update_id: int
    message: Optional[TelegramMessage] = None
    callback_query: Optional[TelegramCallbackQuery] = None


def is_hr_actor(user_id: int, chat_id: int) -> bool:
    """The HR group itself, or a user listed in TELEGRAM_HR_USER_IDS"""
    hr_group = settings.TELEGRAM_HR_GROUP_ID
    if hr_group and str(chat_id) == str(hr_group):
        return True
    return str(user_id) in settings.hr_user_ids


def _actor(user_id: int, chat_id: int) -> Actor:
    return Actor(user_id=user_id, chat_id=chat_id, is_hr=is_hr_actor(user_id, chat_id))


def _parse_inbound_event(update: TelegramUpdate) -> InboundUpdate | None:
    """Normalize an update to text / photo / document / button press, or None to ignore it"""
    if update.callback_query:
        callback = update.callback_query
        if callback.from_user is None:
            logger.warning(
                "Telegram callback_query without from_user; skipping processing",
                extra_data={"callback_query_id": callback.id},
            )
            return None

        # the user who pressed, replying in the chat that holds the button
        user_id = callback.from_user.id
        chat_id = callback.message.chat.id if callback.message else user_id
        return InboundUpdate(
            update_id=update.update_id,
            actor=_actor(user_id, chat_id),
            callback_query_id=callback.id,
            callback_data=callback.data or "",
        )

    if update.message:
        message = update.message
        chat_id = message.chat.id
        if message.chat.type == "private" or message.from_user is None:
            user_id = chat_id
        else:
            user_id = message.from_user.id

        photo = None
        document = None
        if message.photo:
            # largest size comes last
            photo = InboundPhoto(file_id=message.photo[-1].file_id)
        elif message.document:
            attachment = InboundPhoto(
                file_id=message.document.file_id,
                file_name=message.document.file_name,
            )
            mime_type = (message.document.mime_type or "").lower()
            if mime_type.startswith("image/"):
                photo = attachment
            else:
                document = attachment

        if message.text is None and photo is None and document is None:
            return None

        return InboundUpdate(
            update_id=update.update_id,
            actor=_actor(user_id, chat_id),
            text=message.text,
            photo=photo,
            document=document,
        )

    return None


@router.post(
    "/webhook",
    summary="Telegram webhook (incoming updates)",
    description=(
        "Entry point for Telegram Bot API updates: text, commands, photos, "
        "documents and inline button presses."
    ),
)
async def telegram_webhook(
    update: TelegramUpdate,
    db: AsyncSession = Depends(get_db),
    _: None = Depends(verify_telegram_webhook_token),
):
    """
    Handle one Telegram update.

    Each update_id is processed once; a redelivered update that already
    completed is acknowledged without running the handlers again.
    """
    inbound = _parse_inbound_event(update)
    if inbound is None:
        return {"ok": True}

    event_id = str(update.update_id)
    if not await try_acquire_update(db, event_id):
        logger.info("Duplicate update skipped", extra_data={"update_id": update.update_id})
        return {"ok": True, "duplicate": True}

    dispatcher = ConversationDispatcher(db, get_transport())
    try:
        response = await dispatcher.dispatch(inbound)
    except Exception:
        logger.error(
            "Telegram update processing failed",
            extra_data={"update_id": update.update_id},
            exc_info=True,
        )
        await db.rollback()
        await mark_update_failed(db, event_id)
        raise

    await mark_update_completed(db, event_id)
    return {"ok": True, "replied": response is not None and bool(response.text)}
