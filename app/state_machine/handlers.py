"""
Conversation handler building blocks.

Handlers take the actor of an inbound update plus its live session, perform the
step and return the reply for the actor's own chat. Messages for anyone else
(HR group, the other side of a relay) are sent by the handler through the
notification service.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging import get_logger
from app.db.models.driver import Driver, DriverStatus
from app.domain.services.document_storage import LocalDocumentStorage, get_document_storage
from app.domain.services.driver_service import DriverService
from app.domain.services.hr_notification_service import HRNotificationService
from app.domain.services.telegram.base_transport import (
    BaseChatTransport,
    InlineKeyboard,
    ReplyKeyboard,
)
from app.state_machine.manager import SessionStore


@dataclass(frozen=True)
class Actor:
    """Who sent an update and where replies go"""

    user_id: int
    chat_id: int
    is_hr: bool = False

    @property
    def is_private_chat(self) -> bool:
        return self.user_id == self.chat_id


@dataclass(frozen=True)
class InboundPhoto:
    file_id: str
    file_name: Optional[str] = None


class MessageResponse:
    """Response to be sent to user"""

    def __init__(
        self,
        text: str,
        keyboard: Optional[ReplyKeyboard] = None,
        inline_keyboard: Optional[InlineKeyboard] = None,
        callback_text: Optional[str] = None,
    ):
        self.text = text
        self.keyboard = keyboard
        self.inline_keyboard = inline_keyboard
        # shown in the button-press acknowledgement when the update was a callback
        self.callback_text = callback_text

    def __repr__(self) -> str:
        return f"MessageResponse({self.text[:40]!r})"


# Reply keyboard labels. The dispatcher routes these exact texts to actions.
BTN_REQUEST_ADVANCE = "💰 Request Advance Payment"
BTN_REQUEST_VACATION = "🏖️ Request Vacation"
BTN_MESSAGE_HR = "💬 Message HR"
BTN_CONTACT_SUPPORT = "🆘 Contact Support"
BTN_VIEW_STATUS = "📊 View Status"
BTN_HELP = "❓ Help"
BTN_UPDATE_PROFILE = "📝 Update Profile"
BTN_DRIVER_LICENSE = "🚗 Driver License"
BTN_MEDICAL_CARD = "🏥 Medical Card"
BTN_BACK_TO_MENU = "⬅️ Back to Menu"

ACTIVE_DRIVER_KEYBOARD: ReplyKeyboard = [
    [BTN_REQUEST_ADVANCE, BTN_REQUEST_VACATION],
    [BTN_MESSAGE_HR, BTN_CONTACT_SUPPORT],
    [BTN_VIEW_STATUS, BTN_HELP],
    [BTN_UPDATE_PROFILE],
]

BASIC_DRIVER_KEYBOARD: ReplyKeyboard = [
    [BTN_MESSAGE_HR, BTN_VIEW_STATUS],
    [BTN_UPDATE_PROFILE],
]

PROFILE_KEYBOARD: ReplyKeyboard = [
    [BTN_DRIVER_LICENSE, BTN_MEDICAL_CARD],
    [BTN_BACK_TO_MENU],
]

NOT_REGISTERED_TEXT = "❌ You are not registered as a driver."
GENERIC_ERROR_TEXT = "❌ Sorry, something went wrong. Please try again."
SESSION_EXPIRED_TEXT = "⌛ This conversation has expired. Please start again from the menu or with /start."
DATE_FORMAT_TEXT = "❌ Please enter the date in YYYY-MM-DD format (e.g., 2030-12-31):"
HR_ONLY_TEXT = "❌ This command is only available to HR staff."

HR_HELP_TEXT = (
    "🚛 Driver Helper Bot - HR Commands\n\n"
    "Available commands:\n"
    "/list_drivers - List all drivers\n"
    "/pending_requests - Show pending advance and vacation requests\n"
    "/message [driver_id] - Send message to specific driver\n"
    "/approve [driver_id] - Approve driver application\n"
    "/reject [driver_id] - Reject driver application\n"
    "/cancel - Cancel the message you are composing\n"
    "/help - Show this help message"
)

DRIVER_HELP_TEXT = (
    "🚛 Driver Helper Bot\n\n"
    "Available commands:\n"
    "/start - Start onboarding or show main menu\n"
    "/request_advance - Request advance payment\n"
    "/request_vacation - Request vacation\n"
    "/status - Check your status\n"
    "/cancel - Cancel the current request or message\n"
    "/help - Show this help message\n\n"
    "You can also use the buttons in the main menu for quick access!"
)


def main_menu(driver: Driver) -> MessageResponse:
    """Welcome-back message with the status dependent reply keyboard"""
    keyboard = ACTIVE_DRIVER_KEYBOARD if driver.is_active else BASIC_DRIVER_KEYBOARD
    return MessageResponse(
        f"🚛 Welcome back, {driver.display_name}!\n\n"
        f"Status: {DriverStatus(driver.status).value.upper()}\n\n"
        "What would you like to do?",
        keyboard=keyboard,
    )


def status_report(driver: Optional[Driver]) -> MessageResponse:
    if driver is None:
        return MessageResponse("❌ You are not registered. Use /start to begin onboarding.")
    onboarding = "✅ Complete" if driver.onboarding_completed else "❌ Incomplete"
    return MessageResponse(
        "📊 Your Status\n\n"
        f"Status: {driver.status_label}\n"
        f"Name: {driver.display_name}\n"
        f"Onboarding: {onboarding}"
    )


def help_text(actor: Actor) -> MessageResponse:
    if actor.is_hr:
        return MessageResponse(HR_HELP_TEXT, callback_text="📋 HR Help")
    return MessageResponse(DRIVER_HELP_TEXT, callback_text="📋 Driver Help")


class ConversationHandler:
    """Shared collaborators of every conversation"""

    def __init__(
        self,
        db: AsyncSession,
        transport: BaseChatTransport,
        store: Optional[SessionStore] = None,
        notifier: Optional[HRNotificationService] = None,
        storage: Optional[LocalDocumentStorage] = None,
        logger=None,
    ):
        self.db = db
        self.transport = transport
        self.logger = logger or get_logger(type(self).__module__)
        self.store = store or SessionStore(db, logger=self.logger)
        self.notifier = notifier or HRNotificationService(transport, logger=self.logger)
        self._storage = storage
        self.drivers = DriverService(db)

    @property
    def storage(self) -> LocalDocumentStorage:
        if self._storage is None:
            self._storage = get_document_storage()
        return self._storage

    async def send(self, actor: Actor, response: MessageResponse) -> None:
        """Send an intermediate reply before the handler's final one"""
        await self.transport.send_text(
            actor.chat_id,
            response.text,
            keyboard=response.keyboard,
            inline_keyboard=response.inline_keyboard,
        )

    async def download_photo(self, photo: InboundPhoto) -> tuple[bytes, str]:
        """Photo bytes plus a file name carrying the original extension"""
        content, file_path = await self.transport.download_file(photo.file_id)
        return content, photo.file_name or file_path
