"""
Conversation Dispatcher - routes every inbound update to exactly one handler.

Order of precedence for a text update:
1. slash commands
2. exact reply-keyboard button labels
3. the first live session found in TEXT_DISPATCH_ORDER
4. default guidance (private chats only)

Photos only reach the kinds in PHOTO_DISPATCH_ORDER and are otherwise ignored.
Button presses are always acknowledged, also when handling fails.
"""
import re
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ExternalServiceException, InvalidSessionPayloadError
from app.core.logging import get_logger
from app.domain.services.document_storage import LocalDocumentStorage
from app.domain.services.driver_approval_service import ApprovalAction
from app.domain.services.driver_service import DriverService
from app.domain.services.hr_notification_service import HRNotificationService
from app.domain.services.telegram.base_transport import BaseChatTransport
from app.state_machine.handlers import (
    BTN_BACK_TO_MENU,
    BTN_CONTACT_SUPPORT,
    BTN_DRIVER_LICENSE,
    BTN_HELP,
    BTN_MEDICAL_CARD,
    BTN_MESSAGE_HR,
    BTN_REQUEST_ADVANCE,
    BTN_REQUEST_VACATION,
    BTN_UPDATE_PROFILE,
    BTN_VIEW_STATUS,
    GENERIC_ERROR_TEXT,
    HR_ONLY_TEXT,
    NOT_REGISTERED_TEXT,
    Actor,
    InboundPhoto,
    MessageResponse,
    help_text,
    main_menu,
    status_report,
)
from app.state_machine.manager import Session, SessionStore
from app.state_machine.onboarding_handler import DOCUMENT_REFUSED_TEXT, OnboardingHandler
from app.state_machine.profile_handler import ProfileUpdateHandler
from app.state_machine.relay_handler import Department, RelayHandler
from app.state_machine.request_handler import RequestHandler
from app.state_machine.staff_handler import StaffHandler
from app.state_machine.states import (
    CANCEL_ORDER,
    PHOTO_DISPATCH_ORDER,
    TEXT_DISPATCH_ORDER,
    DocumentType,
    SessionKind,
)

FALLBACK_TEXT = "Please use /start to begin onboarding or /help for available commands."
UNKNOWN_COMMAND_TEXT = "Unknown command. Use /help to see available commands."
INVALID_SESSION_TEXT = (
    "❌ Error: Invalid session data. Please try starting the message again."
)
NOTHING_TO_CANCEL_TEXT = "There is no active session to cancel."
CALLBACK_ERROR_TEXT = "❌ Error processing request."

CANCEL_TEXTS = {
    SessionKind.HR_MESSAGE: "❌ Message cancelled.",
    SessionKind.DRIVER_REPLY: "❌ Reply mode cancelled. You can now use the main menu.",
    SessionKind.PROFILE_UPDATE: "❌ Profile update cancelled.",
    SessionKind.PROFILE_UPDATE_DATE: "❌ Profile update cancelled.",
    SessionKind.ADVANCE_REQUEST: "❌ Request cancelled.",
    SessionKind.VACATION_REQUEST: "❌ Request cancelled.",
}

# "/message_42" style commands and per-driver button payloads
_DRIVER_ACTION_RE = re.compile(r"^(message|approve|reject|reply_driver)_(\d+)$")

STAFF_COMMANDS = frozenset({"list_drivers", "pending_requests", "message", "approve", "reject"})

SessionTextHandler = Callable[[Actor, Session, str], Awaitable[MessageResponse]]
SessionPhotoHandler = Callable[[Actor, Session, InboundPhoto], Awaitable[MessageResponse]]


@dataclass(frozen=True)
class InboundUpdate:
    """Transport-neutral form of one webhook update"""

    update_id: int
    actor: Actor
    text: Optional[str] = None
    photo: Optional[InboundPhoto] = None
    # non-image attachment; only answered with guidance
    document: Optional[InboundPhoto] = None
    callback_query_id: Optional[str] = None
    callback_data: Optional[str] = None


def parse_command(text: str) -> Optional[tuple[str, list[str]]]:
    """'/approve@DriverBot 42' -> ('approve', ['42']); None for non-commands"""
    if not text or not text.startswith("/"):
        return None
    head, *args = text.split()
    name = head[1:].split("@", 1)[0].lower()
    if not name:
        return None
    return name, args


def _parse_id(args: list[str]) -> Optional[int]:
    if len(args) != 1 or not args[0].isdigit():
        return None
    return int(args[0])


class ConversationDispatcher:
    """Entry point of the conversation engine for one inbound update"""

    def __init__(
        self,
        db: AsyncSession,
        transport: BaseChatTransport,
        storage: Optional[LocalDocumentStorage] = None,
        logger=None,
    ):
        self.db = db
        self.transport = transport
        self.logger = logger or get_logger(__name__)
        self.store = SessionStore(db, logger=self.logger)
        self.notifier = HRNotificationService(transport, logger=self.logger)
        self.drivers = DriverService(db)

        shared = dict(store=self.store, notifier=self.notifier, storage=storage, logger=self.logger)
        self.onboarding = OnboardingHandler(db, transport, **shared)
        self.requests = RequestHandler(db, transport, **shared)
        self.profile = ProfileUpdateHandler(db, transport, **shared)
        self.relay = RelayHandler(db, transport, **shared)
        self.staff = StaffHandler(db, transport, **shared)

        text_handlers: dict[SessionKind, SessionTextHandler] = {
            SessionKind.HR_MESSAGE: self.relay.handle_hr_text,
            SessionKind.DRIVER_REPLY: self.relay.handle_driver_reply_text,
            SessionKind.ONBOARDING: self.onboarding.handle_text,
            SessionKind.PROFILE_UPDATE_DATE: self.profile.handle_date_text,
            SessionKind.ADVANCE_REQUEST: self.requests.handle_advance_text,
            SessionKind.VACATION_REQUEST: self.requests.handle_vacation_text,
        }
        photo_handlers: dict[SessionKind, SessionPhotoHandler] = {
            SessionKind.ONBOARDING: self.onboarding.handle_photo,
            SessionKind.PROFILE_UPDATE: self.profile.handle_photo,
        }
        self.text_routes: tuple[tuple[SessionKind, SessionTextHandler], ...] = tuple(
            (kind, text_handlers[kind]) for kind in TEXT_DISPATCH_ORDER
        )
        self.photo_routes: tuple[tuple[SessionKind, SessionPhotoHandler], ...] = tuple(
            (kind, photo_handlers[kind]) for kind in PHOTO_DISPATCH_ORDER
        )

        self._menu_routes: dict[str, Callable[[Actor], Awaitable[MessageResponse]]] = {
            BTN_REQUEST_ADVANCE: self.requests.start_advance,
            BTN_REQUEST_VACATION: self.requests.start_vacation,
            BTN_MESSAGE_HR: lambda actor: self.relay.start_driver_message(actor, Department.HR),
            BTN_CONTACT_SUPPORT: lambda actor: self.relay.start_driver_message(actor, Department.SUPPORT),
            BTN_VIEW_STATUS: self._status,
            BTN_HELP: self._help,
            BTN_UPDATE_PROFILE: self.profile.show_menu,
            BTN_DRIVER_LICENSE: lambda actor: self.profile.start(actor, DocumentType.DRIVER_LICENSE),
            BTN_MEDICAL_CARD: lambda actor: self.profile.start(actor, DocumentType.MEDICAL_CARD),
            BTN_BACK_TO_MENU: self._back_to_menu,
        }
        self._driver_callbacks: dict[str, Callable[[Actor], Awaitable[MessageResponse]]] = {
            "message_hr": self._menu_routes[BTN_MESSAGE_HR],
            "message_support": self._menu_routes[BTN_CONTACT_SUPPORT],
            "request_advance": self.requests.start_advance,
            "request_vacation": self.requests.start_vacation,
            "check_status": self._status,
            "help": self._help,
        }

    # ==================== Entry point ====================

    async def dispatch(self, update: InboundUpdate) -> Optional[MessageResponse]:
        """
        Handle one update and send the reply to the actor's chat.

        Returns the reply that was sent, or None when the update was ignored.
        """
        if update.callback_query_id is not None:
            return await self._dispatch_callback(update)

        try:
            response = await self._route(update)
        except InvalidSessionPayloadError as e:
            response = await self._drop_invalid_session(update.actor, e)
        except Exception:
            await self.db.rollback()
            self.logger.exception(
                "Update handling failed",
                extra_data={"update_id": update.update_id, "telegram_id": update.actor.user_id},
            )
            response = MessageResponse(GENERIC_ERROR_TEXT)

        if response is not None and response.text:
            await self._reply(update.actor, response)
        return response

    async def _route(self, update: InboundUpdate) -> Optional[MessageResponse]:
        actor = update.actor
        if update.photo is not None:
            return await self._route_photo(actor, update.photo)
        if update.document is not None:
            return await self._route_document(actor)
        if update.text is None:
            return None

        text = update.text.strip()
        command = parse_command(text)
        if command is not None:
            return await self._route_command(actor, *command)

        menu_action = self._menu_routes.get(text)
        if menu_action is not None:
            return await menu_action(actor)

        for kind, handler in self.text_routes:
            session = await self.store.get(actor.user_id, kind)
            if session is not None:
                self.logger.debug(
                    "Text routed to session",
                    extra_data={"telegram_id": actor.user_id, "kind": kind.value, "step": session.step},
                )
                return await handler(actor, session, text)

        if not actor.is_private_chat:
            return None
        return MessageResponse(FALLBACK_TEXT)

    async def _route_photo(self, actor: Actor, photo: InboundPhoto) -> Optional[MessageResponse]:
        for kind, handler in self.photo_routes:
            session = await self.store.get(actor.user_id, kind)
            if session is not None:
                return await handler(actor, session, photo)
        self.logger.debug("Photo without a photo session ignored", extra_data={"telegram_id": actor.user_id})
        return None

    async def _route_document(self, actor: Actor) -> Optional[MessageResponse]:
        for kind, _ in self.photo_routes:
            if await self.store.get(actor.user_id, kind) is not None:
                return MessageResponse(DOCUMENT_REFUSED_TEXT)
        return None

    # ==================== Commands ====================

    async def _route_command(self, actor: Actor, name: str, args: list[str]) -> MessageResponse:
        legacy = _DRIVER_ACTION_RE.match(name)
        if legacy is not None and legacy.group(1) != "reply_driver" and not args:
            name, args = legacy.group(1), [legacy.group(2)]

        if name in STAFF_COMMANDS and not actor.is_hr:
            return MessageResponse(HR_ONLY_TEXT)

        if name == "start":
            if not actor.is_private_chat:
                return help_text(actor)
            return await self.onboarding.start(actor)
        if name == "help":
            return help_text(actor)
        if name == "status":
            return await self._status(actor)
        if name == "cancel":
            return await self._cancel(actor)
        if name == "request_advance":
            return await self.requests.start_advance(actor)
        if name == "request_vacation":
            return await self.requests.start_vacation(actor)
        if name == "list_drivers":
            return await self.staff.list_drivers()
        if name == "pending_requests":
            return await self.requests.pending_requests()
        if name in ("message", "approve", "reject"):
            driver_id = _parse_id(args)
            if driver_id is None:
                return MessageResponse(f"Usage: /{name} <driver_id>")
            if name == "message":
                return await self.relay.start_hr_message(actor, driver_id)
            return await self.staff.decide(actor, driver_id, ApprovalAction(name))

        return MessageResponse(UNKNOWN_COMMAND_TEXT)

    async def _cancel(self, actor: Actor) -> MessageResponse:
        for kind in CANCEL_ORDER:
            try:
                live = await self.store.get(actor.user_id, kind) is not None
            except InvalidSessionPayloadError:
                live = True
            if live:
                await self.store.delete(actor.user_id, kind)
                self.logger.info(
                    "Session cancelled",
                    extra_data={"telegram_id": actor.user_id, "kind": kind.value},
                )
                return MessageResponse(CANCEL_TEXTS[kind])
        return MessageResponse(NOTHING_TO_CANCEL_TEXT)

    # ==================== Buttons ====================

    async def _dispatch_callback(self, update: InboundUpdate) -> Optional[MessageResponse]:
        response: Optional[MessageResponse] = None
        try:
            response = await self._route_callback(update.actor, update.callback_data or "")
        except InvalidSessionPayloadError as e:
            response = await self._drop_invalid_session(update.actor, e)
        except Exception:
            await self.db.rollback()
            self.logger.exception(
                "Button handling failed",
                extra_data={"update_id": update.update_id, "callback_data": update.callback_data},
            )
            response = MessageResponse(GENERIC_ERROR_TEXT, callback_text=CALLBACK_ERROR_TEXT)
        finally:
            await self._acknowledge(
                update.callback_query_id,
                response.callback_text if response is not None else None,
            )

        if response is not None and response.text:
            await self._reply(update.actor, response)
        return response

    async def _route_callback(self, actor: Actor, data: str) -> Optional[MessageResponse]:
        action = self._driver_callbacks.get(data)
        if action is not None:
            return await action(actor)

        match = _DRIVER_ACTION_RE.match(data)
        if match is None:
            self.logger.warning("Unknown button payload", extra_data={"callback_data": data})
            return None

        if not actor.is_hr:
            return MessageResponse("", callback_text=HR_ONLY_TEXT)

        verb, driver_id = match.group(1), int(match.group(2))
        if verb in ("message", "reply_driver"):
            return await self.relay.start_hr_message(actor, driver_id)
        return await self.staff.decide(actor, driver_id, ApprovalAction(verb))

    # ==================== Shared actions ====================

    async def _status(self, actor: Actor) -> MessageResponse:
        driver = await self.drivers.get_by_telegram_id(actor.user_id)
        response = status_report(driver)
        response.callback_text = "📊 Your Status"
        return response

    async def _help(self, actor: Actor) -> MessageResponse:
        return help_text(actor)

    async def _back_to_menu(self, actor: Actor) -> MessageResponse:
        await self.store.delete(actor.user_id, SessionKind.PROFILE_UPDATE)
        driver = await self.drivers.get_by_telegram_id(actor.user_id)
        if driver is None:
            return MessageResponse(NOT_REGISTERED_TEXT)
        return main_menu(driver)

    async def _drop_invalid_session(
        self, actor: Actor, error: InvalidSessionPayloadError
    ) -> MessageResponse:
        self.logger.warning(
            "Invalid session payload, session dropped",
            extra_data={"telegram_id": actor.user_id, "kind": error.kind, "error": error.message},
        )
        await self.db.rollback()
        await self.store.delete(actor.user_id, SessionKind(error.kind))
        return MessageResponse(INVALID_SESSION_TEXT, callback_text=CALLBACK_ERROR_TEXT)

    async def _reply(self, actor: Actor, response: MessageResponse) -> None:
        try:
            await self.transport.send_text(
                actor.chat_id,
                response.text,
                keyboard=response.keyboard,
                inline_keyboard=response.inline_keyboard,
            )
        except ExternalServiceException as e:
            self.logger.error(
                "Reply could not be delivered",
                extra_data={"chat_id": actor.chat_id, "error": e.message},
            )

    async def _acknowledge(self, callback_query_id: str, text: Optional[str]) -> None:
        try:
            await self.transport.answer_callback(callback_query_id, text)
        except ExternalServiceException as e:
            self.logger.error(
                "Button press could not be acknowledged",
                extra_data={"callback_query_id": callback_query_id, "error": e.message},
            )
