"""
Relay Handler - one-message conversations between HR and drivers.

HR picks a driver and types one message; it is relayed to the driver, whose
next text is then relayed back to HR. Drivers can also open a message to the
HR or support group from the menu.
"""
import enum

from app.core.config import settings
from app.core.exceptions import InvalidSessionPayloadError
from app.state_machine.handlers import (
    NOT_REGISTERED_TEXT,
    Actor,
    ConversationHandler,
    MessageResponse,
)
from app.state_machine.manager import Session
from app.state_machine.payloads import DriverReplyData, HRMessageData
from app.state_machine.states import SessionKind

DRIVER_NOT_FOUND_TEXT = "❌ Driver not found."
HR_SEND_ERROR_TEXT = "❌ Error sending message. Please try again."
DRIVER_SEND_ERROR_TEXT = "❌ Error sending reply. Please try again."
CHANNEL_UNAVAILABLE_TEXT = "❌ This channel is not available right now. Please try again later."


class Department(str, enum.Enum):
    HR = "hr"
    SUPPORT = "support"

    @property
    def label(self) -> str:
        return "HR" if self is Department.HR else "Support"

    @property
    def chat_id(self) -> str | None:
        if self is Department.HR:
            return settings.TELEGRAM_HR_GROUP_ID
        return settings.TELEGRAM_SUPPORT_GROUP_ID


class RelayHandler(ConversationHandler):
    """HR -> driver messages and driver -> HR/support replies"""

    # ==================== HR side ====================

    async def start_hr_message(self, actor: Actor, driver_id: int) -> MessageResponse:
        driver = await self.drivers.get_by_id(driver_id)
        if driver is None:
            return MessageResponse(DRIVER_NOT_FOUND_TEXT, callback_text=DRIVER_NOT_FOUND_TEXT)

        await self.store.create(
            actor.user_id,
            SessionKind.HR_MESSAGE,
            1,
            HRMessageData(target_driver_id=driver.id, target_driver_name=driver.display_name),
        )
        return MessageResponse(
            f"💬 Message to {driver.display_name}\n\n"
            "Type your message below. The driver will receive it immediately.\n\n"
            "To cancel, type /cancel",
            callback_text=f"💬 Starting chat with {driver.display_name}",
        )

    async def handle_hr_text(self, actor: Actor, session: Session, text: str) -> MessageResponse:
        data: HRMessageData = session.data
        driver = await self.drivers.get_by_id(data.target_driver_id)
        if driver is None:
            await self.store.delete(actor.user_id, SessionKind.HR_MESSAGE)
            return MessageResponse(DRIVER_NOT_FOUND_TEXT)

        try:
            await self.notifier.relay_hr_message(driver, text)
        except Exception:
            self.logger.exception(
                "HR message relay failed",
                extra_data={"driver_id": driver.id},
            )
            return MessageResponse(HR_SEND_ERROR_TEXT)

        # the message is out; from here the HR session ends whatever happens
        try:
            destination = Department.HR.chat_id or str(actor.chat_id)
            await self.store.create(
                driver.telegram_id,
                SessionKind.DRIVER_REPLY,
                1,
                DriverReplyData(
                    destination_chat_id=destination,
                    destination_label=Department.HR.label,
                    hr_user_id=actor.user_id,
                ),
            )
        except Exception:
            await self.db.rollback()
            self.logger.exception(
                "Driver reply session could not be opened",
                extra_data={"driver_id": driver.id},
            )
        finally:
            await self.store.delete(actor.user_id, SessionKind.HR_MESSAGE)

        self.logger.info(
            "HR message relayed",
            extra_data={"driver_id": driver.id, "hr_user_id": actor.user_id},
        )
        return MessageResponse(
            f"✅ Message sent to {driver.display_name}!\n\n"
            "The driver can now reply directly to you."
        )

    # ==================== Driver side ====================

    async def start_driver_message(self, actor: Actor, department: Department) -> MessageResponse:
        driver = await self.drivers.get_by_telegram_id(actor.user_id)
        if driver is None:
            return MessageResponse(NOT_REGISTERED_TEXT, callback_text=NOT_REGISTERED_TEXT)

        destination = department.chat_id
        if not destination:
            self.logger.warning(
                "Driver message channel not configured",
                extra_data={"department": department.value},
            )
            return MessageResponse(CHANNEL_UNAVAILABLE_TEXT, callback_text=CHANNEL_UNAVAILABLE_TEXT)

        await self.store.create(
            actor.user_id,
            SessionKind.DRIVER_REPLY,
            1,
            DriverReplyData(destination_chat_id=destination, destination_label=department.label),
        )
        return MessageResponse(
            f"💬 Message to {department.label}\n\n"
            f"Type your message below. {department.label} will receive it immediately.\n\n"
            "To cancel, type /cancel",
            callback_text=f"💬 Starting chat with {department.label}",
        )

    async def handle_driver_reply_text(
        self, actor: Actor, session: Session, text: str
    ) -> MessageResponse:
        data: DriverReplyData = session.data
        driver = await self.drivers.get_by_telegram_id(actor.user_id)
        if driver is None:
            raise InvalidSessionPayloadError(
                SessionKind.DRIVER_REPLY.value, "sender is not a registered driver"
            )

        try:
            await self.notifier.relay_driver_reply(data.destination_chat_id, driver, text)
        except Exception:
            self.logger.exception(
                "Driver reply relay failed",
                extra_data={"driver_id": driver.id},
            )
            return MessageResponse(DRIVER_SEND_ERROR_TEXT)

        await self.store.delete(actor.user_id, SessionKind.DRIVER_REPLY)
        self.logger.info(
            "Driver reply relayed",
            extra_data={"driver_id": driver.id, "hr_user_id": data.hr_user_id},
        )
        return MessageResponse(f"✅ Your reply has been sent to {data.destination_label}!")
