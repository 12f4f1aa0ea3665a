"""
HR Notification Service - messages that cross between drivers and staff.

Covers the new-applicant notice, approval/rejection notices, the HR <-> driver
relay messages, request notices and the document analysis summary.
"""
from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from app.core.config import settings
from app.core.logging import get_logger
from app.db.models.driver import Driver, DriverStatus
from app.domain.services.telegram.base_transport import BaseChatTransport, InlineButton

if TYPE_CHECKING:
    from app.db.models.driver_request import AdvancePaymentRequest, VacationRequest
    from app.domain.services.document_analysis_service import AnalysisResult


def _fmt(value) -> str:
    return "—" if value is None or value == "" else str(value)


def build_new_applicant_notice(driver: Driver) -> str:
    return (
        "🚛 New Driver Onboarding Request\n\n"
        f"👤 Driver: {_fmt(driver.full_name)}\n"
        f"📱 Phone: {_fmt(driver.phone_number)}\n"
        f"📅 CDL Expiry: {_fmt(driver.cdl_expiry_date)}\n"
        f"📅 DOT Medical Expiry: {_fmt(driver.dot_medical_expiry_date)}\n\n"
        f"📸 Driver Photo: {_fmt(driver.driver_photo_url)}\n"
        f"📄 CDL Photo: {_fmt(driver.cdl_photo_url)}\n"
        f"🏥 DOT Medical Photo: {_fmt(driver.dot_medical_photo_url)}\n\n"
        f"To approve: /approve {driver.id}\n"
        f"To reject: /reject {driver.id}\n"
        f"To message: /message {driver.id}"
    )


def build_decision_notice(driver: Driver, approved: bool) -> str:
    verb = "approved" if approved else "rejected"
    guidance = (
        "You can now use all bot features."
        if approved
        else "Please contact HR for more information."
    )
    return (
        f"🎉 Your driver application has been {verb}!\n\n"
        f"Status: {DriverStatus(driver.status).value.upper()}\n\n"
        f"{guidance}"
    )


def build_hr_relay(text: str) -> str:
    return (
        f"📨 Message from HR\n\n{text}\n\n"
        "To reply, just send a message here.\n"
        "To cancel reply mode, type /cancel"
    )


def build_driver_reply(driver: Driver, text: str) -> str:
    return f"💬 Reply from {driver.display_name}\n\n{text}"


class HRNotificationService:
    """Sends staff-facing and cross-party messages through a chat transport"""

    def __init__(
        self,
        transport: BaseChatTransport,
        hr_chat_id: Optional[str] = None,
        logger=None,
    ):
        self.transport = transport
        self.hr_chat_id = hr_chat_id if hr_chat_id is not None else settings.TELEGRAM_HR_GROUP_ID
        self._logger = logger or get_logger(__name__)

    async def _send_to_hr(self, text: str, inline_keyboard=None) -> bool:
        if not self.hr_chat_id:
            self._logger.warning("HR group not configured, notice dropped")
            return False
        await self.transport.send_text(self.hr_chat_id, text, inline_keyboard=inline_keyboard)
        return True

    async def notify_new_applicant(self, driver: Driver) -> bool:
        sent = await self._send_to_hr(build_new_applicant_notice(driver))
        if sent:
            self._logger.info("New applicant notice sent", extra_data={"driver_id": driver.id})
        return sent

    async def send_decision_notice(self, driver: Driver, approved: bool) -> None:
        await self.transport.send_text(driver.telegram_id, build_decision_notice(driver, approved))

    async def relay_hr_message(self, driver: Driver, text: str) -> None:
        await self.transport.send_text(driver.telegram_id, build_hr_relay(text))

    async def relay_driver_reply(self, destination_chat_id: str, driver: Driver, text: str) -> None:
        await self.transport.send_text(
            destination_chat_id,
            build_driver_reply(driver, text),
            inline_keyboard=[[
                InlineButton(f"Response {driver.display_name}", f"reply_driver_{driver.id}")
            ]],
        )

    async def notify_advance_request(self, driver: Driver, request: "AdvancePaymentRequest") -> bool:
        return await self._send_to_hr(
            "💰 New Advance Payment Request\n\n"
            f"👤 Driver: {driver.display_name} (ID {driver.id})\n"
            f"💵 Amount: ${request.amount}\n"
            f"📝 Reason: {request.reason}\n\n"
            f"Request #{request.id} is pending.",
            inline_keyboard=[[InlineButton(f"💬 Message {driver.display_name}", f"message_{driver.id}")]],
        )

    async def notify_vacation_request(self, driver: Driver, request: "VacationRequest") -> bool:
        return await self._send_to_hr(
            "🏖️ New Vacation Request\n\n"
            f"👤 Driver: {driver.display_name} (ID {driver.id})\n"
            f"📅 From: {request.start_date}\n"
            f"📅 To: {request.end_date}\n"
            f"📝 Reason: {request.reason}\n\n"
            f"Request #{request.id} is pending.",
            inline_keyboard=[[InlineButton(f"💬 Message {driver.display_name}", f"message_{driver.id}")]],
        )

    async def send_analysis_summary(
        self,
        driver: Driver,
        results: dict[str, "AnalysisResult"],
        issues: list[str],
    ) -> bool:
        lines = [f"🤖 Document check for {driver.display_name} (ID {driver.id})", ""]
        for document_type, result in results.items():
            verdict = "✅" if result.is_valid else "⚠️"
            lines.append(f"{verdict} {document_type}: confidence {result.confidence:.2f}")
            for suggestion in result.suggestions:
                lines.append(f"   • {suggestion}")
        if issues:
            lines.append("")
            lines.append("Missing information:")
            lines.extend(f"   • {issue}" for issue in issues)
        return await self._send_to_hr("\n".join(lines))
