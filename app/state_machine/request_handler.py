"""
Request Handler - advance payment and vacation request conversations.

Only active drivers may start one. Advance: amount, then reason. Vacation:
start date, end date, then reason. The last step stores a pending request and
notifies HR.
"""
from typing import Optional

from app.core.validation import (
    AmountValidator,
    DateValidationResult,
    DateValidator,
    ReasonValidator,
    TextSanitizer,
)
from app.db.models.driver import Driver
from app.domain.services.request_service import PendingRequests, RequestService
from app.state_machine.handlers import (
    DATE_FORMAT_TEXT,
    SESSION_EXPIRED_TEXT,
    Actor,
    ConversationHandler,
    MessageResponse,
)
from app.state_machine.manager import Session
from app.state_machine.payloads import AdvanceRequestData, VacationRequestData
from app.state_machine.states import AdvanceRequestStep, SessionKind, VacationRequestStep

NOT_ELIGIBLE_TEXT = "❌ You are not registered or not active. Please contact HR."
ADVANCE_START_TEXT = "💰 Advance Payment Request\n\nPlease enter the amount you need:"
VACATION_START_TEXT = "🏖️ Vacation Request\n\nPlease enter your vacation start date (YYYY-MM-DD):"
REASON_PROMPT_TEXT = "📝 Please briefly describe the reason for your request:"
END_DATE_PROMPT_TEXT = "📅 Please enter your vacation end date (YYYY-MM-DD):"
START_DATE_PAST_TEXT = "❌ The start date cannot be in the past. Please enter a future date:"
END_BEFORE_START_TEXT = "❌ The end date must be after the start date. Please enter the end date:"
REQUEST_ERROR_TEXT = "❌ Error submitting your request. Please try again."


class RequestHandler(ConversationHandler):
    """Advance payment and vacation requests from active drivers"""

    @property
    def requests(self) -> RequestService:
        return RequestService(self.db)

    async def _eligible_driver(self, actor: Actor) -> Optional[Driver]:
        driver = await self.drivers.get_by_telegram_id(actor.user_id)
        if driver is None or not driver.is_active:
            self.logger.info(
                "Request refused for ineligible driver",
                extra_data={
                    "telegram_id": actor.user_id,
                    "registered": driver is not None,
                },
            )
            return None
        return driver

    async def start_advance(self, actor: Actor) -> MessageResponse:
        if await self._eligible_driver(actor) is None:
            return MessageResponse(NOT_ELIGIBLE_TEXT)
        await self.store.create(
            actor.user_id,
            SessionKind.ADVANCE_REQUEST,
            AdvanceRequestStep.AMOUNT,
            AdvanceRequestData(),
        )
        return MessageResponse(ADVANCE_START_TEXT, callback_text="💰 Advance Payment Request")

    async def start_vacation(self, actor: Actor) -> MessageResponse:
        if await self._eligible_driver(actor) is None:
            return MessageResponse(NOT_ELIGIBLE_TEXT)
        await self.store.create(
            actor.user_id,
            SessionKind.VACATION_REQUEST,
            VacationRequestStep.START_DATE,
            VacationRequestData(),
        )
        return MessageResponse(VACATION_START_TEXT, callback_text="🏖️ Vacation Request")

    # ==================== Advance payment ====================

    async def handle_advance_text(self, actor: Actor, session: Session, text: str) -> MessageResponse:
        data: AdvanceRequestData = session.data

        if session.step == AdvanceRequestStep.AMOUNT:
            amount, error = AmountValidator.parse(text)
            if amount is None:
                return MessageResponse(f"❌ {error}. Please enter the amount you need:")
            updated = await self.store.update(
                actor.user_id,
                SessionKind.ADVANCE_REQUEST,
                AdvanceRequestStep.REASON,
                data.model_copy(update={"amount": amount}),
            )
            if updated is None:
                return MessageResponse(SESSION_EXPIRED_TEXT)
            return MessageResponse(REASON_PROMPT_TEXT)

        valid, error = ReasonValidator.validate(text)
        if not valid:
            return MessageResponse(f"❌ {error}. {REASON_PROMPT_TEXT}")

        driver = await self._eligible_driver(actor)
        if driver is None:
            await self.store.delete(actor.user_id, SessionKind.ADVANCE_REQUEST)
            return MessageResponse(NOT_ELIGIBLE_TEXT)

        try:
            request = await self.requests.create_advance_request(
                driver.id, data.amount, TextSanitizer.sanitize(text, ReasonValidator.MAX_LENGTH)
            )
        except Exception:
            await self.db.rollback()
            self.logger.exception(
                "Advance request could not be stored",
                extra_data={"driver_id": driver.id},
            )
            return MessageResponse(REQUEST_ERROR_TEXT)

        await self.store.delete(actor.user_id, SessionKind.ADVANCE_REQUEST)
        await self._notify(self.notifier.notify_advance_request, driver, request)
        return MessageResponse(
            "✅ Your advance payment request has been submitted!\n\n"
            f"Amount: ${request.amount}\n"
            "Status: PENDING\n\n"
            "HR will review it and get back to you."
        )

    # ==================== Vacation ====================

    async def handle_vacation_text(self, actor: Actor, session: Session, text: str) -> MessageResponse:
        data: VacationRequestData = session.data

        if session.step == VacationRequestStep.START_DATE:
            result = DateValidator.validate(text)
            if result is DateValidationResult.INVALID_FORMAT:
                return MessageResponse(DATE_FORMAT_TEXT)
            if result is DateValidationResult.EXPIRED:
                return MessageResponse(START_DATE_PAST_TEXT)
            updated = await self.store.update(
                actor.user_id,
                SessionKind.VACATION_REQUEST,
                VacationRequestStep.END_DATE,
                data.model_copy(update={"start_date": DateValidator.parse(text)}),
            )
            if updated is None:
                return MessageResponse(SESSION_EXPIRED_TEXT)
            return MessageResponse(END_DATE_PROMPT_TEXT)

        if session.step == VacationRequestStep.END_DATE:
            end_date = DateValidator.parse(text)
            if end_date is None:
                return MessageResponse(DATE_FORMAT_TEXT)
            if end_date <= data.start_date:
                return MessageResponse(END_BEFORE_START_TEXT)
            updated = await self.store.update(
                actor.user_id,
                SessionKind.VACATION_REQUEST,
                VacationRequestStep.REASON,
                data.model_copy(update={"end_date": end_date}),
            )
            if updated is None:
                return MessageResponse(SESSION_EXPIRED_TEXT)
            return MessageResponse(REASON_PROMPT_TEXT)

        valid, error = ReasonValidator.validate(text)
        if not valid:
            return MessageResponse(f"❌ {error}. {REASON_PROMPT_TEXT}")

        driver = await self._eligible_driver(actor)
        if driver is None:
            await self.store.delete(actor.user_id, SessionKind.VACATION_REQUEST)
            return MessageResponse(NOT_ELIGIBLE_TEXT)

        try:
            request = await self.requests.create_vacation_request(
                driver.id,
                data.start_date,
                data.end_date,
                TextSanitizer.sanitize(text, ReasonValidator.MAX_LENGTH),
            )
        except Exception:
            await self.db.rollback()
            self.logger.exception(
                "Vacation request could not be stored",
                extra_data={"driver_id": driver.id},
            )
            return MessageResponse(REQUEST_ERROR_TEXT)

        await self.store.delete(actor.user_id, SessionKind.VACATION_REQUEST)
        await self._notify(self.notifier.notify_vacation_request, driver, request)
        return MessageResponse(
            "✅ Your vacation request has been submitted!\n\n"
            f"From: {request.start_date}\n"
            f"To: {request.end_date}\n"
            "Status: PENDING\n\n"
            "HR will review it and get back to you."
        )

    async def _notify(self, send, driver: Driver, request) -> None:
        # the request is already stored; a lost notice only gets logged
        try:
            await send(driver, request)
        except Exception:
            self.logger.exception(
                "Request notice to HR failed",
                extra_data={"driver_id": driver.id, "request_id": request.id},
            )

    # ==================== Staff listing ====================

    async def pending_requests(self) -> MessageResponse:
        pending: PendingRequests = await self.requests.get_pending_requests()
        if pending.is_empty:
            return MessageResponse("📋 No pending requests.")

        lines = ["📋 Pending Requests", ""]
        if pending.advance_payments:
            lines.append("💰 Advance payments:")
            for request in pending.advance_payments:
                lines.append(
                    f"#{request.id} {request.driver.display_name} (ID {request.driver_id}): "
                    f"${request.amount} - {request.reason}"
                )
            lines.append("")
        if pending.vacations:
            lines.append("🏖️ Vacations:")
            for request in pending.vacations:
                lines.append(
                    f"#{request.id} {request.driver.display_name} (ID {request.driver_id}): "
                    f"{request.start_date} to {request.end_date} - {request.reason}"
                )
        return MessageResponse("\n".join(lines).rstrip())
