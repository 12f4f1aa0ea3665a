"""
Onboarding Handler - the seven step driver registration conversation.

1 full name, 2 phone number, 3 selfie photo, 4 CDL photo, 5 CDL expiry date,
6 DOT medical certificate photo, 7 DOT medical expiry date. The last step
persists the driver, notifies HR and ends the session.
"""
from typing import Optional

from app.core.config import settings
from app.core.validation import (
    DateValidationResult,
    DateValidator,
    NameValidator,
    PhoneNumberValidator,
    TextSanitizer,
)
from app.db.models.driver import Driver, DriverStatus
from app.state_machine.handlers import (
    DATE_FORMAT_TEXT,
    SESSION_EXPIRED_TEXT,
    Actor,
    ConversationHandler,
    InboundPhoto,
    MessageResponse,
    main_menu,
)
from app.state_machine.manager import Session
from app.state_machine.payloads import OnboardingData
from app.state_machine.states import OnboardingStep, SessionKind

WELCOME_TEXT = (
    "🚛 Welcome to Driver Onboarding!\n\n"
    "I'll help you complete your registration. Let's start with your basic information.\n\n"
    "Please send me your full name (First Name Last Name):"
)

STEP_PROMPTS = {
    OnboardingStep.FULL_NAME: "Please send me your full name (First Name Last Name):",
    OnboardingStep.PHONE_NUMBER: "📱 Please send me your phone number:",
    OnboardingStep.DRIVER_PHOTO: "📸 Please send me a clear photo of yourself for identification purposes:",
    OnboardingStep.CDL_PHOTO: "Now please send me a photo of your CDL (Commercial Driver License):",
    OnboardingStep.CDL_EXPIRY: "📅 Please send me your CDL expiry date (YYYY-MM-DD format):",
    OnboardingStep.DOT_MEDICAL_PHOTO: "Now please send me a photo of your DOT Medical Certificate:",
    OnboardingStep.DOT_MEDICAL_EXPIRY: "📅 Please send me your DOT Medical Certificate expiry date (YYYY-MM-DD format):",
}

PHOTO_STEPS = frozenset({
    OnboardingStep.DRIVER_PHOTO,
    OnboardingStep.CDL_PHOTO,
    OnboardingStep.DOT_MEDICAL_PHOTO,
})

# step -> (payload field, storage document type, confirmation)
_PHOTO_TARGETS = {
    OnboardingStep.DRIVER_PHOTO: ("driver_photo_url", "photo", "✅ Driver photo uploaded successfully!"),
    OnboardingStep.CDL_PHOTO: ("cdl_photo_url", "cdl", "✅ CDL photo uploaded successfully!"),
    OnboardingStep.DOT_MEDICAL_PHOTO: (
        "dot_medical_photo_url",
        "dot_medical",
        "✅ DOT Medical Certificate photo uploaded successfully!",
    ),
}

INVALID_NAME_TEXT = "❌ Please enter your full name (First Name Last Name):"
INVALID_PHONE_TEXT = (
    "❌ Please enter a valid phone number "
    "(digits, spaces, dashes and an optional leading +):"
)
CDL_EXPIRED_TEXT = "❌ This CDL has expired. Please provide a valid, non-expired CDL:"
DOT_EXPIRED_TEXT = (
    "❌ This DOT Medical Certificate has expired. "
    "Please provide a valid, non-expired certificate:"
)
WRONG_STEP_TEXT = "Please follow the onboarding process step by step."
UNEXPECTED_PHOTO_TEXT = "Please send a photo when requested during the onboarding process."
DOCUMENT_REFUSED_TEXT = (
    "📸 Please send photos instead of documents. "
    "You can take a photo of your document using your camera."
)
UPLOAD_ERROR_TEXT = "❌ Error uploading photo. Please try again."
COLLECTED_TEXT = "✅ All information collected! Processing your application..."
COMPLETION_ERROR_TEXT = "❌ Error completing onboarding. Please contact support."
COMPLETED_TEXT = (
    "🎉 Onboarding completed successfully!\n\n"
    "Your application has been submitted and is under review by our HR team.\n"
    "You will be notified once your status is updated.\n\n"
    "Use /help to see available commands."
)


class OnboardingHandler(ConversationHandler):
    """Registers a new driver, or completes the profile of a known one"""

    async def start(self, actor: Actor) -> MessageResponse:
        """
        /start for a driver chat.

        A completed driver gets the main menu; a known but incomplete driver
        restarts onboarding bound to their record; anyone else starts fresh.
        """
        driver = await self.drivers.get_by_telegram_id(actor.user_id)
        if driver is not None and driver.onboarding_completed:
            return main_menu(driver)

        data = OnboardingData(driver_id=driver.id if driver is not None else None)
        await self.store.create(actor.user_id, SessionKind.ONBOARDING, OnboardingStep.FULL_NAME, data)
        self.logger.info(
            "Onboarding started",
            extra_data={"telegram_id": actor.user_id, "resumed": driver is not None},
        )
        return MessageResponse(WELCOME_TEXT)

    async def handle_text(self, actor: Actor, session: Session, text: str) -> MessageResponse:
        handlers = {
            OnboardingStep.FULL_NAME: self._handle_full_name,
            OnboardingStep.PHONE_NUMBER: self._handle_phone_number,
            OnboardingStep.CDL_EXPIRY: self._handle_cdl_expiry,
            OnboardingStep.DOT_MEDICAL_EXPIRY: self._handle_dot_medical_expiry,
        }
        handler = handlers.get(session.step)
        if handler is None:
            if session.step in PHOTO_STEPS:
                return MessageResponse(STEP_PROMPTS[OnboardingStep(session.step)])
            return MessageResponse(WRONG_STEP_TEXT)
        return await handler(actor, session, text.strip())

    async def _advance(
        self,
        actor: Actor,
        data: OnboardingData,
        step: OnboardingStep,
    ) -> bool:
        """False when the session expired or was removed since it was read"""
        session = await self.store.update(actor.user_id, SessionKind.ONBOARDING, step, data)
        return session is not None

    async def _handle_full_name(self, actor: Actor, session: Session, text: str) -> MessageResponse:
        valid, _ = NameValidator.validate(text)
        if not valid:
            return MessageResponse(INVALID_NAME_TEXT)

        data = session.data.model_copy(update={"full_name": TextSanitizer.sanitize(text, 100)})
        if not await self._advance(actor, data, OnboardingStep.PHONE_NUMBER):
            return MessageResponse(SESSION_EXPIRED_TEXT)
        return MessageResponse(STEP_PROMPTS[OnboardingStep.PHONE_NUMBER])

    async def _handle_phone_number(self, actor: Actor, session: Session, text: str) -> MessageResponse:
        if not PhoneNumberValidator.validate(text):
            return MessageResponse(INVALID_PHONE_TEXT)

        self.logger.debug(
            "Onboarding phone collected",
            extra_data={"telegram_id": actor.user_id, "phone": PhoneNumberValidator.mask(text)},
        )
        data = session.data.model_copy(update={"phone_number": text})
        if not await self._advance(actor, data, OnboardingStep.DRIVER_PHOTO):
            return MessageResponse(SESSION_EXPIRED_TEXT)
        return MessageResponse(STEP_PROMPTS[OnboardingStep.DRIVER_PHOTO])

    async def _handle_cdl_expiry(self, actor: Actor, session: Session, text: str) -> MessageResponse:
        result = DateValidator.validate(text)
        if result is DateValidationResult.INVALID_FORMAT:
            return MessageResponse(DATE_FORMAT_TEXT)
        if result is DateValidationResult.EXPIRED:
            return MessageResponse(CDL_EXPIRED_TEXT)

        data = session.data.model_copy(update={"cdl_expiry_date": DateValidator.parse(text)})
        if not await self._advance(actor, data, OnboardingStep.DOT_MEDICAL_PHOTO):
            return MessageResponse(SESSION_EXPIRED_TEXT)
        return MessageResponse(STEP_PROMPTS[OnboardingStep.DOT_MEDICAL_PHOTO])

    async def _handle_dot_medical_expiry(
        self, actor: Actor, session: Session, text: str
    ) -> MessageResponse:
        result = DateValidator.validate(text)
        if result is DateValidationResult.INVALID_FORMAT:
            return MessageResponse(DATE_FORMAT_TEXT)
        if result is DateValidationResult.EXPIRED:
            return MessageResponse(DOT_EXPIRED_TEXT)

        data = session.data.model_copy(
            update={"dot_medical_expiry_date": DateValidator.parse(text)}
        )
        await self.send(actor, MessageResponse(COLLECTED_TEXT))
        return await self._complete(actor, data)

    async def handle_photo(
        self, actor: Actor, session: Session, photo: InboundPhoto
    ) -> MessageResponse:
        target = _PHOTO_TARGETS.get(session.step)
        if target is None:
            return MessageResponse(UNEXPECTED_PHOTO_TEXT)
        field, document_type, confirmation = target

        data: OnboardingData = session.data
        try:
            content, file_name = await self.download_photo(photo)
            url = await self.storage.upload_driver_document(
                content,
                data.driver_id or "applicant",
                document_type,
                file_name,
            )
        except Exception:
            self.logger.exception(
                "Onboarding photo upload failed",
                extra_data={"telegram_id": actor.user_id, "step": session.step},
            )
            return MessageResponse(UPLOAD_ERROR_TEXT)

        next_step = OnboardingStep(session.step + 1)
        if not await self._advance(actor, data.model_copy(update={field: url}), next_step):
            return MessageResponse(SESSION_EXPIRED_TEXT)
        return MessageResponse(f"{confirmation}\n\n{STEP_PROMPTS[next_step]}")

    async def _persist_driver(self, actor: Actor, data: OnboardingData) -> Driver:
        fields = {
            "full_name": data.full_name,
            "phone_number": data.phone_number,
            "driver_photo_url": data.driver_photo_url,
            "cdl_photo_url": data.cdl_photo_url,
            "cdl_expiry_date": data.cdl_expiry_date,
            "dot_medical_photo_url": data.dot_medical_photo_url,
            "dot_medical_expiry_date": data.dot_medical_expiry_date,
            "onboarding_completed": True,
            "status": DriverStatus.PENDING,
        }

        driver: Optional[Driver] = None
        if data.driver_id is not None:
            driver = await self.drivers.update_driver(data.driver_id, **fields)
        if driver is None:
            existing = await self.drivers.get_by_telegram_id(actor.user_id)
            if existing is not None:
                driver = await self.drivers.update_driver(existing.id, **fields)
        if driver is None:
            driver = await self.drivers.create_driver(actor.user_id, **fields)
        return driver

    async def _complete(self, actor: Actor, data: OnboardingData) -> MessageResponse:
        try:
            driver = await self._persist_driver(actor, data)
        except Exception:
            await self.db.rollback()
            self.logger.exception(
                "Onboarding completion failed",
                extra_data={"telegram_id": actor.user_id},
            )
            return MessageResponse(COMPLETION_ERROR_TEXT)

        await self.store.delete(actor.user_id, SessionKind.ONBOARDING)
        self.logger.info(
            "Onboarding completed",
            extra_data={"telegram_id": actor.user_id, "driver_id": driver.id},
        )

        try:
            await self.notifier.notify_new_applicant(driver)
        except Exception:
            self.logger.exception(
                "New applicant notice failed",
                extra_data={"driver_id": driver.id},
            )

        if settings.DOCUMENT_ANALYSIS_ENABLED:
            self._enqueue_analysis(driver.id)

        return MessageResponse(COMPLETED_TEXT)

    def _enqueue_analysis(self, driver_id: int) -> None:
        from app.workers.tasks import analyze_driver_documents

        try:
            analyze_driver_documents.delay(driver_id)
        except Exception:
            self.logger.exception(
                "Could not enqueue document analysis",
                extra_data={"driver_id": driver_id},
            )
