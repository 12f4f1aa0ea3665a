"""
Profile Handler - replacing a driver license or medical card.

A photo for the chosen document replaces the stored one, then a follow-up
session collects the new expiry date.
"""
from app.core.validation import DateValidationResult, DateValidator
from app.state_machine.handlers import (
    DATE_FORMAT_TEXT,
    NOT_REGISTERED_TEXT,
    PROFILE_KEYBOARD,
    Actor,
    ConversationHandler,
    InboundPhoto,
    MessageResponse,
)
from app.state_machine.manager import Session
from app.state_machine.payloads import ProfileUpdateData, ProfileUpdateDateData
from app.state_machine.states import DocumentType, SessionKind

# document -> (photo column, expiry column, storage document type)
_DOCUMENT_FIELDS = {
    DocumentType.DRIVER_LICENSE: ("cdl_photo_url", "cdl_expiry_date", "cdl"),
    DocumentType.MEDICAL_CARD: ("dot_medical_photo_url", "dot_medical_expiry_date", "dot_medical"),
}

PAST_DATE_TEXT = "❌ This date is in the past. Please provide a valid, non-expired date:"
UPDATE_ERROR_TEXT = "❌ Error updating your document. Please try again."


class ProfileUpdateHandler(ConversationHandler):

    async def show_menu(self, actor: Actor) -> MessageResponse:
        return MessageResponse("What would you like to update?", keyboard=PROFILE_KEYBOARD)

    async def start(self, actor: Actor, document: DocumentType) -> MessageResponse:
        driver = await self.drivers.get_by_telegram_id(actor.user_id)
        if driver is None:
            return MessageResponse(NOT_REGISTERED_TEXT)

        await self.store.delete(actor.user_id, SessionKind.PROFILE_UPDATE_DATE)
        await self.store.create(
            actor.user_id,
            SessionKind.PROFILE_UPDATE,
            1,
            ProfileUpdateData(document=document),
        )
        return MessageResponse(
            f"Please send a new photo of your {document.label} or type /cancel to abort."
        )

    async def handle_photo(
        self, actor: Actor, session: Session, photo: InboundPhoto
    ) -> MessageResponse:
        document = session.data.document
        photo_field, _, document_type = _DOCUMENT_FIELDS[document]

        driver = await self.drivers.get_by_telegram_id(actor.user_id)
        if driver is None:
            await self.store.delete(actor.user_id, SessionKind.PROFILE_UPDATE)
            return MessageResponse(NOT_REGISTERED_TEXT)

        try:
            content, file_name = await self.download_photo(photo)
            url = await self.storage.upload_driver_document(
                content, driver.id, document_type, file_name
            )
            await self.drivers.update_driver(driver.id, **{photo_field: url})
        except Exception:
            await self.db.rollback()
            self.logger.exception(
                "Profile document upload failed",
                extra_data={"driver_id": driver.id, "document": document.value},
            )
            return MessageResponse(UPDATE_ERROR_TEXT)

        await self.store.create(
            actor.user_id,
            SessionKind.PROFILE_UPDATE_DATE,
            1,
            ProfileUpdateDateData(document=document),
        )
        await self.store.delete(actor.user_id, SessionKind.PROFILE_UPDATE)
        self.logger.info(
            "Profile document replaced",
            extra_data={"driver_id": driver.id, "document": document.value},
        )
        return MessageResponse(
            f"✅ Your {document.label} has been updated! "
            "Please enter the new expiration date (YYYY-MM-DD):"
        )

    async def handle_date_text(self, actor: Actor, session: Session, text: str) -> MessageResponse:
        document = session.data.document
        _, expiry_field, _ = _DOCUMENT_FIELDS[document]

        result = DateValidator.validate(text)
        if result is DateValidationResult.INVALID_FORMAT:
            return MessageResponse(DATE_FORMAT_TEXT)
        if result is DateValidationResult.EXPIRED:
            return MessageResponse(PAST_DATE_TEXT)

        driver = await self.drivers.get_by_telegram_id(actor.user_id)
        if driver is None:
            await self.store.delete(actor.user_id, SessionKind.PROFILE_UPDATE_DATE)
            return MessageResponse(NOT_REGISTERED_TEXT)

        try:
            await self.drivers.update_driver(driver.id, **{expiry_field: DateValidator.parse(text)})
        except Exception:
            await self.db.rollback()
            self.logger.exception(
                "Profile expiry update failed",
                extra_data={"driver_id": driver.id, "document": document.value},
            )
            return MessageResponse(UPDATE_ERROR_TEXT)

        await self.store.delete(actor.user_id, SessionKind.PROFILE_UPDATE_DATE)
        return MessageResponse(f"✅ Your {document.label} expiration date has been updated!")
