"""
Typed session payloads.

Each SessionKind has its own pydantic model. Payloads are encoded to JSON at
the persistence boundary and decoded (and validated) when a session is read.
"""
from datetime import date
from decimal import Decimal
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from app.core.exceptions import InvalidSessionPayloadError
from app.state_machine.states import DocumentType, SessionKind


class SessionPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")


class OnboardingData(SessionPayload):
    # set when onboarding resumes for an already known (incomplete) driver
    driver_id: Optional[int] = None
    full_name: Optional[str] = None
    phone_number: Optional[str] = None
    driver_photo_url: Optional[str] = None
    cdl_photo_url: Optional[str] = None
    cdl_expiry_date: Optional[date] = None
    dot_medical_photo_url: Optional[str] = None
    dot_medical_expiry_date: Optional[date] = None


class AdvanceRequestData(SessionPayload):
    amount: Optional[Decimal] = None
    reason: Optional[str] = None


class VacationRequestData(SessionPayload):
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    reason: Optional[str] = None


class HRMessageData(SessionPayload):
    """HR actor composing a message to one driver"""
    target_driver_id: int
    target_driver_name: Optional[str] = None


class DriverReplyData(SessionPayload):
    """Driver composing a message to a staff channel"""
    destination_chat_id: str = Field(min_length=1)
    destination_label: str = "HR"
    hr_user_id: Optional[int] = None


class ProfileUpdateData(SessionPayload):
    document: DocumentType


class ProfileUpdateDateData(SessionPayload):
    document: DocumentType


AnySessionPayload = Union[
    OnboardingData,
    AdvanceRequestData,
    VacationRequestData,
    HRMessageData,
    DriverReplyData,
    ProfileUpdateData,
    ProfileUpdateDateData,
]

SESSION_PAYLOADS: dict[SessionKind, type[SessionPayload]] = {
    SessionKind.ONBOARDING: OnboardingData,
    SessionKind.ADVANCE_REQUEST: AdvanceRequestData,
    SessionKind.VACATION_REQUEST: VacationRequestData,
    SessionKind.HR_MESSAGE: HRMessageData,
    SessionKind.DRIVER_REPLY: DriverReplyData,
    SessionKind.PROFILE_UPDATE: ProfileUpdateData,
    SessionKind.PROFILE_UPDATE_DATE: ProfileUpdateDateData,
}


def encode_payload(kind: SessionKind, payload: Optional[SessionPayload]) -> dict[str, Any]:
    """Payload -> JSON-safe dict for the ``data`` column"""
    model = SESSION_PAYLOADS[kind]
    if payload is None:
        try:
            payload = model.model_validate({})
        except ValidationError as e:
            raise InvalidSessionPayloadError(kind.value, "payload is required for this kind") from e
    elif not isinstance(payload, model):
        raise InvalidSessionPayloadError(
            kind.value, f"expected {model.__name__}, got {type(payload).__name__}"
        )
    return payload.model_dump(mode="json", exclude_none=True)


def decode_payload(kind: SessionKind, raw: Any) -> SessionPayload:
    """Stored dict -> typed payload for ``kind``

    Raises:
        InvalidSessionPayloadError: the stored data does not fit the kind's model.
    """
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise InvalidSessionPayloadError(kind.value, "payload is not an object")
    try:
        return SESSION_PAYLOADS[kind].model_validate(raw)
    except ValidationError as e:
        raise InvalidSessionPayloadError(kind.value, str(e.errors()[0]["msg"])) from e
