"""
Conversation kinds, step numbers and dispatch priority.
"""
from enum import Enum, IntEnum


class SessionKind(str, Enum):
    """One live session per (user, kind) at a time"""

    ONBOARDING = "onboarding"
    ADVANCE_REQUEST = "advance_request"
    VACATION_REQUEST = "vacation_request"
    HR_MESSAGE = "hr_message"
    DRIVER_REPLY = "driver_reply"
    PROFILE_UPDATE = "profile_update"
    PROFILE_UPDATE_DATE = "profile_update_date"


class DocumentType(str, Enum):
    """Driver documents that can be replaced from the profile menu"""

    DRIVER_LICENSE = "driver_license"
    MEDICAL_CARD = "medical_card"

    @property
    def label(self) -> str:
        return "Driver License" if self is DocumentType.DRIVER_LICENSE else "Medical Card"


class OnboardingStep(IntEnum):
    FULL_NAME = 1
    PHONE_NUMBER = 2
    DRIVER_PHOTO = 3
    CDL_PHOTO = 4
    CDL_EXPIRY = 5
    DOT_MEDICAL_PHOTO = 6
    DOT_MEDICAL_EXPIRY = 7


class AdvanceRequestStep(IntEnum):
    AMOUNT = 1
    REASON = 2


class VacationRequestStep(IntEnum):
    START_DATE = 1
    END_DATE = 2
    REASON = 3


# Which live session owns an inbound text. Staff relay first, then the driver's
# relay, then onboarding, then the single-step and request conversations.
TEXT_DISPATCH_ORDER: tuple[SessionKind, ...] = (
    SessionKind.HR_MESSAGE,
    SessionKind.DRIVER_REPLY,
    SessionKind.ONBOARDING,
    SessionKind.PROFILE_UPDATE_DATE,
    SessionKind.ADVANCE_REQUEST,
    SessionKind.VACATION_REQUEST,
)

# Only these kinds accept photos; a photo with none of them live is ignored.
PHOTO_DISPATCH_ORDER: tuple[SessionKind, ...] = (
    SessionKind.ONBOARDING,
    SessionKind.PROFILE_UPDATE,
)

# /cancel checks kinds in dispatch order. Onboarding cannot be cancelled.
CANCEL_ORDER: tuple[SessionKind, ...] = (
    SessionKind.HR_MESSAGE,
    SessionKind.DRIVER_REPLY,
    SessionKind.PROFILE_UPDATE,
    SessionKind.PROFILE_UPDATE_DATE,
    SessionKind.ADVANCE_REQUEST,
    SessionKind.VACATION_REQUEST,
)
