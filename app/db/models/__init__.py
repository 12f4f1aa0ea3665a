"""
Database Models
"""
from app.db.models.driver import Driver, DriverStatus
from app.db.models.driver_request import AdvancePaymentRequest, VacationRequest, RequestStatus
from app.db.models.user_session import UserSession
from app.db.models.webhook_event import WebhookEvent

__all__ = [
    "Driver",
    "DriverStatus",
    "AdvancePaymentRequest",
    "VacationRequest",
    "RequestStatus",
    "UserSession",
    "WebhookEvent",
]
