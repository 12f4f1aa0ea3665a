"""
Domain Services
"""
from app.domain.services.driver_service import DriverService
from app.domain.services.request_service import RequestService
from app.domain.services.driver_approval_service import DriverApprovalService
from app.domain.services.hr_notification_service import HRNotificationService

__all__ = [
    "DriverService",
    "RequestService",
    "DriverApprovalService",
    "HRNotificationService",
]
