"""
Driver Approval Service - the one place where HR decisions change a driver.

Both the /approve, /reject commands and the inline Approve / Reject buttons go
through ``decide`` and ``notify_after_decision``.
"""
import enum
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging import get_logger
from app.db.models.driver import Driver, DriverStatus
from app.domain.services.driver_service import DriverService
from app.domain.services.hr_notification_service import HRNotificationService

logger = get_logger(__name__)


class ApprovalAction(str, enum.Enum):
    APPROVE = "approve"
    REJECT = "reject"

    @property
    def target_status(self) -> DriverStatus:
        return DriverStatus.ACTIVE if self is ApprovalAction.APPROVE else DriverStatus.INACTIVE

    @property
    def past_tense(self) -> str:
        return "approved" if self is ApprovalAction.APPROVE else "rejected"


@dataclass
class ApprovalResult:
    success: bool
    message: str
    driver: Optional[Driver] = None

    @property
    def callback_text(self) -> str:
        """Short form shown as the button acknowledgement"""
        first_line = self.message.split("\n", 1)[0]
        if self.success and first_line.endswith("."):
            return first_line[:-1] + "!"
        return first_line


class DriverApprovalService:

    @staticmethod
    async def decide(db: AsyncSession, driver_id: int, action: ApprovalAction) -> ApprovalResult:
        """Set the driver's status for ``action``; the HR-facing reply is in the result"""
        driver = await DriverService(db).update_status(driver_id, action.target_status)
        if driver is None:
            return ApprovalResult(False, "❌ Driver not found.")

        logger.info(
            f"Driver {action.past_tense}",
            extra_data={"driver_id": driver_id, "status": DriverStatus(driver.status).value},
        )
        return ApprovalResult(
            True,
            f"✅ Driver {action.past_tense} successfully.\n\n"
            f"Driver: {driver.display_name}\n"
            f"Status: {DriverStatus(driver.status).value}",
            driver,
        )

    @staticmethod
    async def notify_after_decision(
        driver: Driver,
        action: ApprovalAction,
        notifier: HRNotificationService,
    ) -> None:
        """Tell the driver about the decision in their own chat"""
        await notifier.send_decision_notice(driver, approved=action is ApprovalAction.APPROVE)
