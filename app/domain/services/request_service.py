"""
Request Service - advance payment and vacation requests
"""
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging import get_logger
from app.db.models.driver_request import AdvancePaymentRequest, RequestStatus, VacationRequest

logger = get_logger(__name__)


@dataclass
class PendingRequests:
    advance_payments: list[AdvancePaymentRequest] = field(default_factory=list)
    vacations: list[VacationRequest] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.advance_payments and not self.vacations


class RequestService:
    """Creation and listing only; deciding on requests is done outside the bot"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_advance_request(
        self, driver_id: int, amount: Decimal, reason: str
    ) -> AdvancePaymentRequest:
        request = AdvancePaymentRequest(
            driver_id=driver_id,
            amount=amount,
            reason=reason,
            status=RequestStatus.PENDING,
        )
        self.db.add(request)
        await self.db.commit()
        await self.db.refresh(request)
        logger.info(
            "Advance payment request created",
            extra_data={"request_id": request.id, "driver_id": driver_id, "amount": str(amount)},
        )
        return request

    async def create_vacation_request(
        self, driver_id: int, start_date: date, end_date: date, reason: str
    ) -> VacationRequest:
        if end_date <= start_date:
            raise ValueError("end_date must be after start_date")
        request = VacationRequest(
            driver_id=driver_id,
            start_date=start_date,
            end_date=end_date,
            reason=reason,
            status=RequestStatus.PENDING,
        )
        self.db.add(request)
        await self.db.commit()
        await self.db.refresh(request)
        logger.info(
            "Vacation request created",
            extra_data={"request_id": request.id, "driver_id": driver_id},
        )
        return request

    async def get_pending_requests(self) -> PendingRequests:
        advances = await self.db.execute(
            select(AdvancePaymentRequest)
            .where(AdvancePaymentRequest.status == RequestStatus.PENDING)
            .order_by(AdvancePaymentRequest.created_at.desc())
        )
        vacations = await self.db.execute(
            select(VacationRequest)
            .where(VacationRequest.status == RequestStatus.PENDING)
            .order_by(VacationRequest.created_at.desc())
        )
        return PendingRequests(
            advance_payments=list(advances.unique().scalars().all()),
            vacations=list(vacations.unique().scalars().all()),
        )
