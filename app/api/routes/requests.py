"""
Request API Routes - pending advance payment and vacation requests
"""
from datetime import date, datetime
from decimal import Decimal
from typing import List

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, field_serializer
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies.admin_auth import require_admin_api_key
from app.db.database import get_db
from app.db.models.driver_request import RequestStatus
from app.domain.services.request_service import RequestService

router = APIRouter(dependencies=[Depends(require_admin_api_key)])


class AdvancePaymentRequestResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    driver_id: int
    amount: Decimal
    reason: str
    status: RequestStatus
    created_at: datetime

    @field_serializer("amount")
    def serialize_amount(self, v: Decimal) -> str:
        return f"{v:.2f}"


class VacationRequestResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    driver_id: int
    start_date: date
    end_date: date
    reason: str
    status: RequestStatus
    created_at: datetime


class PendingRequestsResponse(BaseModel):
    advance_payments: List[AdvancePaymentRequestResponse]
    vacations: List[VacationRequestResponse]


@router.get(
    "/pending",
    response_model=PendingRequestsResponse,
    summary="Pending requests",
    description="Advance payment and vacation requests still waiting for HR, newest first.",
)
async def get_pending_requests(db: AsyncSession = Depends(get_db)):
    pending = await RequestService(db).get_pending_requests()
    return PendingRequestsResponse(
        advance_payments=[
            AdvancePaymentRequestResponse.model_validate(r) for r in pending.advance_payments
        ],
        vacations=[VacationRequestResponse.model_validate(r) for r in pending.vacations],
    )
