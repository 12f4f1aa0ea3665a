"""
Driver API Routes (read-only staff view)
"""
from datetime import date, datetime
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies.admin_auth import require_admin_api_key
from app.core.exceptions import DriverNotFoundError
from app.db.database import get_db
from app.db.models.driver import DriverStatus
from app.domain.services.driver_service import DriverService

router = APIRouter(dependencies=[Depends(require_admin_api_key)])


class DriverResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    telegram_id: int
    full_name: Optional[str]
    phone_number: Optional[str]
    cdl_number: Optional[str]
    cdl_expiry_date: Optional[date]
    dot_medical_certificate: Optional[str]
    dot_medical_expiry_date: Optional[date]
    driver_photo_url: Optional[str]
    cdl_photo_url: Optional[str]
    dot_medical_photo_url: Optional[str]
    status: DriverStatus
    onboarding_completed: bool
    created_at: datetime
    updated_at: Optional[datetime]


@router.get(
    "",
    response_model=List[DriverResponse],
    summary="List drivers",
    description="All drivers, newest first.",
)
async def list_drivers(db: AsyncSession = Depends(get_db)):
    return await DriverService(db).list_drivers()


@router.get(
    "/{driver_id}",
    response_model=DriverResponse,
    summary="Get a driver by id",
    responses={200: {"description": "Driver found"}, 404: {"description": "Driver not found"}},
)
async def get_driver(driver_id: int, db: AsyncSession = Depends(get_db)):
    driver = await DriverService(db).get_by_id(driver_id)
    if driver is None:
        raise DriverNotFoundError(driver_id)
    return driver
