"""
Driver Service - persistence operations on drivers
"""
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging import get_logger
from app.db.models.driver import Driver, DriverStatus

logger = get_logger(__name__)

# columns a caller may set through create/update
_WRITABLE_FIELDS = frozenset({
    "full_name",
    "phone_number",
    "cdl_number",
    "cdl_expiry_date",
    "dot_medical_certificate",
    "dot_medical_expiry_date",
    "driver_photo_url",
    "cdl_photo_url",
    "dot_medical_photo_url",
    "status",
    "onboarding_completed",
})


def _check_fields(fields: dict[str, Any]) -> None:
    unknown = set(fields) - _WRITABLE_FIELDS
    if unknown:
        raise ValueError(f"Unknown driver fields: {', '.join(sorted(unknown))}")


class DriverService:
    """Driver CRUD used by the conversations and the staff API"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_driver(self, telegram_id: int, **fields: Any) -> Driver:
        _check_fields(fields)
        driver = Driver(telegram_id=telegram_id, **fields)
        if driver.status is None:
            driver.status = DriverStatus.PENDING
        self.db.add(driver)
        await self.db.commit()
        await self.db.refresh(driver)

        logger.info(
            "Driver created",
            extra_data={"driver_id": driver.id, "onboarding_completed": driver.onboarding_completed},
        )
        return driver

    async def get_by_telegram_id(self, telegram_id: int) -> Optional[Driver]:
        result = await self.db.execute(
            select(Driver).where(Driver.telegram_id == telegram_id)
        )
        return result.scalar_one_or_none()

    async def get_by_id(self, driver_id: int) -> Optional[Driver]:
        result = await self.db.execute(select(Driver).where(Driver.id == driver_id))
        return result.scalar_one_or_none()

    async def list_drivers(self) -> list[Driver]:
        """All drivers, newest first"""
        result = await self.db.execute(
            select(Driver).order_by(Driver.created_at.desc(), Driver.id.desc())
        )
        return list(result.scalars().all())

    async def update_driver(self, driver_id: int, **fields: Any) -> Optional[Driver]:
        """Set only the given non-None fields; returns None for an unknown id"""
        _check_fields(fields)
        driver = await self.get_by_id(driver_id)
        if driver is None:
            return None

        changed = {name: value for name, value in fields.items() if value is not None}
        for name, value in changed.items():
            setattr(driver, name, value)
        await self.db.commit()
        await self.db.refresh(driver)

        logger.info(
            "Driver updated",
            extra_data={"driver_id": driver_id, "fields": sorted(changed)},
        )
        return driver

    async def update_status(self, driver_id: int, status: DriverStatus) -> Optional[Driver]:
        return await self.update_driver(driver_id, status=status)
