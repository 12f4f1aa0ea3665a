"""
Driver Model - onboarded truck drivers
"""
import enum
from datetime import datetime
from sqlalchemy import BigInteger, Boolean, Column, Date, DateTime, Enum as SQLEnum, Integer, String, Text

from app.db.database import Base


class DriverStatus(str, enum.Enum):
    PENDING = "pending"
    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"


STATUS_EMOJI = {
    DriverStatus.ACTIVE: "✅",
    DriverStatus.PENDING: "⏳",
    DriverStatus.INACTIVE: "❌",
    DriverStatus.SUSPENDED: "⚠️",
}


class Driver(Base):
    """A driver known to the bot, created by onboarding and reviewed by HR"""

    __tablename__ = "drivers"

    id = Column(Integer, primary_key=True, index=True)
    # Telegram user id; used only to address the driver's chat
    telegram_id = Column(BigInteger, unique=True, nullable=False, index=True)

    full_name = Column(String(100), nullable=True)
    phone_number = Column(String(30), nullable=True)
    cdl_number = Column(String(50), nullable=True)
    cdl_expiry_date = Column(Date, nullable=True)
    dot_medical_certificate = Column(String(100), nullable=True)
    dot_medical_expiry_date = Column(Date, nullable=True)

    driver_photo_url = Column(Text, nullable=True)
    cdl_photo_url = Column(Text, nullable=True)
    dot_medical_photo_url = Column(Text, nullable=True)

    status = Column(
        SQLEnum(
            DriverStatus,
            name="driver_status",
            values_callable=lambda x: [e.value for e in x]
        ),
        default=DriverStatus.PENDING,
        nullable=False,
        index=True
    )
    onboarding_completed = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def is_active(self) -> bool:
        return self.status == DriverStatus.ACTIVE

    @property
    def display_name(self) -> str:
        return self.full_name or f"Driver #{self.id}"

    @property
    def status_emoji(self) -> str:
        return STATUS_EMOJI.get(DriverStatus(self.status), "❓")

    @property
    def status_label(self) -> str:
        """e.g. "✅ ACTIVE" """
        return f"{self.status_emoji} {DriverStatus(self.status).value.upper()}"
