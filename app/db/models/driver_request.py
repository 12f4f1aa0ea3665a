"""
Driver Request Models - advance payment and vacation requests
"""
import enum
from datetime import datetime
from sqlalchemy import Column, Date, DateTime, Enum as SQLEnum, ForeignKey, Integer, Numeric, Text
from sqlalchemy.orm import relationship

from app.db.database import Base


class RequestStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


def _status_column():
    return Column(
        SQLEnum(
            RequestStatus,
            name="request_status",
            values_callable=lambda x: [e.value for e in x]
        ),
        default=RequestStatus.PENDING,
        nullable=False,
        index=True
    )


class AdvancePaymentRequest(Base):
    """Advance on pay requested by an active driver"""

    __tablename__ = "advance_payment_requests"

    id = Column(Integer, primary_key=True, index=True)
    driver_id = Column(Integer, ForeignKey("drivers.id"), nullable=False, index=True)
    amount = Column(Numeric(10, 2), nullable=False)
    reason = Column(Text, nullable=False)
    status = _status_column()

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    driver = relationship("Driver", lazy="joined")


class VacationRequest(Base):
    """Vacation date range requested by an active driver"""

    __tablename__ = "vacation_requests"

    id = Column(Integer, primary_key=True, index=True)
    driver_id = Column(Integer, ForeignKey("drivers.id"), nullable=False, index=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    reason = Column(Text, nullable=False)
    status = _status_column()

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    driver = relationship("Driver", lazy="joined")
