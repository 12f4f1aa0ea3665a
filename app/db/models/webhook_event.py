"""
Webhook Event Model - idempotency table for inbound Telegram updates.

Each update is recorded under its update_id. Only a completed row blocks a
redelivery; a failed row, or one left processing for more than two minutes,
lets the transport retry it.
"""
from datetime import datetime, timezone

from sqlalchemy import Column, String, DateTime, Index

from app.db.database import Base


class WebhookEventStatus:
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class WebhookEvent(Base):
    __tablename__ = "webhook_events"

    event_id = Column(String(200), primary_key=True)
    source = Column(String(20), nullable=False, default="telegram")
    status = Column(String(20), nullable=False, default=WebhookEventStatus.PROCESSING)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        Index("ix_webhook_events_status_created", "status", "created_at"),
    )
