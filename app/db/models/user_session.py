"""
User Session Model - multi-step conversation state
"""
from datetime import datetime
from sqlalchemy import BigInteger, Column, DateTime, Index, Integer, JSON, String

from app.db.database import Base


class UserSession(Base):
    """
    One row per started conversation.

    Rows are keyed by (telegram_id, session_type); readers only ever see the
    newest row whose expires_at is still in the future.
    """

    __tablename__ = "user_sessions"

    id = Column(Integer, primary_key=True, index=True)
    telegram_id = Column(BigInteger, nullable=False)
    session_type = Column(String(50), nullable=False)

    step = Column(Integer, nullable=False, default=1)
    data = Column(JSON, nullable=False, default=dict)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    expires_at = Column(DateTime, nullable=False, index=True)

    __table_args__ = (
        Index("ix_user_sessions_user_type", "telegram_id", "session_type"),
    )
