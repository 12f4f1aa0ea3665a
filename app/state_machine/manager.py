"""
Session Store - persistence of multi-step conversation state.

Sessions are scoped to one Telegram user and one SessionKind. Reads only see
rows whose expiry is still in the future; expired rows are invisible until the
periodic cleanup removes them.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Iterable, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import DuplicateActiveSessionError, ErrorCode, StateMachineException
from app.core.logging import get_logger
from app.db.models.user_session import UserSession
from app.state_machine.payloads import SessionPayload, decode_payload, encode_payload
from app.state_machine.states import SessionKind


@dataclass
class Session:
    """A live conversation as seen by the handlers"""

    telegram_id: int
    kind: SessionKind
    step: int
    data: SessionPayload
    created_at: datetime
    updated_at: datetime
    expires_at: datetime


class SessionStore:
    """CRUD over user_sessions with expiry and per-kind payload decoding"""

    def __init__(
        self,
        db: AsyncSession,
        ttl: Optional[timedelta] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
        logger=None,
    ):
        self.db = db
        self.ttl = ttl or timedelta(hours=settings.SESSION_TTL_HOURS)
        self._clock = clock
        self._logger = logger or get_logger(__name__)

    def _live_rows(self, telegram_id: int, kind: SessionKind, now: datetime):
        return (
            select(UserSession)
            .where(
                UserSession.telegram_id == telegram_id,
                UserSession.session_type == kind.value,
                UserSession.expires_at > now,
            )
            .order_by(UserSession.created_at.desc(), UserSession.id.desc())
        )

    async def _get_row(self, telegram_id: int, kind: SessionKind) -> Optional[UserSession]:
        result = await self.db.execute(
            self._live_rows(telegram_id, kind, self._clock()).limit(1)
        )
        return result.scalar_one_or_none()

    @staticmethod
    def _to_session(row: UserSession, kind: SessionKind) -> Session:
        return Session(
            telegram_id=row.telegram_id,
            kind=kind,
            step=row.step,
            data=decode_payload(kind, row.data),
            created_at=row.created_at,
            updated_at=row.updated_at,
            expires_at=row.expires_at,
        )

    async def create(
        self,
        telegram_id: int,
        kind: SessionKind,
        step: int = 1,
        data: Optional[SessionPayload] = None,
        *,
        replace: bool = True,
    ) -> Session:
        """
        Start a conversation.

        With ``replace`` (the default) any existing rows for the pair are removed
        first. Without it a live session makes the call fail.

        Raises:
            DuplicateActiveSessionError: ``replace=False`` and a live session exists.
        """
        if step < 1:
            raise StateMachineException(
                f"Session step must be positive, got {step}",
                error_code=ErrorCode.INVALID_STATE,
                details={"kind": kind.value, "step": step},
            )
        encoded = encode_payload(kind, data)

        if not replace and await self._get_row(telegram_id, kind) is not None:
            raise DuplicateActiveSessionError(telegram_id, kind.value)

        await self.db.execute(
            delete(UserSession).where(
                UserSession.telegram_id == telegram_id,
                UserSession.session_type == kind.value,
            )
        )

        now = self._clock()
        row = UserSession(
            telegram_id=telegram_id,
            session_type=kind.value,
            step=step,
            data=encoded,
            created_at=now,
            updated_at=now,
            expires_at=now + self.ttl,
        )
        self.db.add(row)
        session = self._to_session(row, kind)
        await self.db.commit()

        self._logger.debug(
            "Session created",
            extra_data={"telegram_id": telegram_id, "kind": kind.value, "step": step},
        )
        return session

    async def get(self, telegram_id: int, kind: SessionKind) -> Optional[Session]:
        """
        Newest live session for the pair, or None.

        Raises:
            InvalidSessionPayloadError: the stored payload does not decode.
        """
        row = await self._get_row(telegram_id, kind)
        if row is None:
            return None
        return self._to_session(row, kind)

    async def first_live(
        self, telegram_id: int, kinds: Iterable[SessionKind]
    ) -> Optional[Session]:
        """First live session following the order of ``kinds``"""
        for kind in kinds:
            session = await self.get(telegram_id, kind)
            if session is not None:
                return session
        return None

    async def update(
        self,
        telegram_id: int,
        kind: SessionKind,
        step: int,
        data: SessionPayload,
    ) -> Optional[Session]:
        """
        Replace step and payload of the live session.

        Returns None when there is no live session; the caller must check.
        Steps never move backwards within one conversation.
        """
        row = await self._get_row(telegram_id, kind)
        if row is None:
            self._logger.info(
                "Session update skipped, no live session",
                extra_data={"telegram_id": telegram_id, "kind": kind.value},
            )
            return None

        if step < row.step:
            raise StateMachineException(
                f"Session step cannot go back from {row.step} to {step}",
                error_code=ErrorCode.INVALID_STATE,
                details={"kind": kind.value, "current_step": row.step, "step": step},
            )

        row.step = step
        # new dict so the JSON column is flagged dirty
        row.data = dict(encode_payload(kind, data))
        row.updated_at = self._clock()
        session = self._to_session(row, kind)
        await self.db.commit()
        return session

    async def delete(self, telegram_id: int, kind: SessionKind) -> int:
        """Remove every row for the pair; returns how many were removed"""
        result = await self.db.execute(
            delete(UserSession).where(
                UserSession.telegram_id == telegram_id,
                UserSession.session_type == kind.value,
            )
        )
        await self.db.commit()
        return result.rowcount or 0

    async def cleanup_expired(self) -> int:
        """Physically delete expired rows"""
        result = await self.db.execute(
            delete(UserSession).where(UserSession.expires_at <= self._clock())
        )
        await self.db.commit()
        deleted = result.rowcount or 0
        if deleted:
            self._logger.info("Expired sessions removed", extra_data={"deleted": deleted})
        return deleted
