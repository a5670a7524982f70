"""
Session Record Store - Persisted avatar sessions and their status transitions.

A session leaves 'active' exactly once. The transition is a conditional
UPDATE guarded by `status = 'active'`, so a voluntary terminate racing the
cleanup sweep resolves to a single winner at the database.
"""

from datetime import datetime, timedelta
from uuid import UUID, uuid4

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from app.db.models import AvatarSession
from app.exceptions import InputValidationError, WriteVerificationError
from app.models.api import SessionStatus
from app.models.domain import SessionData, StartSessionIntent

logger = get_logger(__name__)


class SessionStore:
    """CRUD and conditional transitions for the sessions table."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize store with database session."""
        self.session = session

    async def create(
        self,
        user_id: UUID,
        intent: StartSessionIntent,
        start_time: datetime,
        session_token: str,
        vendor_session_id: str,
        session_id: UUID | None = None,
    ) -> SessionData:
        """Insert an active session; end_time = start_time + duration."""
        record = AvatarSession(
            id=session_id or uuid4(),
            user_id=user_id,
            avatar_id=intent.avatar_id,
            voice_id=intent.voice_id,
            context_id=intent.context_id,
            duration_minutes=intent.duration_minutes,
            start_time=start_time,
            end_time=start_time + timedelta(minutes=intent.duration_minutes),
            session_token=session_token,
            vendor_session_id=vendor_session_id,
            status=SessionStatus.ACTIVE.value,
        )
        self.session.add(record)
        await self.session.flush()

        verified = await self.session.get(AvatarSession, record.id)
        if verified is None:
            raise WriteVerificationError(f"Session {record.id} not found after insert")

        return self._session_to_domain(verified)

    async def get(self, session_id: UUID) -> SessionData | None:
        """Fetch a session by id, bypassing the identity map."""
        stmt = (
            select(AvatarSession)
            .where(AvatarSession.id == session_id)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        record = result.scalar_one_or_none()
        return self._session_to_domain(record) if record else None

    async def get_for_user(self, session_id: UUID, user_id: UUID) -> SessionData | None:
        """Fetch a session only if `user_id` owns it."""
        stmt = select(AvatarSession).where(
            AvatarSession.id == session_id,
            AvatarSession.user_id == user_id,
        )
        result = await self.session.execute(stmt)
        record = result.scalar_one_or_none()
        return self._session_to_domain(record) if record else None

    async def list_expired(self, cutoff: datetime) -> list[SessionData]:
        """Active sessions whose end_time is strictly before `cutoff`."""
        stmt = (
            select(AvatarSession)
            .where(
                AvatarSession.status == SessionStatus.ACTIVE.value,
                AvatarSession.end_time < cutoff,
            )
            .order_by(AvatarSession.end_time)
        )
        result = await self.session.execute(stmt)
        return [self._session_to_domain(record) for record in result.scalars().all()]

    async def list_recent_for_user(self, user_id: UUID, limit: int = 20) -> list[SessionData]:
        """Most recent sessions of a user, newest first."""
        stmt = (
            select(AvatarSession)
            .where(AvatarSession.user_id == user_id)
            .order_by(AvatarSession.start_time.desc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return [self._session_to_domain(record) for record in result.scalars().all()]

    async def transition(
        self,
        session_id: UUID,
        status: SessionStatus,
        minutes_used: int,
        ended_at: datetime,
    ) -> bool:
        """
        Move an active session to a terminal status.

        Returns:
            True if this call performed the transition, False if the session
            was no longer active (another caller won).
        """
        if status == SessionStatus.ACTIVE:
            raise InputValidationError("Cannot transition a session back to active")

        stmt = (
            update(AvatarSession)
            .where(
                AvatarSession.id == session_id,
                AvatarSession.status == SessionStatus.ACTIVE.value,
            )
            .values(status=status.value, minutes_used=minutes_used, ended_at=ended_at)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        won = result.rowcount == 1

        logger.info(
            "session_transition_attempted",
            session_id=str(session_id),
            target_status=status.value,
            minutes_used=minutes_used,
            applied=won,
        )
        return won

    def _session_to_domain(self, record: AvatarSession) -> SessionData:
        """Convert ORM session to domain model."""
        return SessionData(
            session_id=record.id,
            user_id=record.user_id,
            avatar_id=record.avatar_id,
            voice_id=record.voice_id,
            context_id=record.context_id,
            duration_minutes=record.duration_minutes,
            start_time=record.start_time,
            end_time=record.end_time,
            session_token=record.session_token,
            vendor_session_id=record.vendor_session_id,
            status=SessionStatus(record.status),
            minutes_used=record.minutes_used,
            ended_at=record.ended_at,
        )
