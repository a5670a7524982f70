"""
Session Lifecycle Service - Start, terminate and sweep avatar sessions.

NO DICTIONARIES - All operations use strongly typed domain models.

States: requested -> active -> {terminated, cleaned}. The only way out of
'active' is SessionStore.transition, a conditional write, so a voluntary
terminate and the sweep can race safely: the loser observes the terminal
state and changes nothing.

Credit policy:
- upfront: minutes are reserved (and committed) before any vendor call.
  Terminate and sweep only record minutes_used.
- on_settlement: start only checks the balance. The winner of the
  transition settles minutes_used against the ledger.
"""

from datetime import UTC, datetime, timedelta
from uuid import UUID, uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from app.config import settings
from app.exceptions import (
    PersistenceError,
    SessionBillingError,
    SessionNotFoundError,
    VendorError,
)
from app.models.api import CreditPolicy, SessionStatus
from app.models.domain import (
    SessionData,
    StartedSession,
    StartSessionIntent,
    SweepResult,
    TerminationResult,
)
from app.observability.metrics import metrics
from app.observability.tracing import trace_operation
from app.services.credit_ledger import CreditLedger
from app.services.liveavatar_gateway import LiveAvatarGateway
from app.services.session_store import SessionStore

logger = get_logger(__name__)


def _utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


def compute_minutes_used(start_time: datetime, now: datetime, duration_minutes: int) -> int:
    """
    Billable minutes for a session that ran from `start_time` until `now`.

    Elapsed whole seconds are rounded up to minutes, then clamped to
    [1, duration_minutes]: every session that reached active costs at least
    one minute and never more than it reserved.
    """
    elapsed_seconds = int((now - start_time).total_seconds())
    minutes = -(-elapsed_seconds // 60)
    return max(1, min(minutes, duration_minutes))


class SessionLifecycleService:
    """Orchestrates ledger, session store and vendor gateway."""

    def __init__(
        self,
        session: AsyncSession,
        gateway: LiveAvatarGateway,
        policy: CreditPolicy | str | None = None,
        grace_period: timedelta | None = None,
    ) -> None:
        self.session = session
        self.gateway = gateway
        self.ledger = CreditLedger(session)
        self.store = SessionStore(session)
        self.policy = CreditPolicy(policy or settings.credit_policy)
        self.grace_period = (
            grace_period
            if grace_period is not None
            else timedelta(seconds=settings.cleanup_grace_period_seconds)
        )

    @property
    def reserves_upfront(self) -> bool:
        return self.policy == CreditPolicy.UPFRONT

    async def start(self, user_id: UUID, intent: StartSessionIntent) -> StartedSession:
        """
        Open a billable session.

        The reservation is committed before the vendor is contacted. Any
        failure after that point releases it again.

        Raises:
            ProfileNotFoundError: No profile row for this user
            InsufficientCreditsError: Balance below the requested duration
            VendorError: Token or start call failed (reservation released)
            PersistenceError: Session record could not be stored
        """
        session_id = uuid4()

        with trace_operation(
            "session_start",
            user_id=user_id,
            session_id=session_id,
            duration_minutes=intent.duration_minutes,
            policy=self.policy.value,
        ):
            try:
                if self.reserves_upfront:
                    credits_remaining = await self.ledger.reserve(
                        user_id, intent.duration_minutes, session_id=session_id
                    )
                    await self._commit("reserve")
                else:
                    credits_remaining = await self.ledger.ensure_available(
                        user_id, intent.duration_minutes
                    )
            except SessionBillingError as e:
                metrics.record_session_start(type(e).__name__)
                raise

            try:
                token = await self.gateway.create_token(
                    intent.avatar_id, intent.context_id, voice_id=intent.voice_id
                )
            except VendorError:
                metrics.record_session_start("vendor_error")
                await self._release_reservation(user_id, intent.duration_minutes, session_id)
                raise

            try:
                started = await self.gateway.start_session(token.session_token)
            except VendorError:
                metrics.record_session_start("vendor_error")
                await self._stop_best_effort(token.session_token, session_id)
                await self._release_reservation(user_id, intent.duration_minutes, session_id)
                raise

            try:
                record = await self.store.create(
                    user_id=user_id,
                    intent=intent,
                    start_time=_utc_now(),
                    session_token=token.session_token,
                    vendor_session_id=token.session_id,
                    session_id=session_id,
                )
                await self.session.commit()
            except (SQLAlchemyError, PersistenceError) as e:
                await self.session.rollback()
                logger.error(
                    "session_record_insert_failed",
                    user_id=str(user_id),
                    session_id=str(session_id),
                    error=str(e),
                )
                metrics.record_session_start("persistence_error")
                await self._stop_best_effort(token.session_token, session_id)
                await self._release_reservation(user_id, intent.duration_minutes, session_id)
                raise PersistenceError("Failed to create session record") from e

        metrics.record_session_start("success", intent.duration_minutes)
        logger.info(
            "session_started",
            user_id=str(user_id),
            session_id=str(record.session_id),
            vendor_session_id=record.vendor_session_id,
            duration_minutes=record.duration_minutes,
            credits_remaining=credits_remaining,
        )

        return StartedSession(
            session=record,
            credits_remaining=credits_remaining,
            vendor_fields=started.fields,
        )

    async def terminate(self, user_id: UUID, session_id: UUID) -> TerminationResult:
        """
        End a session on behalf of its owner.

        Idempotent: a session that already left 'active' is reported as-is.

        Raises:
            SessionNotFoundError: Unknown session or owned by another user
            PersistenceError: Transition could not be committed
        """
        with trace_operation("session_terminate", user_id=user_id, session_id=session_id):
            record = await self.store.get_for_user(session_id, user_id)
            if record is None:
                raise SessionNotFoundError(session_id)

            if not record.is_active:
                logger.info(
                    "session_already_terminal",
                    session_id=str(session_id),
                    status=record.status.value,
                )
                return await self._terminal_result(record)

            now = _utc_now()
            minutes_used = compute_minutes_used(record.start_time, now, record.duration_minutes)

            # Local state is authoritative for billing; the vendor may be gone.
            await self._stop_best_effort(record.session_token, session_id)

            won = await self.store.transition(
                session_id, SessionStatus.TERMINATED, minutes_used, now
            )
            if not won:
                await self.session.rollback()
                metrics.record_session_transition("lost_race")
                current = await self.store.get(session_id)
                logger.info(
                    "session_terminate_lost_race",
                    session_id=str(session_id),
                    status=current.status.value if current else None,
                )
                if current is None:
                    raise SessionNotFoundError(session_id)
                return await self._terminal_result(current)

            if not self.reserves_upfront:
                await self.ledger.settle(user_id, minutes_used, session_id=session_id)
            await self._commit("terminate")

            credits_remaining = await self.ledger.balance(user_id)

        metrics.record_session_transition(SessionStatus.TERMINATED.value, minutes_used)
        logger.info(
            "session_terminated",
            user_id=str(user_id),
            session_id=str(session_id),
            minutes_used=minutes_used,
            requested_minutes=record.duration_minutes,
            credits_remaining=credits_remaining,
        )

        return TerminationResult(
            session_id=session_id,
            status=SessionStatus.TERMINATED,
            minutes_used=minutes_used,
            credits_remaining=credits_remaining,
            already_terminal=False,
        )

    async def sweep(self, now: datetime | None = None) -> SweepResult:
        """
        Clean up active sessions past end_time plus the grace period.

        Safe to run repeatedly and concurrently with terminate. A failure on
        one session is logged and does not stop the pass.
        """
        now = now or _utc_now()
        cutoff = now - self.grace_period

        with trace_operation("session_sweep", cutoff=cutoff.isoformat()) as span:
            expired = await self.store.list_expired(cutoff)
            span.set_attribute("total_expired", len(expired))

            logger.info("sweep_started", cutoff=cutoff.isoformat(), total_expired=len(expired))

            terminated_count = 0
            for record in expired:
                if await self._clean_one(record, now):
                    terminated_count += 1

            span.set_attribute("terminated_count", terminated_count)

        metrics.record_sweep(len(expired))
        logger.info(
            "sweep_completed",
            terminated_count=terminated_count,
            total_expired=len(expired),
        )
        return SweepResult(terminated_count=terminated_count, total_expired=len(expired))

    # ========================================================================
    # Private Helper Methods
    # ========================================================================

    async def _clean_one(self, record: SessionData, now: datetime) -> bool:
        """Move one expired session to 'cleaned'. True if this pass won."""
        minutes_used = compute_minutes_used(record.start_time, now, record.duration_minutes)

        await self._stop_best_effort(record.session_token, record.session_id)

        try:
            won = await self.store.transition(
                record.session_id, SessionStatus.CLEANED, minutes_used, now
            )
            if won and not self.reserves_upfront:
                await self.ledger.settle(
                    record.user_id, minutes_used, session_id=record.session_id
                )
            await self.session.commit()
        except (SQLAlchemyError, SessionBillingError) as e:
            await self.session.rollback()
            metrics.record_error(type(e).__name__, "sweep")
            logger.error(
                "sweep_session_failed",
                session_id=str(record.session_id),
                error=str(e),
            )
            return False

        if not won:
            metrics.record_session_transition("lost_race")
            logger.info("sweep_session_already_terminal", session_id=str(record.session_id))
            return False

        metrics.record_session_transition(SessionStatus.CLEANED.value, minutes_used)
        logger.info(
            "session_cleaned",
            session_id=str(record.session_id),
            user_id=str(record.user_id),
            minutes_used=minutes_used,
            end_time=record.end_time.isoformat(),
        )
        return True

    async def _terminal_result(self, record: SessionData) -> TerminationResult:
        return TerminationResult(
            session_id=record.session_id,
            status=record.status,
            minutes_used=record.minutes_used,
            credits_remaining=await self.ledger.balance(record.user_id),
            already_terminal=True,
        )

    async def _stop_best_effort(self, session_token: str, session_id: UUID) -> None:
        """Stop the vendor session; failures are logged, never raised."""
        if not session_token:
            return
        try:
            outcome = await self.gateway.stop_session(session_token)
        except VendorError as e:
            logger.warning(
                "vendor_stop_failed",
                session_id=str(session_id),
                status=e.status,
                error=e.body,
            )
            return
        logger.debug("vendor_session_stopped", session_id=str(session_id), outcome=outcome.value)

    async def _release_reservation(self, user_id: UUID, minutes: int, session_id: UUID) -> None:
        """Compensate a committed reservation. Failures are logged for reconciliation."""
        if not self.reserves_upfront:
            return
        try:
            await self.ledger.release(user_id, minutes, session_id=session_id)
            await self.session.commit()
        except (SQLAlchemyError, SessionBillingError) as e:
            await self.session.rollback()
            metrics.record_error(type(e).__name__, "release_reservation")
            logger.error(
                "reservation_release_failed",
                user_id=str(user_id),
                session_id=str(session_id),
                minutes=minutes,
                error=str(e),
            )
            return
        logger.info(
            "reservation_released",
            user_id=str(user_id),
            session_id=str(session_id),
            minutes=minutes,
        )

    async def _commit(self, operation: str) -> None:
        try:
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise PersistenceError(f"{operation} could not be committed") from e
