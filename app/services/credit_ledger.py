"""
Credit Ledger - Per-user minute balance with write verification.

NO DICTIONARIES - All operations use strongly typed domain models.

Every mutation follows the pattern:
1. Lock the profile row (SELECT FOR UPDATE)
2. Check the invariant (balance never negative)
3. Write the new balance plus one credit_transactions audit row
4. Flush, read back and verify

The ledger never commits: transaction boundaries belong to the caller.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from app.db.models import CreditTransaction, Profile
from app.exceptions import (
    InputValidationError,
    InsufficientCreditsError,
    ProfileNotFoundError,
    WriteVerificationError,
)
from app.models.api import CreditTransactionKind
from app.models.domain import ProfileData

logger = get_logger(__name__)


def _require_minutes(minutes: int, allow_zero: bool = False) -> None:
    lower = 0 if allow_zero else 1
    if isinstance(minutes, bool) or not isinstance(minutes, int) or minutes < lower:
        raise InputValidationError(f"Minutes must be an integer >= {lower}, got {minutes!r}")


class CreditLedger:
    """Reserve, settle, release and top up prepaid minutes."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize ledger with database session."""
        self.session = session

    async def get_profile(self, user_id: UUID) -> ProfileData:
        """
        Get profile snapshot.

        Raises:
            ProfileNotFoundError: No profile row for this user
        """
        profile = await self._find_profile(user_id)
        if profile is None:
            raise ProfileNotFoundError(user_id)
        return self._profile_to_domain(profile)

    async def balance(self, user_id: UUID) -> int:
        """Current balance in minutes."""
        return (await self.get_profile(user_id)).credits_in_minutes

    async def ensure_available(self, user_id: UUID, minutes: int) -> int:
        """
        Check that the balance covers `minutes` without deducting anything.

        Raises:
            ProfileNotFoundError: No profile row for this user
            InsufficientCreditsError: Balance below `minutes`
        """
        _require_minutes(minutes)
        balance = await self.balance(user_id)
        if balance < minutes:
            raise InsufficientCreditsError(balance, minutes)
        return balance

    async def reserve(self, user_id: UUID, minutes: int, session_id: UUID | None = None) -> int:
        """
        Deduct `minutes` up-front for a session that is about to start.

        The row lock makes check-and-deduct atomic against concurrent starts
        by the same user.

        Returns:
            The new balance

        Raises:
            ProfileNotFoundError: No profile row for this user
            InsufficientCreditsError: Balance below `minutes`
        """
        _require_minutes(minutes)
        profile = await self._lock_profile_for_update(user_id)
        if profile is None:
            raise ProfileNotFoundError(user_id)

        if profile.credits_in_minutes < minutes:
            raise InsufficientCreditsError(profile.credits_in_minutes, minutes)

        return await self._apply(
            profile,
            profile.credits_in_minutes - minutes,
            CreditTransactionKind.RESERVATION,
            minutes,
            session_id=session_id,
        )

    async def settle(
        self, user_id: UUID, minutes_used: int, session_id: UUID | None = None
    ) -> int:
        """
        Deduct actual usage, clamped so the balance stops at zero.

        Only used when minutes were not reserved at start.
        """
        _require_minutes(minutes_used, allow_zero=True)
        profile = await self._lock_profile_for_update(user_id)
        if profile is None:
            raise ProfileNotFoundError(user_id)

        return await self._apply(
            profile,
            max(0, profile.credits_in_minutes - minutes_used),
            CreditTransactionKind.SETTLEMENT,
            minutes_used,
            session_id=session_id,
        )

    async def release(self, user_id: UUID, minutes: int, session_id: UUID | None = None) -> int:
        """Give back a reservation whose session never became billable."""
        _require_minutes(minutes)
        profile = await self._lock_profile_for_update(user_id)
        if profile is None:
            raise ProfileNotFoundError(user_id)

        return await self._apply(
            profile,
            profile.credits_in_minutes + minutes,
            CreditTransactionKind.RELEASE,
            minutes,
            session_id=session_id,
        )

    async def top_up(
        self, user_id: UUID, minutes: int, payment_reference: str | None = None
    ) -> int:
        """Add purchased minutes. Never rejected for a known profile."""
        _require_minutes(minutes)
        profile = await self._lock_profile_for_update(user_id)
        if profile is None:
            raise ProfileNotFoundError(user_id)

        return await self._apply(
            profile,
            profile.credits_in_minutes + minutes,
            CreditTransactionKind.TOP_UP,
            minutes,
            payment_reference=payment_reference,
        )

    # ========================================================================
    # Private Helper Methods
    # ========================================================================

    async def _apply(
        self,
        profile: Profile,
        balance_after: int,
        kind: CreditTransactionKind,
        minutes: int,
        session_id: UUID | None = None,
        payment_reference: str | None = None,
    ) -> int:
        """Write the new balance and its audit row, then verify."""
        if balance_after < 0:
            raise WriteVerificationError(
                f"Refusing negative balance {balance_after} for profile {profile.id}"
            )

        balance_before = profile.credits_in_minutes

        self.session.add(
            CreditTransaction(
                user_id=profile.id,
                kind=kind.value,
                minutes=minutes,
                balance_before=balance_before,
                balance_after=balance_after,
                session_id=session_id,
                payment_reference=payment_reference,
            )
        )
        profile.credits_in_minutes = balance_after
        await self.session.flush()

        verified = await self.session.get(Profile, profile.id)
        if verified is None:
            raise WriteVerificationError(f"Profile {profile.id} disappeared after update")
        if verified.credits_in_minutes != balance_after:
            raise WriteVerificationError(
                f"Balance mismatch: expected {balance_after}, got {verified.credits_in_minutes}"
            )

        logger.info(
            "ledger_balance_updated",
            user_id=str(profile.id),
            kind=kind.value,
            minutes=minutes,
            balance_before=balance_before,
            balance_after=balance_after,
        )
        return balance_after

    async def _find_profile(self, user_id: UUID) -> Profile | None:
        stmt = select(Profile).where(Profile.id == user_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def _lock_profile_for_update(self, user_id: UUID) -> Profile | None:
        """Lock profile row for update (SELECT FOR UPDATE)."""
        stmt = (
            select(Profile)
            .where(Profile.id == user_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    def _profile_to_domain(self, profile: Profile) -> ProfileData:
        """Convert ORM profile to domain model."""
        return ProfileData(
            user_id=profile.id,
            credits_in_minutes=profile.credits_in_minutes,
            created_at=profile.created_at,
            updated_at=profile.updated_at,
        )
