"""
Domain Models - Internal business logic models using dataclasses.

NO DICTIONARIES - All data structures are strongly typed immutable dataclasses.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from app.exceptions import InputValidationError
from app.models.api import SessionStatus


def _is_positive_int(value: object) -> bool:
    """True for real integers >= 1 (bools excluded)."""
    return isinstance(value, int) and not isinstance(value, bool) and value >= 1


@dataclass(frozen=True)
class StartSessionIntent:
    """Validated request to open a billable avatar session."""

    duration_minutes: int
    avatar_id: str
    context_id: str
    voice_id: str | None = None

    def __post_init__(self) -> None:
        """Validate session request constraints."""
        if not _is_positive_int(self.duration_minutes):
            raise InputValidationError("Invalid duration. Must be a positive integer (minutes)")
        if not self.avatar_id or not self.context_id:
            raise InputValidationError("avatar_id and context_id are required")


@dataclass(frozen=True)
class PaymentIntent:
    """Validated payment-provider callback."""

    user_id: UUID
    package_minutes: int
    payment_reference: str
    status: str
    price_per_minute: Decimal | None = None

    def __post_init__(self) -> None:
        """Validate payment constraints."""
        if not self.user_id or not self.payment_reference or not self.status:
            raise InputValidationError("Missing required fields")
        if not _is_positive_int(self.package_minutes):
            raise InputValidationError("Invalid package. Minutes must be a positive integer")
        if self.price_per_minute is not None and self.price_per_minute < 0:
            raise InputValidationError("price_per_minute cannot be negative")


@dataclass(frozen=True)
class ProfileData:
    """Immutable profile snapshot."""

    user_id: UUID
    credits_in_minutes: int
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class SessionData:
    """Immutable session snapshot (vendor token included, internal use only)."""

    session_id: UUID
    user_id: UUID
    avatar_id: str
    voice_id: str | None
    context_id: str
    duration_minutes: int
    start_time: datetime
    end_time: datetime
    session_token: str
    vendor_session_id: str
    status: SessionStatus
    minutes_used: int | None
    ended_at: datetime | None

    @property
    def is_active(self) -> bool:
        """Whether the session can still transition."""
        return self.status == SessionStatus.ACTIVE


@dataclass(frozen=True)
class StartedSession:
    """Result of a successful start transition."""

    session: SessionData
    credits_remaining: int
    vendor_fields: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class TerminationResult:
    """Result of a voluntary terminate call."""

    session_id: UUID
    status: SessionStatus
    minutes_used: int | None
    credits_remaining: int
    already_terminal: bool


@dataclass(frozen=True)
class SweepResult:
    """Result of one cleanup pass."""

    terminated_count: int
    total_expired: int


@dataclass(frozen=True)
class PaymentResult:
    """Result of applying a payment callback."""

    user_id: UUID
    payment_reference: str
    credits_added: int
    amount_eur: Decimal
    already_processed: bool
