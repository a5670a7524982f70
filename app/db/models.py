"""
Database Models - SQLAlchemy ORM models with strict typing.

NO DICTIONARIES - All columns use Mapped[] type annotations.
"""

from datetime import UTC, datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


class Profile(Base):
    """
    ORM model for profiles table.

    One row per authenticated user; holds the prepaid minute balance.
    """

    __tablename__ = "profiles"

    # Primary Key (same id as the auth user)
    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True)

    # Balance
    credits_in_minutes: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    # Audit timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        CheckConstraint("credits_in_minutes >= 0", name="ck_profile_credits_non_negative"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"<Profile(id={self.id}, credits_in_minutes={self.credits_in_minutes})>"


class AvatarSession(Base):
    """
    ORM model for sessions table.

    Source of truth for what is currently billable. Once the status leaves
    'active' the row is never updated again.
    """

    __tablename__ = "sessions"

    # Primary Key
    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)

    # Owner
    user_id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), nullable=False)

    # Avatar configuration
    avatar_id: Mapped[str] = mapped_column(String(255), nullable=False)
    voice_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    context_id: Mapped[str] = mapped_column(String(255), nullable=False)

    # Timing
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    start_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    end_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    ended_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Vendor capability (never returned outside the owner's start response)
    session_token: Mapped[str] = mapped_column(Text, nullable=False)
    vendor_session_id: Mapped[str] = mapped_column(String(255), nullable=False)

    # Lifecycle
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")
    minutes_used: Mapped[int | None] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (
        CheckConstraint("duration_minutes >= 1", name="ck_session_duration_positive"),
        CheckConstraint(
            "status IN ('active', 'terminated', 'cleaned')", name="ck_session_status"
        ),
        CheckConstraint(
            "minutes_used IS NULL OR (minutes_used >= 1 AND minutes_used <= duration_minutes)",
            name="ck_session_minutes_used_range",
        ),
        Index("idx_sessions_user_id", "user_id"),
        Index("idx_sessions_status_end_time", "status", "end_time"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<AvatarSession(id={self.id}, user_id={self.user_id}, "
            f"status={self.status}, duration={self.duration_minutes})>"
        )


class Payment(Base):
    """
    ORM model for payments table.

    One row per distinct payment_reference (idempotency key).
    """

    __tablename__ = "payments"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), nullable=False)
    package_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    amount_eur: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    price_per_minute_eur: Mapped[Decimal] = mapped_column(Numeric(10, 4), nullable=False)
    payment_reference: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (
        CheckConstraint("package_minutes > 0", name="ck_payment_minutes_positive"),
        UniqueConstraint("payment_reference", name="uq_payment_reference"),
        Index("idx_payments_user_id", "user_id"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<Payment(id={self.id}, reference={self.payment_reference}, "
            f"minutes={self.package_minutes})>"
        )


class CreditTransaction(Base):
    """
    ORM model for credit_transactions table.

    Immutable audit trail of every balance mutation.
    """

    __tablename__ = "credit_transactions"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), nullable=False)
    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    minutes: Mapped[int] = mapped_column(BigInteger, nullable=False)

    # Balance snapshots (denormalized for auditing)
    balance_before: Mapped[int] = mapped_column(BigInteger, nullable=False)
    balance_after: Mapped[int] = mapped_column(BigInteger, nullable=False)

    # Links
    session_id: Mapped[UUID | None] = mapped_column(PG_UUID(as_uuid=True), nullable=True)
    payment_reference: Mapped[str | None] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (
        CheckConstraint("minutes >= 0", name="ck_credit_tx_minutes_non_negative"),
        CheckConstraint("balance_after >= 0", name="ck_credit_tx_balance_non_negative"),
        CheckConstraint(
            "kind IN ('reservation', 'release', 'settlement', 'top_up')",
            name="ck_credit_tx_kind",
        ),
        Index("idx_credit_tx_user_created", "user_id", "created_at"),
    )


class AppSetting(Base):
    """ORM model for app_settings table (operator-tunable values)."""

    __tablename__ = "app_settings"

    key: Mapped[str] = mapped_column(String(100), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )
