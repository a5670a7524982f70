"""
API Models - Pydantic models for request/response validation.

NO DICTIONARIES - All data structures are strongly typed.

Request models accept missing fields so that the domain layer reports the
same validation messages regardless of the entry point (HTTP or script).
"""

from decimal import Decimal
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class SessionStatus(str, Enum):
    """Session status enumeration."""

    ACTIVE = "active"
    TERMINATED = "terminated"
    CLEANED = "cleaned"


class CreditTransactionKind(str, Enum):
    """Kind of ledger mutation recorded in credit_transactions."""

    RESERVATION = "reservation"
    RELEASE = "release"
    SETTLEMENT = "settlement"
    TOP_UP = "top_up"


class CreditPolicy(str, Enum):
    """When session minutes are taken from the balance."""

    UPFRONT = "upfront"
    ON_SETTLEMENT = "on_settlement"


# ============================================================================
# Session Models
# ============================================================================


class StartSessionRequest(BaseModel):
    """POST /functions/v1/sessions-start request body."""

    duration: int | None = None
    avatar_id: str | None = Field(None, max_length=255)
    voice_id: str | None = Field(None, max_length=255)
    context_id: str | None = Field(None, max_length=255)


class StartSessionResponse(BaseModel):
    """
    POST /functions/v1/sessions-start response.

    Vendor start fields (LiveKit url, client token, ...) are passed through
    as extra keys.
    """

    model_config = ConfigDict(extra="allow")

    session_id: UUID
    liveavatar_session_id: str
    session_token: str
    end_time: str  # ISO 8601 timestamp
    duration_minutes: int
    credits_remaining: int


class TerminateSessionRequest(BaseModel):
    """POST /functions/v1/sessions-terminate request body."""

    session_id: UUID | None = None


class TerminateSessionResponse(BaseModel):
    """POST /functions/v1/sessions-terminate response."""

    success: bool = True
    message: str
    status: SessionStatus
    minutes_used: int | None = None
    credits_remaining: int


class CleanupResponse(BaseModel):
    """POST /functions/v1/sessions-cleanup response."""

    success: bool = True
    terminated_count: int
    total_expired: int


class SessionSummary(BaseModel):
    """Session as shown to its owner. Never carries the vendor token."""

    id: UUID
    avatar_id: str
    voice_id: str | None = None
    context_id: str
    duration_minutes: int
    start_time: str
    end_time: str
    status: SessionStatus
    minutes_used: int | None = None
    ended_at: str | None = None


class ProfileResponse(BaseModel):
    """GET /functions/v1/user-profile response."""

    id: UUID
    credits_in_minutes: int
    created_at: str
    updated_at: str
    recent_sessions: list[SessionSummary] = Field(default_factory=list)


# ============================================================================
# Payment Models
# ============================================================================


class PaymentWebhookRequest(BaseModel):
    """POST /functions/v1/payments-webhook request body."""

    model_config = ConfigDict(populate_by_name=True)

    user_id: UUID | None = None
    package_minutes: int | None = Field(None, alias="package")
    payment_reference: str | None = Field(None, max_length=255)
    status: str | None = Field(None, max_length=50)
    price_per_minute: Decimal | None = None


class PaymentWebhookResponse(BaseModel):
    """POST /functions/v1/payments-webhook response."""

    success: bool = True
    message: str
    user_id: UUID
    credits_added: int
    amount_eur: float
    already_processed: bool = False


# ============================================================================
# LiveAvatar Pass-through Models
# ============================================================================


class LegacyStartRequest(BaseModel):
    """POST /functions/v1/liveavatar-start request body."""

    avatar_id: str | None = Field(None, max_length=255)
    voice_id: str | None = Field(None, max_length=255)
    context_id: str | None = Field(None, max_length=255)


class SessionTokenRequest(BaseModel):
    """POST /functions/v1/liveavatar-terminate request body."""

    session_token: str | None = None


class SendMessageRequest(BaseModel):
    """POST /functions/v1/liveavatar-send-message request body."""

    session_token: str | None = None
    text: str | None = None


class SuccessResponse(BaseModel):
    """Plain acknowledgement."""

    success: bool = True


# ============================================================================
# Health Models
# ============================================================================


class HealthResponse(BaseModel):
    """GET /health response."""

    status: str
    database: str
    timestamp: str
