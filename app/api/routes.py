"""
API Routes - Session lifecycle, payment webhook and profile endpoints.

NO DICTIONARIES - All requests/responses use Pydantic models.

Paths keep the edge-function names the web client already calls.
"""

from datetime import UTC, datetime

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import (
    AuthenticatedUser,
    get_current_user,
    get_lifecycle_service,
    get_payment_reconciler,
    require_service_key,
)
from app.db.session import get_db
from app.exceptions import (
    InputValidationError,
    InsufficientCreditsError,
    PaymentNotConfirmedError,
    PersistenceError,
    ProfileNotFoundError,
    SessionNotFoundError,
    UserNotFoundError,
    VendorError,
)
from app.models.api import (
    CleanupResponse,
    HealthResponse,
    PaymentWebhookRequest,
    PaymentWebhookResponse,
    ProfileResponse,
    SessionSummary,
    StartSessionRequest,
    StartSessionResponse,
    TerminateSessionRequest,
    TerminateSessionResponse,
)
from app.models.domain import PaymentIntent, SessionData, StartSessionIntent
from app.services.credit_ledger import CreditLedger
from app.services.payment_reconciler import PaymentReconciler
from app.services.session_lifecycle import SessionLifecycleService
from app.services.session_store import SessionStore

router = APIRouter()

RECENT_SESSIONS_LIMIT = 20


def _bad_request(exc: InputValidationError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.message)


def _vendor_failure(exc: VendorError, action: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Failed to {action} LiveAvatar session: {exc.body}",
    )


@router.post("/functions/v1/sessions-start", response_model=StartSessionResponse)
async def start_session(
    request: StartSessionRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    service: SessionLifecycleService = Depends(get_lifecycle_service),
) -> StartSessionResponse:
    """
    Reserve minutes and open a LiveAvatar session.

    Requires: user bearer token.
    """
    try:
        intent = StartSessionIntent(
            duration_minutes=request.duration,  # type: ignore[arg-type]
            avatar_id=request.avatar_id or "",
            context_id=request.context_id or "",
            voice_id=request.voice_id or None,
        )
    except InputValidationError as exc:
        raise _bad_request(exc) from exc

    try:
        started = await service.start(user.user_id, intent)

    except ProfileNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Profile not found",
        ) from exc

    except InsufficientCreditsError as exc:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "error": "Insufficient credits",
                "available_credits": exc.available,
                "required_credits": exc.required,
            },
        ) from exc

    except VendorError as exc:
        raise _vendor_failure(exc, "start") from exc

    except PersistenceError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create session record",
        ) from exc

    record = started.session
    vendor_fields = {
        key: value
        for key, value in started.vendor_fields.items()
        if key not in StartSessionResponse.model_fields
    }

    return StartSessionResponse(
        session_id=record.session_id,
        liveavatar_session_id=record.vendor_session_id,
        session_token=record.session_token,
        end_time=record.end_time.isoformat(),
        duration_minutes=record.duration_minutes,
        credits_remaining=started.credits_remaining,
        **vendor_fields,
    )


@router.post("/functions/v1/sessions-terminate", response_model=TerminateSessionResponse)
async def terminate_session(
    request: TerminateSessionRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    service: SessionLifecycleService = Depends(get_lifecycle_service),
) -> TerminateSessionResponse:
    """
    End a session early and record minutes used.

    Requires: user bearer token; only the owner may terminate.
    """
    if request.session_id is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="session_id is required",
        )

    try:
        result = await service.terminate(user.user_id, request.session_id)

    except SessionNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Session not found",
        ) from exc

    except ProfileNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Profile not found",
        ) from exc

    except PersistenceError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update session",
        ) from exc

    return TerminateSessionResponse(
        message="Session already terminated" if result.already_terminal else "Session terminated",
        status=result.status,
        minutes_used=result.minutes_used,
        credits_remaining=result.credits_remaining,
    )


@router.post(
    "/functions/v1/sessions-cleanup",
    response_model=CleanupResponse,
    dependencies=[Depends(require_service_key)],
)
async def cleanup_sessions(
    service: SessionLifecycleService = Depends(get_lifecycle_service),
) -> CleanupResponse:
    """
    Clean up sessions abandoned past their end time.

    Requires: service API key. Meant for an external scheduler.
    """
    result = await service.sweep()
    return CleanupResponse(
        terminated_count=result.terminated_count,
        total_expired=result.total_expired,
    )


@router.post(
    "/functions/v1/payments-webhook",
    response_model=PaymentWebhookResponse,
    dependencies=[Depends(require_service_key)],
)
async def payments_webhook(
    request: PaymentWebhookRequest,
    reconciler: PaymentReconciler = Depends(get_payment_reconciler),
) -> PaymentWebhookResponse:
    """
    Apply a confirmed payment exactly once per payment_reference.

    Requires: service API key.
    """
    try:
        intent = PaymentIntent(
            user_id=request.user_id,  # type: ignore[arg-type]
            package_minutes=request.package_minutes,  # type: ignore[arg-type]
            payment_reference=request.payment_reference or "",
            status=request.status or "",
            price_per_minute=request.price_per_minute,
        )
        result = await reconciler.apply_payment(intent)

    except InputValidationError as exc:
        raise _bad_request(exc) from exc

    except PaymentNotConfirmedError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "Payment not confirmed", "received_status": exc.status},
        ) from exc

    except UserNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found",
        ) from exc

    except PersistenceError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to log payment",
        ) from exc

    return PaymentWebhookResponse(
        message="Payment already processed" if result.already_processed else "Payment processed",
        user_id=result.user_id,
        credits_added=result.credits_added,
        amount_eur=float(result.amount_eur),
        already_processed=result.already_processed,
    )


def _session_summary(record: SessionData) -> SessionSummary:
    return SessionSummary(
        id=record.session_id,
        avatar_id=record.avatar_id,
        voice_id=record.voice_id,
        context_id=record.context_id,
        duration_minutes=record.duration_minutes,
        start_time=record.start_time.isoformat(),
        end_time=record.end_time.isoformat(),
        status=record.status,
        minutes_used=record.minutes_used,
        ended_at=record.ended_at.isoformat() if record.ended_at else None,
    )


@router.api_route(
    "/functions/v1/user-profile",
    methods=["GET", "POST"],
    response_model=ProfileResponse,
)
async def user_profile(
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> ProfileResponse:
    """
    Balance and recent sessions of the caller.

    Requires: user bearer token. Session tokens are never included.
    """
    try:
        profile = await CreditLedger(db).get_profile(user.user_id)
    except ProfileNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Profile not found",
        ) from exc

    sessions = await SessionStore(db).list_recent_for_user(
        user.user_id, limit=RECENT_SESSIONS_LIMIT
    )

    return ProfileResponse(
        id=profile.user_id,
        credits_in_minutes=profile.credits_in_minutes,
        created_at=profile.created_at.isoformat(),
        updated_at=profile.updated_at.isoformat(),
        recent_sessions=[_session_summary(record) for record in sessions],
    )


@router.get("/health", response_model=HealthResponse)
async def health_check(db: AsyncSession = Depends(get_db)) -> HealthResponse:
    """Liveness probe with a database round-trip."""
    try:
        await db.execute(text("SELECT 1"))
        db_status = "connected"
    except Exception:
        db_status = "disconnected"

    return HealthResponse(
        status="healthy" if db_status == "connected" else "degraded",
        database=db_status,
        timestamp=datetime.now(UTC).isoformat(),
    )
