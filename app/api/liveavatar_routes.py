"""
LiveAvatar pass-through routes - Direct vendor calls without credit accounting.

These predate the credit-bearing sessions-* endpoints and are kept for the
avatar picker and the in-session chat box.
"""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status
from structlog import get_logger

from app.api.dependencies import AuthenticatedUser, get_current_user, get_gateway
from app.config import settings
from app.exceptions import VendorError
from app.models.api import (
    LegacyStartRequest,
    SendMessageRequest,
    SessionTokenRequest,
    SuccessResponse,
)
from app.models.liveavatar import ResourceListing
from app.services.liveavatar_gateway import LiveAvatarGateway

logger = get_logger(__name__)
router = APIRouter(prefix="/functions/v1", tags=["liveavatar"])


def _vendor_http_error(exc: VendorError, action: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Failed to {action} ({exc.status}): {exc.body}",
    )


@router.post("/liveavatar-start")
async def legacy_start(
    request: LegacyStartRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    gateway: LiveAvatarGateway = Depends(get_gateway),
) -> Any:
    """
    Create a vendor session directly and return the vendor payload.

    No minutes are reserved and no auto-termination is scheduled; expiry is
    left to the vendor.
    """
    avatar_id = request.avatar_id or settings.liveavatar_default_avatar_id
    voice_id = request.voice_id or settings.liveavatar_default_voice_id

    try:
        payload = await gateway.create_legacy_session(avatar_id, voice_id)
    except VendorError as exc:
        raise _vendor_http_error(exc, "create session") from exc

    logger.info("legacy_session_created", user_id=str(user.user_id), avatar_id=avatar_id)
    return payload


@router.post("/liveavatar-terminate", response_model=SuccessResponse)
async def legacy_terminate(
    request: SessionTokenRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    gateway: LiveAvatarGateway = Depends(get_gateway),
) -> SuccessResponse:
    """Stop a vendor session by token. An unknown session counts as stopped."""
    if not request.session_token:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="session_token is required",
        )

    try:
        outcome = await gateway.stop_session(request.session_token)
    except VendorError as exc:
        raise _vendor_http_error(exc, "terminate session") from exc

    logger.info("legacy_session_stopped", user_id=str(user.user_id), outcome=outcome.value)
    return SuccessResponse()


@router.post("/liveavatar-send-message")
async def send_message(
    request: SendMessageRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    gateway: LiveAvatarGateway = Depends(get_gateway),
) -> Any:
    """Forward a chat message to a running session."""
    if not request.session_token or not request.text:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="session_token and text are required",
        )

    try:
        return await gateway.send_message(request.session_token, request.text)
    except VendorError as exc:
        raise _vendor_http_error(exc, "send message") from exc


@router.api_route(
    "/liveavatar-list-resources",
    methods=["GET", "POST"],
    response_model=ResourceListing,
    response_model_exclude_none=True,
)
async def list_resources(
    user: AuthenticatedUser = Depends(get_current_user),
    gateway: LiveAvatarGateway = Depends(get_gateway),
) -> ResourceListing:
    """Avatars and voices available to the configured API key."""
    try:
        return await gateway.list_resources()
    except VendorError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "error": exc.body,
                "note": (
                    "Check the LiveAvatar dashboard for available avatar_id "
                    "and voice_id values."
                ),
            },
        ) from exc
