"""
FastAPI Dependencies - Authentication and shared services.

NO DICTIONARIES - All dependencies return typed objects.
"""

import secrets
from dataclasses import dataclass
from uuid import UUID

import jwt
from fastapi import Depends, Header, HTTPException, status
from fastapi.concurrency import run_in_threadpool
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from app.config import settings
from app.db.session import get_db
from app.exceptions import UnauthorizedError
from app.services.liveavatar_gateway import LiveAvatarGateway, get_liveavatar_gateway
from app.services.payment_reconciler import PaymentReconciler
from app.services.session_lifecycle import SessionLifecycleService

logger = get_logger(__name__)

# ============================================================================
# User JWT Authentication (Supabase access tokens)
# ============================================================================


@dataclass(frozen=True)
class AuthenticatedUser:
    """Authenticated user identity from a Supabase access token."""

    user_id: UUID
    email: str | None = None


# Bearer token scheme for JWT auth
bearer_scheme = HTTPBearer(auto_error=False)

_jwks_client: jwt.PyJWKClient | None = None


def _get_jwks_client() -> jwt.PyJWKClient:
    """Shared JWKS client; it caches signing keys between requests."""
    global _jwks_client
    if _jwks_client is None:
        if not settings.supabase_url:
            raise UnauthorizedError("Token verification is not configured")
        _jwks_client = jwt.PyJWKClient(settings.supabase_jwks_url)
    return _jwks_client


def decode_access_token(token: str) -> AuthenticatedUser:
    """
    Verify a Supabase access token and extract the user.

    HS256 with SUPABASE_JWT_SECRET when configured, otherwise the project's
    asymmetric keys from its JWKS endpoint.

    Raises:
        UnauthorizedError: Invalid signature, expired, wrong audience, or no subject
    """
    try:
        if settings.supabase_jwt_secret:
            claims = jwt.decode(
                token,
                settings.supabase_jwt_secret,
                algorithms=["HS256"],
                audience=settings.supabase_jwt_audience,
                options={"require": ["exp", "sub"]},
            )
        else:
            signing_key = _get_jwks_client().get_signing_key_from_jwt(token).key
            claims = jwt.decode(
                token,
                signing_key,
                algorithms=["ES256", "RS256"],
                audience=settings.supabase_jwt_audience,
                issuer=settings.supabase_issuer,
                options={"require": ["exp", "sub"]},
            )
    except jwt.PyJWTError as e:
        logger.info("access_token_rejected", reason=type(e).__name__)
        raise UnauthorizedError("Invalid bearer token") from e

    try:
        user_id = UUID(str(claims["sub"]))
    except ValueError as e:
        raise UnauthorizedError("Invalid token subject") from e

    return AuthenticatedUser(user_id=user_id, email=claims.get("email"))


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> AuthenticatedUser:
    """
    FastAPI dependency to validate the Supabase access token.

    Accepts: Authorization: Bearer {access_token}

    Raises:
        HTTPException 401 if no token or invalid token
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )

    # JWKS lookups do blocking HTTP; keep them off the event loop.
    try:
        return await run_in_threadpool(decode_access_token, credentials.credentials)
    except UnauthorizedError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=exc.message,
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc


# ============================================================================
# Service Key Authentication (scheduler, payment provider)
# ============================================================================


async def require_service_key(
    x_api_key: str | None = Header(None, description="Service API key"),
) -> None:
    """
    FastAPI dependency to validate the shared service key from X-API-Key.

    An unset SERVICE_API_KEY rejects every caller.

    Raises:
        HTTPException 401 if missing or wrong
    """
    expected = settings.service_api_key
    if not expected or not x_api_key or not secrets.compare_digest(x_api_key, expected):
        logger.warning("service_key_rejected", key_present=x_api_key is not None)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "ApiKey"},
        )


# ============================================================================
# Services
# ============================================================================


def get_gateway() -> LiveAvatarGateway:
    """FastAPI dependency for the shared LiveAvatar gateway."""
    return get_liveavatar_gateway()


def get_lifecycle_service(
    db: AsyncSession = Depends(get_db),
    gateway: LiveAvatarGateway = Depends(get_gateway),
) -> SessionLifecycleService:
    """FastAPI dependency for the session lifecycle service."""
    return SessionLifecycleService(db, gateway)


def get_payment_reconciler(db: AsyncSession = Depends(get_db)) -> PaymentReconciler:
    """FastAPI dependency for the payment reconciler."""
    return PaymentReconciler(db)
