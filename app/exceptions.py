"""
Exception Classes - Strongly typed exception hierarchy.

NO DICTIONARIES - All exceptions have typed attributes.
"""

from uuid import UUID


class SessionBillingError(Exception):
    """Base exception for all session and credit accounting errors."""

    pass


class InputValidationError(SessionBillingError):
    """Raised when a request is malformed or misses required fields."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class UnauthorizedError(SessionBillingError):
    """Raised when the caller credential is missing or invalid."""

    def __init__(self, message: str = "Unauthorized") -> None:
        self.message = message
        super().__init__(message)


class InsufficientCreditsError(SessionBillingError):
    """Raised when a profile cannot cover the requested minutes."""

    def __init__(self, available: int, required: int) -> None:
        self.available = available
        self.required = required
        super().__init__(f"Insufficient credits. Available: {available}, Required: {required}")


class ProfileNotFoundError(SessionBillingError):
    """Raised when the authenticated user has no profile row."""

    def __init__(self, user_id: UUID) -> None:
        self.user_id = user_id
        super().__init__(f"Profile not found: {user_id}")


class UserNotFoundError(SessionBillingError):
    """Raised when a payment targets an unknown user."""

    def __init__(self, user_id: UUID) -> None:
        self.user_id = user_id
        super().__init__(f"User not found: {user_id}")


class SessionNotFoundError(SessionBillingError):
    """Raised when a session doesn't exist or belongs to another user."""

    def __init__(self, session_id: UUID) -> None:
        self.session_id = session_id
        super().__init__(f"Session not found: {session_id}")


class PaymentNotConfirmedError(SessionBillingError):
    """Raised when a payment callback reports a status other than paid."""

    def __init__(self, status: str) -> None:
        self.status = status
        super().__init__(f"Payment not confirmed: {status}")


class VendorError(SessionBillingError):
    """Raised when the LiveAvatar API answers with an error or is unreachable."""

    def __init__(self, status: int | None, body: str) -> None:
        self.status = status
        self.body = body
        super().__init__(f"LiveAvatar error ({status}): {body}")


class VendorNotConfiguredError(VendorError):
    """Raised when no LiveAvatar API key is configured."""

    def __init__(self) -> None:
        super().__init__(None, "LIVEAVATAR_API_KEY is not configured")


class PersistenceError(SessionBillingError):
    """Raised when a datastore write fails."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Persistence error: {message}")


class WriteVerificationError(PersistenceError):
    """Raised when a written row doesn't read back as expected."""

    def __init__(self, message: str) -> None:
        super().__init__(f"Write verification failed: {message}")
