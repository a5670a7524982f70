"""
LiveAvatar Gateway - Adapter for the avatar vendor REST API.

Service calls carry the API key (`X-API-KEY`); per-session calls carry the
session token as a bearer credential. Vendor payloads are validated into the
tagged union from app.models.liveavatar before they reach the caller.
"""

import time
from typing import Any

import httpx
from pydantic import TypeAdapter, ValidationError
from structlog import get_logger

from app.config import settings
from app.exceptions import VendorError, VendorNotConfiguredError
from app.models.liveavatar import (
    ErrorResponse,
    ResourceListing,
    StartResponse,
    StopOutcome,
    TokenResponse,
    VendorResponse,
)
from app.observability.metrics import metrics

logger = get_logger(__name__)

_vendor_response = TypeAdapter(VendorResponse)


class LiveAvatarGateway:
    """Token, start, stop and chat calls against the LiveAvatar API."""

    def __init__(
        self,
        api_key: str,
        api_url: str = "https://api.liveavatar.com",
        chat_url: str = "https://api.us.platform.liveavatar.tech/v1/sessions/chat",
        timeout_seconds: float = 10.0,
        language: str = "en",
        http_client: httpx.AsyncClient | None = None,
    ):
        self.api_key = api_key
        self.api_url = api_url.rstrip("/")
        self.chat_url = chat_url
        self.timeout_seconds = timeout_seconds
        self.language = language
        self._http_client = http_client

    @property
    def http_client(self) -> httpx.AsyncClient:
        """Get HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.timeout_seconds)
        return self._http_client

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def create_token(
        self, avatar_id: str, context_id: str, voice_id: str | None = None
    ) -> TokenResponse:
        """Request a session token for a FULL-mode avatar session."""
        persona: dict[str, Any] = {"context_id": context_id, "language": self.language}
        if voice_id:
            persona["voice_id"] = voice_id

        response = await self._request(
            "create_token",
            "POST",
            f"{self.api_url}/v1/sessions/token",
            headers=self._service_headers(),
            json={"mode": "FULL", "avatar_id": avatar_id, "avatar_persona": persona},
        )
        parsed = self._parse(response, "token")
        if not isinstance(parsed, TokenResponse):
            raise VendorError(response.status_code, "Unexpected token response")
        return parsed

    async def start_session(self, session_token: str) -> StartResponse:
        """Start the vendor session behind `session_token`."""
        response = await self._request(
            "start_session",
            "POST",
            f"{self.api_url}/v1/sessions/start",
            headers=self._session_headers(session_token),
        )
        parsed = self._parse(response, "start")
        if not isinstance(parsed, StartResponse):
            raise VendorError(response.status_code, "Unexpected start response")
        return parsed

    async def stop_session(self, session_token: str) -> StopOutcome:
        """
        Stop the vendor session behind `session_token`.

        A 404 means the vendor already closed the session and is not an error.
        """
        response = await self._request(
            "stop_session",
            "POST",
            f"{self.api_url}/v1/sessions/stop",
            headers=self._session_headers(session_token),
            accept_not_found=True,
        )
        if response.status_code == 404:
            return StopOutcome.NOT_FOUND
        return StopOutcome.STOPPED

    async def send_message(self, session_token: str, text: str) -> Any:
        """Send a chat message into a running session."""
        headers = self._session_headers(session_token)
        headers["X-API-Key"] = self._require_api_key()
        response = await self._request(
            "send_message",
            "POST",
            self.chat_url,
            headers=headers,
            json={"text": text, "stream": False},
        )
        return self._json(response)

    async def list_resources(self) -> ResourceListing:
        """
        Fetch avatars and voices.

        A failing list is reported in its `*_error` field instead of failing
        the whole call. Transport errors still raise.
        """
        headers = self._service_headers()
        listing = ResourceListing()

        avatars = await self._request(
            "list_avatars",
            "GET",
            f"{self.api_url}/v1/avatars",
            headers=headers,
            raise_for_status=False,
        )
        if avatars.is_success:
            listing.avatars = self._json(avatars)
        else:
            listing.avatars_error = f"Failed to fetch avatars: {avatars.status_code}"

        voices = await self._request(
            "list_voices",
            "GET",
            f"{self.api_url}/v1/voices",
            headers=headers,
            raise_for_status=False,
        )
        if voices.is_success:
            listing.voices = self._json(voices)
        else:
            listing.voices_error = f"Failed to fetch voices: {voices.status_code}"

        return listing

    async def create_legacy_session(self, avatar_id: str, voice_id: str) -> Any:
        """Create a session with the older bearer-API-key endpoint."""
        response = await self._request(
            "create_legacy_session",
            "POST",
            f"{self.api_url}/v1/sessions",
            headers={
                "Authorization": f"Bearer {self._require_api_key()}",
                "Accept": "application/json",
            },
            json={"avatar_id": avatar_id, "voice_id": voice_id},
        )
        return self._json(response)

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    # ========================================================================
    # Private Helper Methods
    # ========================================================================

    def _require_api_key(self) -> str:
        if not self.api_key:
            raise VendorNotConfiguredError()
        return self.api_key

    def _service_headers(self) -> dict[str, str]:
        return {"X-API-KEY": self._require_api_key(), "Accept": "application/json"}

    def _session_headers(self, session_token: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {session_token}", "Accept": "application/json"}

    async def _request(
        self,
        operation: str,
        method: str,
        url: str,
        headers: dict[str, str],
        json: dict[str, Any] | None = None,
        accept_not_found: bool = False,
        raise_for_status: bool = True,
    ) -> httpx.Response:
        """
        Perform one vendor call with timing and metrics.

        Raises:
            VendorError: Transport failure, timeout, or a non-2xx status
                (404 excepted when `accept_not_found`)
        """
        started = time.perf_counter()
        try:
            response = await self.http_client.request(
                method, url, headers=headers, json=json, timeout=self.timeout_seconds
            )
        except httpx.TimeoutException as e:
            metrics.record_vendor_call(operation, "timeout", time.perf_counter() - started)
            logger.error("vendor_request_timeout", operation=operation, error=str(e))
            raise VendorError(None, f"Timed out after {self.timeout_seconds}s") from e
        except httpx.HTTPError as e:
            metrics.record_vendor_call(operation, "transport_error", time.perf_counter() - started)
            logger.error("vendor_request_failed", operation=operation, error=str(e))
            raise VendorError(None, str(e)) from e

        duration = time.perf_counter() - started

        if response.is_success or (accept_not_found and response.status_code == 404):
            metrics.record_vendor_call(operation, "success", duration)
            return response

        metrics.record_vendor_call(operation, "error", duration)
        logger.warning(
            "vendor_error_response",
            operation=operation,
            status=response.status_code,
            body=response.text[:500],
        )
        if raise_for_status:
            error = ErrorResponse(status=response.status_code, body=response.text)
            raise VendorError(error.status, error.body)
        return response

    def _json(self, response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise VendorError(response.status_code, "Response is not valid JSON") from e

    def _parse(self, response: httpx.Response, kind: str) -> TokenResponse | StartResponse:
        """Validate the `data` object of a 2xx response as the expected variant."""
        payload = self._json(response)
        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, dict):
            data = payload if isinstance(payload, dict) else {}

        try:
            parsed = _vendor_response.validate_python({**data, "kind": kind})
        except ValidationError as e:
            logger.error("vendor_response_invalid", kind=kind, errors=e.error_count())
            raise VendorError(response.status_code, f"Malformed {kind} response") from e

        if isinstance(parsed, ErrorResponse):
            raise VendorError(parsed.status, parsed.body)
        return parsed


_gateway: LiveAvatarGateway | None = None


def get_liveavatar_gateway() -> LiveAvatarGateway:
    """Process-wide gateway sharing one connection pool."""
    global _gateway
    if _gateway is None:
        _gateway = LiveAvatarGateway(
            api_key=settings.liveavatar_api_key,
            api_url=settings.liveavatar_api_url,
            chat_url=settings.liveavatar_chat_url,
            timeout_seconds=settings.liveavatar_timeout_seconds,
            language=settings.liveavatar_language,
        )
    return _gateway


async def close_liveavatar_gateway() -> None:
    """Close the shared gateway client on shutdown."""
    global _gateway
    if _gateway is not None:
        await _gateway.close()
        _gateway = None
