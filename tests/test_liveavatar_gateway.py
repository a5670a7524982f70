"""
Tests for LiveAvatarGateway.

The vendor is simulated with httpx.MockTransport; each test inspects the
requests the gateway sent and the typed results it returned.
"""

import json
from collections.abc import Callable

import httpx
import pytest

from app.exceptions import VendorError, VendorNotConfiguredError
from app.models.liveavatar import StartResponse, StopOutcome, TokenResponse
from app.services.liveavatar_gateway import LiveAvatarGateway

API_URL = "https://vendor.test"
CHAT_URL = "https://chat.vendor.test/v1/sessions/chat"


def make_gateway(
    handler: Callable[[httpx.Request], httpx.Response], api_key: str = "vendor-key"
) -> tuple[LiveAvatarGateway, list[httpx.Request]]:
    """Gateway wired to `handler`, plus the list of captured requests."""
    seen: list[httpx.Request] = []

    def recording(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return handler(request)

    client = httpx.AsyncClient(transport=httpx.MockTransport(recording))
    gateway = LiveAvatarGateway(
        api_key=api_key, api_url=API_URL, chat_url=CHAT_URL, http_client=client
    )
    return gateway, seen


class TestCreateToken:
    """Tests for POST /v1/sessions/token."""

    async def test_token_request_shape(self) -> None:
        gateway, seen = make_gateway(
            lambda r: httpx.Response(
                200, json={"data": {"session_id": "la-1", "session_token": "tok-1"}}
            )
        )

        token = await gateway.create_token("avatar-1", "ctx-1", voice_id="voice-1")

        assert isinstance(token, TokenResponse)
        assert token.session_id == "la-1"
        assert token.session_token == "tok-1"

        request = seen[0]
        assert request.method == "POST"
        assert str(request.url) == f"{API_URL}/v1/sessions/token"
        assert request.headers["X-API-KEY"] == "vendor-key"
        assert json.loads(request.content) == {
            "mode": "FULL",
            "avatar_id": "avatar-1",
            "avatar_persona": {"context_id": "ctx-1", "language": "en", "voice_id": "voice-1"},
        }

    async def test_voice_omitted_when_absent(self) -> None:
        gateway, seen = make_gateway(
            lambda r: httpx.Response(200, json={"session_id": "la-1", "session_token": "tok-1"})
        )

        await gateway.create_token("avatar-1", "ctx-1")

        assert "voice_id" not in json.loads(seen[0].content)["avatar_persona"]

    async def test_malformed_token_payload(self) -> None:
        gateway, _ = make_gateway(lambda r: httpx.Response(200, json={"data": {"foo": "bar"}}))

        with pytest.raises(VendorError) as exc_info:
            await gateway.create_token("avatar-1", "ctx-1")

        assert exc_info.value.body == "Malformed token response"

    async def test_non_json_body(self) -> None:
        gateway, _ = make_gateway(lambda r: httpx.Response(200, text="<html>"))

        with pytest.raises(VendorError) as exc_info:
            await gateway.create_token("avatar-1", "ctx-1")

        assert exc_info.value.body == "Response is not valid JSON"

    async def test_error_status_raises_with_body(self) -> None:
        gateway, _ = make_gateway(lambda r: httpx.Response(401, text="bad key"))

        with pytest.raises(VendorError) as exc_info:
            await gateway.create_token("avatar-1", "ctx-1")

        assert exc_info.value.status == 401
        assert exc_info.value.body == "bad key"

    async def test_not_configured(self) -> None:
        gateway, seen = make_gateway(lambda r: httpx.Response(200), api_key="")

        with pytest.raises(VendorNotConfiguredError):
            await gateway.create_token("avatar-1", "ctx-1")

        assert seen == []
        assert gateway.is_configured is False


class TestStartAndStop:
    """Tests for session-token calls."""

    async def test_start_forwards_extra_fields(self) -> None:
        gateway, seen = make_gateway(
            lambda r: httpx.Response(
                200,
                json={"data": {"livekit_url": "wss://lk", "livekit_client_token": "lk-tok"}},
            )
        )

        started = await gateway.start_session("tok-1")

        assert isinstance(started, StartResponse)
        assert started.fields == {"livekit_url": "wss://lk", "livekit_client_token": "lk-tok"}
        assert seen[0].headers["Authorization"] == "Bearer tok-1"
        assert "X-API-KEY" not in seen[0].headers

    async def test_stop_success(self) -> None:
        gateway, seen = make_gateway(lambda r: httpx.Response(200, json={"code": 1000}))

        assert await gateway.stop_session("tok-1") == StopOutcome.STOPPED
        assert str(seen[0].url) == f"{API_URL}/v1/sessions/stop"

    async def test_stop_not_found_is_not_an_error(self) -> None:
        gateway, _ = make_gateway(lambda r: httpx.Response(404, text="gone"))

        assert await gateway.stop_session("tok-1") == StopOutcome.NOT_FOUND

    async def test_stop_server_error_raises(self) -> None:
        gateway, _ = make_gateway(lambda r: httpx.Response(500, text="oops"))

        with pytest.raises(VendorError):
            await gateway.stop_session("tok-1")

    async def test_timeout_becomes_vendor_error(self) -> None:
        def timeout(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        gateway, _ = make_gateway(timeout)

        with pytest.raises(VendorError) as exc_info:
            await gateway.stop_session("tok-1")

        assert exc_info.value.status is None
        assert "Timed out" in exc_info.value.body

    async def test_transport_error_becomes_vendor_error(self) -> None:
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        gateway, _ = make_gateway(refuse)

        with pytest.raises(VendorError):
            await gateway.start_session("tok-1")


class TestPassThroughs:
    """Tests for chat, listing and legacy session calls."""

    async def test_send_message(self) -> None:
        gateway, seen = make_gateway(lambda r: httpx.Response(200, json={"ok": True}))

        result = await gateway.send_message("tok-1", "hello")

        assert result == {"ok": True}
        request = seen[0]
        assert str(request.url) == CHAT_URL
        assert request.headers["Authorization"] == "Bearer tok-1"
        assert request.headers["X-API-Key"] == "vendor-key"
        assert json.loads(request.content) == {"text": "hello", "stream": False}

    async def test_list_resources_partial_failure(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/v1/avatars":
                return httpx.Response(200, json=[{"id": "a1"}])
            return httpx.Response(503, text="down")

        gateway, _ = make_gateway(handler)

        listing = await gateway.list_resources()

        assert listing.avatars == [{"id": "a1"}]
        assert listing.voices is None
        assert listing.avatars_error is None
        assert listing.voices_error == "Failed to fetch voices: 503"

    async def test_legacy_session_uses_bearer_api_key(self) -> None:
        gateway, seen = make_gateway(lambda r: httpx.Response(200, json={"session_id": "s"}))

        result = await gateway.create_legacy_session("avatar-1", "voice-1")

        assert result == {"session_id": "s"}
        assert seen[0].headers["Authorization"] == "Bearer vendor-key"
        assert json.loads(seen[0].content) == {"avatar_id": "avatar-1", "voice_id": "voice-1"}

    async def test_close_releases_client(self) -> None:
        gateway, _ = make_gateway(lambda r: httpx.Response(200))

        await gateway.close()

        assert gateway._http_client is None
