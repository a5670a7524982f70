"""
Tests for the LiveAvatar pass-through routes.
"""

from unittest.mock import AsyncMock, MagicMock

from fastapi.testclient import TestClient

from app.exceptions import VendorError
from app.models.liveavatar import ResourceListing, StopOutcome


class TestLegacyStart:
    """Tests for POST /functions/v1/liveavatar-start."""

    URL = "/functions/v1/liveavatar-start"

    def test_returns_vendor_payload(
        self, authenticated_client: TestClient, mock_gateway: MagicMock
    ) -> None:
        mock_gateway.create_legacy_session = AsyncMock(return_value={"session_id": "s1"})

        response = authenticated_client.post(
            self.URL, json={"avatar_id": "avatar-1", "voice_id": "voice-1"}
        )

        assert response.status_code == 200
        assert response.json() == {"session_id": "s1"}
        mock_gateway.create_legacy_session.assert_awaited_once_with("avatar-1", "voice-1")

    def test_defaults_applied(
        self, authenticated_client: TestClient, mock_gateway: MagicMock
    ) -> None:
        mock_gateway.create_legacy_session = AsyncMock(return_value={})

        authenticated_client.post(self.URL, json={})

        mock_gateway.create_legacy_session.assert_awaited_once_with("default", "default")

    def test_vendor_error(self, authenticated_client: TestClient, mock_gateway: MagicMock) -> None:
        mock_gateway.create_legacy_session = AsyncMock(side_effect=VendorError(400, "bad avatar"))

        response = authenticated_client.post(self.URL, json={})

        assert response.status_code == 500
        assert response.json() == {"error": "Failed to create session (400): bad avatar"}

    def test_requires_auth(self, client: TestClient) -> None:
        assert client.post(self.URL, json={}).status_code == 401


class TestLegacyTerminate:
    """Tests for POST /functions/v1/liveavatar-terminate."""

    URL = "/functions/v1/liveavatar-terminate"

    def test_stops_session(self, authenticated_client: TestClient, mock_gateway: MagicMock) -> None:
        response = authenticated_client.post(self.URL, json={"session_token": "tok"})

        assert response.status_code == 200
        assert response.json() == {"success": True}
        mock_gateway.stop_session.assert_awaited_once_with("tok")

    def test_unknown_session_counts_as_stopped(
        self, authenticated_client: TestClient, mock_gateway: MagicMock
    ) -> None:
        mock_gateway.stop_session = AsyncMock(return_value=StopOutcome.NOT_FOUND)

        response = authenticated_client.post(self.URL, json={"session_token": "tok"})

        assert response.status_code == 200

    def test_missing_token(self, authenticated_client: TestClient) -> None:
        response = authenticated_client.post(self.URL, json={})

        assert response.status_code == 400
        assert response.json() == {"error": "session_token is required"}


class TestSendMessage:
    """Tests for POST /functions/v1/liveavatar-send-message."""

    URL = "/functions/v1/liveavatar-send-message"

    def test_forwards_message(
        self, authenticated_client: TestClient, mock_gateway: MagicMock
    ) -> None:
        mock_gateway.send_message = AsyncMock(return_value={"reply": "hi"})

        response = authenticated_client.post(self.URL, json={"session_token": "tok", "text": "yo"})

        assert response.status_code == 200
        assert response.json() == {"reply": "hi"}
        mock_gateway.send_message.assert_awaited_once_with("tok", "yo")

    def test_requires_text(self, authenticated_client: TestClient) -> None:
        response = authenticated_client.post(self.URL, json={"session_token": "tok"})

        assert response.status_code == 400
        assert response.json() == {"error": "session_token and text are required"}


class TestListResources:
    """Tests for /functions/v1/liveavatar-list-resources."""

    URL = "/functions/v1/liveavatar-list-resources"

    def test_partial_listing(
        self, authenticated_client: TestClient, mock_gateway: MagicMock
    ) -> None:
        mock_gateway.list_resources = AsyncMock(
            return_value=ResourceListing(
                avatars=[{"id": "a1"}], voices_error="Failed to fetch voices: 503"
            )
        )

        response = authenticated_client.get(self.URL)

        assert response.status_code == 200
        assert response.json() == {
            "avatars": [{"id": "a1"}],
            "voices_error": "Failed to fetch voices: 503",
        }

    def test_transport_failure(
        self, authenticated_client: TestClient, mock_gateway: MagicMock
    ) -> None:
        mock_gateway.list_resources = AsyncMock(side_effect=VendorError(None, "unreachable"))

        response = authenticated_client.post(self.URL)

        assert response.status_code == 500
        assert response.json()["error"] == "unreachable"
        assert "note" in response.json()
