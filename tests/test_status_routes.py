"""
Tests for Status API Routes.

Tests dependency checks and the aggregated status endpoint.
"""

from contextlib import asynccontextmanager
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from fastapi.testclient import TestClient

from app.api import status_routes
from app.api.status_routes import (
    ProviderStatus,
    StatusLevel,
    calculate_overall_status,
    check_liveavatar,
    check_migrations,
    check_postgresql,
)


def provider(status: StatusLevel) -> ProviderStatus:
    return ProviderStatus(status=status, last_check=datetime.now(UTC).isoformat())


def mock_http_client(get: AsyncMock) -> MagicMock:
    """Patchable replacement for httpx.AsyncClient used as a context manager."""
    mock_client = AsyncMock()
    mock_client.get = get
    mock_client.__aenter__ = AsyncMock(return_value=mock_client)
    mock_client.__aexit__ = AsyncMock(return_value=None)
    return MagicMock(return_value=mock_client)


class TestCalculateOverallStatus:
    """Tests for calculate_overall_status function."""

    def test_all_operational(self):
        providers = {
            "postgresql": provider(StatusLevel.OPERATIONAL),
            "liveavatar": provider(StatusLevel.OPERATIONAL),
        }
        assert calculate_overall_status(providers) == StatusLevel.OPERATIONAL

    def test_one_degraded(self):
        providers = {
            "postgresql": provider(StatusLevel.OPERATIONAL),
            "migrations": provider(StatusLevel.DEGRADED),
        }
        assert calculate_overall_status(providers) == StatusLevel.DEGRADED

    def test_outage_takes_priority_over_degraded(self):
        """Outage status takes priority over degraded."""
        providers = {
            "postgresql": provider(StatusLevel.OUTAGE),
            "migrations": provider(StatusLevel.DEGRADED),
        }
        assert calculate_overall_status(providers) == StatusLevel.OUTAGE


class TestCheckPostgresql:
    """Tests for check_postgresql function."""

    async def test_postgresql_operational(self):
        """PostgreSQL check returns operational on success."""
        mock_db = AsyncMock()

        @asynccontextmanager
        async def mock_get_db_session():
            yield mock_db

        with patch("app.api.status_routes.get_db_session", mock_get_db_session):
            result = await check_postgresql()

        assert result.status == StatusLevel.OPERATIONAL
        assert result.latency_ms is not None
        assert result.latency_ms >= 0
        mock_db.execute.assert_awaited_once()

    async def test_postgresql_outage_on_error(self):
        """PostgreSQL check returns outage on connection error."""

        @asynccontextmanager
        async def mock_get_db_session():
            raise ConnectionError("Cannot connect")
            yield  # noqa: unreachable

        with patch("app.api.status_routes.get_db_session", mock_get_db_session):
            result = await check_postgresql()

        assert result.status == StatusLevel.OUTAGE
        assert result.message == "Connection failed"


class TestCheckLiveAvatar:
    """Tests for check_liveavatar function."""

    async def test_liveavatar_operational(self):
        response = MagicMock(is_success=True, status_code=200)

        with patch("httpx.AsyncClient", mock_http_client(AsyncMock(return_value=response))):
            result = await check_liveavatar()

        assert result.status == StatusLevel.OPERATIONAL

    async def test_liveavatar_unexpected_status(self):
        response = MagicMock(is_success=False, status_code=401)

        with patch("httpx.AsyncClient", mock_http_client(AsyncMock(return_value=response))):
            result = await check_liveavatar()

        assert result.status == StatusLevel.DEGRADED
        assert result.message == "Unexpected status: 401"

    async def test_liveavatar_timeout(self):
        get = AsyncMock(side_effect=httpx.TimeoutException("Timeout"))

        with patch("httpx.AsyncClient", mock_http_client(get)):
            result = await check_liveavatar()

        assert result.status == StatusLevel.OUTAGE
        assert result.message == "Timeout"

    async def test_liveavatar_connection_error(self):
        get = AsyncMock(side_effect=httpx.ConnectError("refused"))

        with patch("httpx.AsyncClient", mock_http_client(get)):
            result = await check_liveavatar()

        assert result.status == StatusLevel.OUTAGE
        assert result.message == "Connection failed"

    async def test_liveavatar_not_configured(self):
        with patch.object(status_routes.settings, "liveavatar_api_key", ""):
            result = await check_liveavatar()

        assert result.status == StatusLevel.OUTAGE
        assert result.message == "Not configured"


class TestCheckMigrations:
    """Tests for check_migrations function."""

    async def test_up_to_date(self):
        with patch(
            "app.api.status_routes.check_migrations_status",
            return_value={"current_revision": "abc", "head_revision": "abc", "pending": False},
        ):
            result = await check_migrations()

        assert result.status == StatusLevel.OPERATIONAL
        assert result.message == "Revision abc"

    async def test_pending(self):
        with patch(
            "app.api.status_routes.check_migrations_status",
            return_value={"current_revision": "abc", "head_revision": "def", "pending": True},
        ):
            result = await check_migrations()

        assert result.status == StatusLevel.DEGRADED
        assert "abc -> def" in result.message

    async def test_check_failed(self):
        with patch(
            "app.api.status_routes.check_migrations_status",
            return_value={"error": "no database"},
        ):
            result = await check_migrations()

        assert result.status == StatusLevel.DEGRADED


class TestStatusEndpoint:
    """Tests for GET /v1/status."""

    @pytest.fixture(autouse=True)
    def clear_cache(self):
        status_routes._status_cache.clear()
        yield
        status_routes._status_cache.clear()

    def test_status_aggregates_and_caches(self, client: TestClient):
        checks = {
            "check_postgresql": AsyncMock(return_value=provider(StatusLevel.OPERATIONAL)),
            "check_liveavatar": AsyncMock(return_value=provider(StatusLevel.DEGRADED)),
            "check_migrations": AsyncMock(return_value=provider(StatusLevel.OPERATIONAL)),
        }

        with patch.multiple("app.api.status_routes", **checks):
            first = client.get("/v1/status")
            second = client.get("/v1/status")

        assert first.status_code == 200
        data = first.json()
        assert data["status"] == "degraded"
        assert set(data["providers"]) == {"postgresql", "liveavatar", "migrations"}
        assert second.json() == data
        checks["check_postgresql"].assert_awaited_once()
