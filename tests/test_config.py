"""
Tests for fail-fast settings validation.
"""

from decimal import Decimal

import pytest

from app.config import ConfigurationError, Settings

DB_URL = "postgresql+asyncpg://u:p@localhost/db"


class TestSettingsValidation:
    """Critical configuration is checked at construction."""

    def test_defaults(self):
        s = Settings(database_url=DB_URL, _env_file=None)

        assert s.credit_policy == "upfront"
        assert s.cleanup_grace_period_seconds == 300
        assert s.default_price_per_minute_eur == Decimal("1.5")

    def test_missing_database_url(self, monkeypatch):
        monkeypatch.delenv("DATABASE_URL", raising=False)

        with pytest.raises(ConfigurationError):
            Settings(database_url="", _env_file=None)

    def test_non_postgres_url(self):
        with pytest.raises(ConfigurationError):
            Settings(database_url="sqlite:///x.db", _env_file=None)

    def test_negative_grace_period(self):
        with pytest.raises(ConfigurationError):
            Settings(database_url=DB_URL, cleanup_grace_period_seconds=-1, _env_file=None)

    def test_non_positive_default_price(self):
        with pytest.raises(ConfigurationError):
            Settings(database_url=DB_URL, default_price_per_minute_eur=0, _env_file=None)

    def test_supabase_urls(self):
        s = Settings(
            database_url=DB_URL, supabase_url="https://ref.supabase.co/", _env_file=None
        )

        assert s.supabase_issuer == "https://ref.supabase.co/auth/v1"
        assert s.supabase_jwks_url == "https://ref.supabase.co/auth/v1/.well-known/jwks.json"
