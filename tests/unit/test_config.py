"""
Unit Tests - Configuration
"""
import pytest
from pydantic import ValidationError

from starschema.config.settings import DatabaseSettings, IngestionSettings, Settings


class TestSettings:
    """Tests for the settings classes"""

    def test_ingestion_defaults(self):
        """Test retry policy defaults"""
        ingestion = IngestionSettings()

        assert ingestion.max_retries == 5
        assert ingestion.retry_backoff_ms == 200
        assert ingestion.backoff_multiplier == 2.0
        assert ingestion.fiscal_year_start_month == 1

    def test_ingestion_from_environment(self, monkeypatch):
        """Test INGEST_ variables override defaults"""
        monkeypatch.setenv("INGEST_MAX_RETRIES", "2")
        monkeypatch.setenv("INGEST_FISCAL_YEAR_START_MONTH", "7")

        ingestion = IngestionSettings()

        assert ingestion.max_retries == 2
        assert ingestion.fiscal_year_start_month == 7

    def test_invalid_fiscal_month(self, monkeypatch):
        """Test a fiscal start outside 1..12 is refused"""
        monkeypatch.setenv("INGEST_FISCAL_YEAR_START_MONTH", "13")

        with pytest.raises(ValidationError):
            IngestionSettings()

    def test_database_url_override(self, monkeypatch):
        """Test POSTGRES_URL replaces the composed asyncpg URL"""
        assert DatabaseSettings().async_url.startswith("postgresql+asyncpg://")

        monkeypatch.setenv("POSTGRES_URL", "sqlite+aiosqlite:///warehouse.db")

        assert DatabaseSettings().async_url == "sqlite+aiosqlite:///warehouse.db"

    def test_app_env_validated(self, monkeypatch):
        """Test APP_ENV must be a known environment"""
        monkeypatch.setenv("APP_ENV", "Testing")
        assert Settings().app_env == "testing"

        monkeypatch.setenv("APP_ENV", "qa")
        with pytest.raises(ValidationError):
            Settings()
