"""Tests for pydantic-settings configuration."""

import pytest
from pydantic import ValidationError as PydanticValidationError

from tenant_ledger.config import (
    GoogleSheetsSettings,
    LedgerSettings,
    get_settings,
    validate_all_settings,
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    """Isolate from the developer's environment and .env file."""
    monkeypatch.chdir(tmp_path)
    for name in (
        "LEDGER_STORAGE_BACKEND",
        "LEDGER_MAX_BATCH_SIZE",
        "LEDGER_DEFAULT_COLOR",
        "GOOGLE_SHEETS_CREDENTIALS_PATH",
        "GOOGLE_SHEETS_SPREADSHEET_ID",
    ):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class TestLedgerSettings:
    """Tests for LedgerSettings."""

    def test_defaults(self):
        """Test default values."""
        settings = LedgerSettings()
        assert settings.storage_backend == "memory"
        assert settings.default_color == "#2196f3"
        assert settings.max_batch_size == 500
        assert settings.conflict_retry_attempts == 5
        assert settings.persist_audit_events is True

    def test_reads_environment(self, monkeypatch):
        """Test LEDGER_ prefixed environment variables."""
        monkeypatch.setenv("LEDGER_MAX_BATCH_SIZE", "50")
        monkeypatch.setenv("LEDGER_DEFAULT_COLOR", "#000000")
        settings = LedgerSettings()
        assert settings.max_batch_size == 50
        assert settings.default_color == "#000000"

    def test_rejects_unknown_backend(self):
        with pytest.raises(PydanticValidationError):
            LedgerSettings(storage_backend="postgres")

    def test_batch_size_is_bounded(self):
        """A batch may never exceed 500 writes."""
        with pytest.raises(PydanticValidationError):
            LedgerSettings(max_batch_size=501)
        with pytest.raises(PydanticValidationError):
            LedgerSettings(max_batch_size=0)


class TestGoogleSheetsSettings:
    """Tests for GoogleSheetsSettings."""

    def test_missing_credentials_file_warns(self):
        with pytest.warns(UserWarning, match="credentials file not found"):
            settings = GoogleSheetsSettings(
                credentials_path="missing.json",
                spreadsheet_id="sheet-1",
            )
        assert settings.worksheet_rows == 1000
        assert settings.worksheet_prefix == ""

    def test_required_fields(self):
        with pytest.raises(PydanticValidationError):
            GoogleSheetsSettings()


class TestValidateAllSettings:
    """Tests for validate_all_settings."""

    def test_memory_backend_skips_google_sheets(self):
        results = validate_all_settings()
        assert results == {"ledger": True}

    def test_google_sheets_backend_reports_missing_configuration(self, monkeypatch):
        monkeypatch.setenv("LEDGER_STORAGE_BACKEND", "google_sheets")
        results = validate_all_settings()
        assert results["ledger"] is True
        assert results["google_sheets"] is False
        assert "google_sheets_error" in results

    def test_invalid_ledger_settings_reported(self, monkeypatch):
        monkeypatch.setenv("LEDGER_STORAGE_BACKEND", "postgres")
        results = validate_all_settings()
        assert results["ledger"] is False
        assert "ledger_error" in results
