"""
Tests for SyncSettings.
"""

from teamsync.core.config import SyncSettings, get_settings


class TestSyncSettings:
    """Test cases for SyncSettings."""

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("TEAMSYNC_STORE_API_KEY", raising=False)
        settings = SyncSettings(_env_file=None)

        assert settings.http_timeout_seconds == 30.0
        assert settings.signup_guard_seconds == 3.0
        assert settings.audit_log_limit == 500
        assert not settings.is_store_configured()

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("TEAMSYNC_STORE_BASE_URL", "https://docs.example.com")
        monkeypatch.setenv("TEAMSYNC_STORE_API_KEY", "sk-test-123")
        monkeypatch.setenv("TEAMSYNC_POLL_INTERVAL_SECONDS", "0.5")

        settings = SyncSettings(_env_file=None)

        assert settings.store_base_url == "https://docs.example.com"
        assert settings.poll_interval_seconds == 0.5
        assert settings.is_store_configured()

    def test_api_key_hidden_from_repr(self, monkeypatch):
        monkeypatch.setenv("TEAMSYNC_STORE_API_KEY", "sk-test-123")
        settings = SyncSettings(_env_file=None)
        assert "sk-test-123" not in repr(settings)
        assert settings.store_api_key.get_secret_value() == "sk-test-123"

    def test_field_names_accepted(self):
        settings = SyncSettings(_env_file=None, signup_guard_seconds=0.1)
        assert settings.signup_guard_seconds == 0.1

    def test_get_settings_cached(self):
        get_settings.cache_clear()
        assert get_settings() is get_settings()
        get_settings.cache_clear()
