"""Tests for the configuration module."""

import pytest
from datetime import timedelta
from pydantic import SecretStr, ValidationError

from dexcom_share.config import Settings
from dexcom_share.domain.configuration import DEFAULT_AGENT, DEFAULT_APPLICATION_ID, PollConfig, ShareServerConfig
from dexcom_share.domain.session import Credentials


class TestSettingsDefaults:
    """Test that all settings have sensible defaults."""

    def test_settings_can_be_instantiated_with_defaults(self):
        """Test that Settings can be instantiated without any environment variables."""
        settings = Settings()
        assert settings is not None

    def test_general_defaults(self):
        settings = Settings()
        assert settings.LOG_LEVEL == "INFO"
        assert settings.DEXCOM_MODE == "production"

    def test_account_defaults(self):
        settings = Settings()
        assert settings.DEXCOM_ACCOUNT_NAME == ""
        assert settings.DEXCOM_PASSWORD.get_secret_value() == ""
        assert settings.DEXCOM_APPLICATION_ID == DEFAULT_APPLICATION_ID

    def test_polling_defaults(self):
        settings = Settings()
        assert settings.DEXCOM_POLL_INTERVAL == 300
        assert settings.DEXCOM_POLL_SLACK == 10
        assert settings.DEXCOM_RETRY_MIN_TIMEOUT == 5.0
        assert settings.DEXCOM_RETRY_MAX_TIMEOUT == 300.0
        assert settings.DEXCOM_FETCH_MAX_ATTEMPTS == 1000
        assert settings.DEXCOM_LOGIN_MAX_ATTEMPTS == 10

    def test_password_is_secret_str(self):
        settings = Settings()
        assert isinstance(settings.DEXCOM_PASSWORD, SecretStr)


class TestSettingsFromEnvironment:
    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("DEXCOM_ACCOUNT_NAME", "jane")
        monkeypatch.setenv("DEXCOM_PASSWORD", "hunter2")
        monkeypatch.setenv("DEXCOM_POLL_INTERVAL", "60")

        settings = Settings()

        assert settings.DEXCOM_ACCOUNT_NAME == "jane"
        assert settings.DEXCOM_PASSWORD.get_secret_value() == "hunter2"
        assert settings.DEXCOM_POLL_INTERVAL == 60
        assert "hunter2" not in repr(settings)


class TestDomainConversion:
    def test_credentials(self):
        settings = Settings(DEXCOM_ACCOUNT_NAME="jane", DEXCOM_PASSWORD="secret")
        credentials = settings.credentials()

        assert isinstance(credentials, Credentials)
        assert credentials.account_name == "jane"
        assert credentials.password.get_secret_value() == "secret"
        assert credentials.application_id == DEFAULT_APPLICATION_ID

    def test_server_config_us(self):
        server = Settings().server_config()

        assert isinstance(server, ShareServerConfig)
        assert server.agent == DEFAULT_AGENT
        assert server.login_url == (
            "https://share1.dexcom.com/ShareWebServices/Services/General/LoginPublisherAccountByName"
        )
        assert server.latest_glucose_url == (
            "https://share1.dexcom.com/ShareWebServices/Services/Publisher/ReadPublisherLatestGlucoseValues"
        )

    def test_server_config_outside_us(self):
        server = Settings(DEXCOM_REGION="OUS").server_config()
        assert server.base_url == "https://shareous1.dexcom.com"

    def test_server_config_base_url_override(self):
        server = Settings(DEXCOM_BASE_URL="http://localhost:8080/").server_config()
        assert server.login_url.startswith("http://localhost:8080/ShareWebServices/")

    def test_unknown_region(self):
        with pytest.raises(ValueError, match="DEXCOM_REGION"):
            Settings(DEXCOM_REGION="eu").server_config()

    def test_poll_config(self):
        settings = Settings(DEXCOM_RETRY_MIN_TIMEOUT=1, DEXCOM_RETRY_MAX_TIMEOUT=60, DEXCOM_MAX_WINDOW_MINUTES=720)
        config = settings.poll_config()

        assert isinstance(config, PollConfig)
        assert config.poll_interval_base == timedelta(minutes=5)
        assert config.poll_interval_slack == timedelta(seconds=10)
        assert config.wait_time == timedelta(minutes=5, seconds=10)
        assert config.retry_min_backoff == timedelta(seconds=1)
        assert config.retry_max_backoff == timedelta(minutes=1)
        assert config.fetch_max_attempts == 1000
        assert config.max_window_minutes == 720
        assert config.read_minutes == 1440
        assert config.read_max_count == 1000

    def test_poll_config_is_immutable(self):
        config = Settings().poll_config()
        with pytest.raises(ValidationError):
            config.fetch_max_attempts = 1
