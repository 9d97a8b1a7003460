"""Environment-driven settings."""

import pytest

from config import Settings
from exceptions import ConfigurationError

SETTING_VARS = (
    "EXCHANGE_RATE_API_URL",
    "RATE_BASE_CURRENCY",
    "RATE_FETCH_RETRIES",
    "RATE_FETCH_TIMEOUT",
    "RECEIPT_RANDOM_FLAG_RATE",
    "LOG_LEVEL",
    "LOG_FORMAT",
)


@pytest.fixture
def clean_env(monkeypatch):
    for name in SETTING_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestSettings:

    def test_defaults(self, clean_env):
        settings = Settings.from_env()
        assert settings.rate_base_currency == "INR"
        assert settings.rate_fetch_retries == 3
        assert settings.rate_fetch_timeout == 10.0
        assert settings.receipt_random_flag_rate == 0.05
        assert settings.log_level == "INFO"
        assert settings.log_format == "text"

    def test_values_are_normalised(self, clean_env):
        clean_env.setenv("RATE_BASE_CURRENCY", "usd")
        clean_env.setenv("LOG_FORMAT", "JSON")
        settings = Settings.from_env()
        assert settings.rate_base_currency == "USD"
        assert settings.log_format == "json"

    def test_non_numeric_retries(self, clean_env):
        clean_env.setenv("RATE_FETCH_RETRIES", "three")
        with pytest.raises(ConfigurationError, match="RATE_FETCH_RETRIES"):
            Settings.from_env()

    def test_unsupported_base_currency(self, clean_env):
        clean_env.setenv("RATE_BASE_CURRENCY", "JPY")
        with pytest.raises(ConfigurationError):
            Settings.from_env()

    def test_flag_rate_out_of_range(self, clean_env):
        clean_env.setenv("RECEIPT_RANDOM_FLAG_RATE", "1.5")
        with pytest.raises(ConfigurationError):
            Settings.from_env()
