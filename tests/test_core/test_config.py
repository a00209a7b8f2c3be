"""Tests for environment-driven settings."""

import pytest
from pydantic import ValidationError

from apnsender.core.config import Settings
from apnsender.push.constants import JWT_TOKEN_LIFETIME_SECONDS
from apnsender.push.models import APNSEnvironment


APNS_ENV_VARS = [
    "APNS_ENVIRONMENT",
    "APNS_BUNDLE_ID",
    "APNS_TEAM_ID",
    "APNS_KEY_ID",
    "APNS_PRIVATE_KEY",
    "APNS_KEY_FILE",
    "APNS_TOKEN_EXPIRY_SECONDS",
    "LOG_LEVEL",
    "LOG_DIR",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in APNS_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def make_settings(**env) -> Settings:
    return Settings(_env_file=None, **env)


class TestSettings:
    """Tests for Settings defaults and validation."""

    def test_defaults(self):
        settings = make_settings()

        assert settings.LOG_LEVEL == "INFO"
        assert settings.LOG_DIR is None
        assert settings.APNS_ENVIRONMENT == APNSEnvironment.PRODUCTION
        assert settings.APNS_TOKEN_EXPIRY_SECONDS == JWT_TOKEN_LIFETIME_SECONDS
        assert settings.apns_ready is False

    def test_reads_environment(self, monkeypatch, p8_key):
        monkeypatch.setenv("APNS_ENVIRONMENT", "sandbox")
        monkeypatch.setenv("APNS_BUNDLE_ID", "com.example.app")
        monkeypatch.setenv("APNS_TEAM_ID", "TEAM123456")
        monkeypatch.setenv("APNS_KEY_ID", "ABCDE12345")
        monkeypatch.setenv("APNS_PRIVATE_KEY", p8_key)

        settings = make_settings()

        assert settings.apns_ready is True
        config = settings.apns_config()
        assert config.environment == APNSEnvironment.SANDBOX
        assert config.bundle_id == "com.example.app"
        assert config.signing_material().private_key == p8_key

    def test_key_file_must_exist(self, tmp_path):
        settings = make_settings(
            APNS_BUNDLE_ID="com.example.app",
            APNS_TEAM_ID="TEAM123456",
            APNS_KEY_ID="ABCDE12345",
            APNS_KEY_FILE=str(tmp_path / "missing.p8"),
        )

        assert settings.apns_ready is False
        with pytest.raises(ValueError, match="not configured"):
            settings.apns_config()

    def test_key_file_config(self, tmp_path, p8_key):
        key_file = tmp_path / "AuthKey_TEST.p8"
        key_file.write_text(p8_key)

        settings = make_settings(
            APNS_BUNDLE_ID="com.example.app",
            APNS_TEAM_ID="TEAM123456",
            APNS_KEY_ID="ABCDE12345",
            APNS_KEY_FILE=str(key_file),
        )

        assert settings.apns_ready is True
        assert settings.apns_config().key_file == str(key_file)

    def test_log_level_normalized(self):
        assert make_settings(LOG_LEVEL="debug").LOG_LEVEL == "DEBUG"

    def test_invalid_log_level(self):
        with pytest.raises(ValidationError):
            make_settings(LOG_LEVEL="LOUD")

    @pytest.mark.parametrize("expiry", [0, 3601])
    def test_token_expiry_bounds(self, expiry):
        with pytest.raises(ValidationError):
            make_settings(APNS_TOKEN_EXPIRY_SECONDS=expiry)

    def test_token_provider_uses_expiry(self):
        provider = make_settings(APNS_TOKEN_EXPIRY_SECONDS=1200).apns_token_provider()

        assert provider.expiry_seconds == 1200
        assert len(provider) == 0
