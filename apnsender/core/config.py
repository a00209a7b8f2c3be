"""Application configuration using Pydantic Settings"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator
from typing import Optional
import os

from apnsender.push.constants import JWT_TOKEN_LIFETIME_SECONDS
from apnsender.push.models import APNSConfig, APNSEnvironment
from apnsender.push.token_provider import APNSTokenProvider


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_DIR: Optional[str] = None  # Enables rotating file logs when set

    # APNS account
    APNS_ENVIRONMENT: APNSEnvironment = APNSEnvironment.PRODUCTION
    APNS_BUNDLE_ID: Optional[str] = None  # App bundle ID, also the apns-topic
    APNS_TEAM_ID: Optional[str] = None  # 10-character team identifier
    APNS_KEY_ID: Optional[str] = None  # Auth key identifier
    APNS_PRIVATE_KEY: Optional[str] = None  # Inline .p8 contents (PEM or bare base64)
    APNS_KEY_FILE: Optional[str] = None  # Path to .p8 auth key file
    APNS_TOKEN_EXPIRY_SECONDS: int = JWT_TOKEN_LIFETIME_SECONDS

    @field_validator('LOG_LEVEL', mode='after')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level name."""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}")
        return v.upper()

    @field_validator('APNS_TOKEN_EXPIRY_SECONDS', mode='after')
    @classmethod
    def validate_token_expiry(cls, v: int) -> int:
        """Apple rejects provider tokens older than an hour."""
        if not 0 < v <= 3600:
            raise ValueError("APNS_TOKEN_EXPIRY_SECONDS must be between 1 and 3600")
        return v

    @property
    def apns_ready(self) -> bool:
        """Check if APNS is properly configured and ready to use."""
        has_key = bool(self.APNS_PRIVATE_KEY) or (
            self.APNS_KEY_FILE is not None and os.path.exists(self.APNS_KEY_FILE)
        )
        return (
            self.APNS_BUNDLE_ID is not None
            and self.APNS_TEAM_ID is not None
            and self.APNS_KEY_ID is not None
            and has_key
        )

    def apns_config(self) -> APNSConfig:
        """Build the APNS account configuration from these settings."""
        if not self.apns_ready:
            raise ValueError(
                "APNS is not configured: set APNS_BUNDLE_ID, APNS_TEAM_ID, APNS_KEY_ID "
                "and APNS_PRIVATE_KEY or an existing APNS_KEY_FILE"
            )
        return APNSConfig(
            bundle_id=self.APNS_BUNDLE_ID,
            team_id=self.APNS_TEAM_ID,
            key_id=self.APNS_KEY_ID,
            private_key=self.APNS_PRIVATE_KEY,
            key_file=self.APNS_KEY_FILE,
            environment=self.APNS_ENVIRONMENT,
        )

    def apns_token_provider(self) -> APNSTokenProvider:
        """Create a token provider using the configured expiry window."""
        return APNSTokenProvider(expiry_seconds=self.APNS_TOKEN_EXPIRY_SECONDS)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )


# Global settings instance
settings = Settings()
