"""Application configuration using Pydantic Settings"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator
from typing import List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
import os
import re


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Database
    DATABASE_URL: str = "sqlite:///./data/app.db"

    # Application
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # API
    API_V1_PREFIX: str = "/api/v1"
    # Stored as string to avoid pydantic-settings JSON parsing; use cors_origins_list property
    CORS_ORIGINS: str = "*"

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS_ORIGINS from comma-separated string"""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    # FCM Configuration
    FCM_PROJECT_ID: Optional[str] = None  # Firebase project ID
    FCM_CREDENTIALS_FILE: Optional[str] = None  # Path to service account JSON
    FCM_BATCH_SIZE: int = 500  # send_each_for_multicast hard limit

    @property
    def fcm_ready(self) -> bool:
        """Check if FCM is properly configured and ready to use."""
        return (
            self.FCM_PROJECT_ID is not None
            and self.FCM_CREDENTIALS_FILE is not None
            and os.path.exists(self.FCM_CREDENTIALS_FILE)
        )

    @field_validator('FCM_BATCH_SIZE', mode='after')
    @classmethod
    def validate_batch_size(cls, v: int) -> int:
        if not 1 <= v <= 500:
            raise ValueError("FCM_BATCH_SIZE must be between 1 and 500")
        return v

    # Token validation policy
    TOKEN_MIN_LENGTH: int = 20
    TOKEN_PATTERN: Optional[str] = r"^[A-Za-z0-9_\-:.\[\]]+$"

    @field_validator('TOKEN_PATTERN', mode='after')
    @classmethod
    def validate_token_pattern(cls, v: Optional[str]) -> Optional[str]:
        """Reject patterns that do not compile; empty string disables the check."""
        if v is None or not v.strip():
            return None
        try:
            re.compile(v)
        except re.error as e:
            raise ValueError(f"TOKEN_PATTERN is not a valid regex: {e}")
        return v

    # Shop auto-close schedule
    SHOP_AUTO_CLOSE_ENABLED: bool = True
    SHOP_TIMEZONE: str = "Asia/Kolkata"
    SHOP_CLOSE_TIME: str = "17:00"  # HH:MM, local to SHOP_TIMEZONE
    SHOP_CLOSE_TITLE: str = "Shop Closed"
    SHOP_CLOSE_BODY: str = "We're closed for today. See you tomorrow!"

    @field_validator('SHOP_TIMEZONE', mode='after')
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown timezone: {v}")
        return v

    @field_validator('SHOP_CLOSE_TIME', mode='after')
    @classmethod
    def validate_close_time(cls, v: str) -> str:
        """Validate time is in HH:MM format."""
        if not re.match(r'^([01]\d|2[0-3]):([0-5]\d)$', v):
            raise ValueError("SHOP_CLOSE_TIME must be in HH:MM format (e.g., '17:00')")
        return v

    # Stale registration sweep, 0 disables
    REGISTRATION_MAX_AGE_DAYS: int = 0

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
    )


# Global settings instance
settings = Settings()
