"""Application configuration."""
from collections import Counter
from datetime import timedelta
from functools import lru_cache
import math

from pydantic import ValidationInfo, field_validator, model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # App
    app_name: str = "Townsquare"
    debug: bool = False
    log_level: str = "INFO"

    # Database
    database_url: str = "sqlite:///./data/townsquare.db"

    # Access tokens
    secret_key: str
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 15

    # Refresh sessions
    refresh_token_hash_key: str
    refresh_token_expire_days: int | None = None  # None: bounded by device inactivity only

    # Devices
    device_inactivity_days: int = 30
    device_unknown_fail_closed: bool = False
    reaper_enabled: bool = True
    reaper_interval_hours: int = 24

    # Cookies
    access_cookie_name: str = "ts_access"
    refresh_cookie_name: str = "ts_refresh"
    device_cookie_name: str = "ts_device"
    refresh_cookie_path: str = "/api/auth"
    cookie_samesite: str = "strict"
    cookie_secure: bool = True
    device_cookie_max_age_days: int = 365

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

    @field_validator("secret_key", "refresh_token_hash_key")
    @classmethod
    def validate_key_strength(cls, value: str, info: ValidationInfo) -> str:
        """Fail closed if a signing/hashing key is weak or placeholder quality."""
        name = info.field_name.upper()
        if not value:
            raise ValueError(f"{name} must be set.")

        if len(value) < 32:
            raise ValueError(f"{name} must be at least 32 characters.")

        weak_values = {"changeme", "changeme-in-production", "secret", "password", "test"}
        lowered = value.lower()
        if lowered in weak_values or "changeme" in lowered:
            raise ValueError(f"{name} must not be a placeholder value.")

        counts = Counter(value)
        entropy_per_char = -sum((count / len(value)) * math.log2(count / len(value)) for count in counts.values())
        estimated_entropy_bits = entropy_per_char * len(value)
        if estimated_entropy_bits < 100:
            raise ValueError(f"{name} entropy is too low; use a cryptographically random value.")

        return value

    @field_validator("device_inactivity_days", "reaper_interval_hours", "access_token_expire_minutes")
    @classmethod
    def validate_positive(cls, value: int, info: ValidationInfo) -> int:
        if value <= 0:
            raise ValueError(f"{info.field_name.upper()} must be positive.")
        return value

    @model_validator(mode="after")
    def validate_distinct_keys(self) -> "Settings":
        """The refresh-secret HMAC key must not double as the JWT signing key."""
        if self.secret_key == self.refresh_token_hash_key:
            raise ValueError("REFRESH_TOKEN_HASH_KEY must differ from SECRET_KEY.")
        return self

    @property
    def access_token_ttl(self) -> timedelta:
        return timedelta(minutes=self.access_token_expire_minutes)

    @property
    def refresh_token_ttl(self) -> timedelta | None:
        if self.refresh_token_expire_days is None:
            return None
        return timedelta(days=self.refresh_token_expire_days)

    @property
    def inactivity_threshold(self) -> timedelta:
        return timedelta(days=self.device_inactivity_days)

    @property
    def reaper_interval(self) -> timedelta:
        return timedelta(hours=self.reaper_interval_hours)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
