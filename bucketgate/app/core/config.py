import math

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings can be configured via environment variables or .env file.
    """

    # Debug mode - enables detailed error responses
    debug: bool = False

    # Redis settings (shared bucket store)
    redis_url: str = "redis://localhost:6379"
    redis_socket_timeout: float = 5.0  # Per-command timeout in seconds
    redis_socket_connect_timeout: float = 5.0

    # Token bucket settings
    rate_limit_capacity: float = 20  # Burst size (Y)
    rate_limit_refill_rate: float = 10  # Tokens per second (X)
    rate_limit_key_prefix: str = "rl"
    # Force SCRIPT LOAD on every check, for live script updates
    rate_limit_reload: bool = Field(default=False, validation_alias="RL_RELOAD")
    rate_limit_fail_closed: bool = (
        False  # If True, deny requests when Redis is unavailable
    )

    # Caller identity resolution
    rate_limit_user_header: str = "x-user-id"
    rate_limit_anonymous_id: str = "anonymous"

    # Logging settings
    log_level: str = "INFO"
    log_format: str = "text"  # text | structured | json

    @field_validator("rate_limit_capacity", "rate_limit_refill_rate")
    @classmethod
    def validate_rate_limit_positive(cls, v: float) -> float:
        """Validate bucket capacity and refill rate are positive and finite."""
        if not math.isfinite(v) or v <= 0:
            raise ValueError("Rate limit values must be positive")
        return v

    @field_validator("redis_socket_timeout", "redis_socket_connect_timeout")
    @classmethod
    def validate_timeout_positive(cls, v: float) -> float:
        """Validate timeout values are positive."""
        if v <= 0:
            raise ValueError("Timeout values must be positive")
        return v

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        v = v.lower()
        if v not in ("text", "structured", "json"):
            raise ValueError("log_format must be one of: text, structured, json")
        return v

    model_config = SettingsConfigDict(
        env_file=".env", extra="ignore", populate_by_name=True
    )


# Global settings instance
settings = Settings()
