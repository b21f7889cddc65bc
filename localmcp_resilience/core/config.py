# localmcp_resilience/core/config.py
from __future__ import annotations

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Resilience settings, loaded from environment variables and/or .env file.

    Every field can be overridden with a `RESILIENCE_` prefixed variable,
    e.g. `RESILIENCE_CIRCUIT_BREAKER_THRESHOLD=3`.
    """

    # Environment settings
    APP_NAME: str = "LocalMCP Resilience"
    APP_ENV: str = "development"
    LOG_LEVEL: str = "INFO"

    # Feature switches
    ENABLED: bool = True
    RETRY_ENABLED: bool = True
    CIRCUIT_BREAKER_ENABLED: bool = True
    HEALTH_CHECK_ENABLED: bool = True
    BACKUP_ENABLED: bool = True

    # Retry defaults
    RETRY_ATTEMPTS: int = Field(default=3, ge=1)
    RETRY_DELAY_MS: int = Field(default=1000, ge=0)
    RETRY_MAX_DELAY_MS: int = Field(default=30_000, ge=0)

    # Circuit breaker defaults
    CIRCUIT_BREAKER_THRESHOLD: int = Field(default=5, ge=1)
    CIRCUIT_BREAKER_TIMEOUT_MS: int = Field(default=30_000, ge=0)

    # Scheduled loops
    HEALTH_CHECK_INTERVAL_MS: int = Field(default=30_000, gt=0)
    HEALTH_PROBE_TIMEOUT_MS: int = Field(default=5_000, gt=0)
    HEALTH_CRITICAL_THRESHOLD: int = Field(default=3, ge=1)
    BACKUP_INTERVAL_MS: int = Field(default=3_600_000, gt=0)

    # Per-attempt timeout and shutdown grace
    OPERATION_TIMEOUT_MS: int = Field(default=10_000, gt=0)
    SHUTDOWN_GRACE_MS: int = Field(default=5_000, ge=0)

    @field_validator("APP_ENV", "LOG_LEVEL", mode="before")
    @classmethod
    def _strip(cls, value: str) -> str:
        """Tolerate stray whitespace in env values."""
        if isinstance(value, str):
            return value.strip()
        return value

    @model_validator(mode="after")
    def _check_delays(self) -> "Settings":
        """The backoff cap must not be below the base delay."""
        if self.RETRY_MAX_DELAY_MS < self.RETRY_DELAY_MS:
            raise ValueError(
                "RETRY_MAX_DELAY_MS must be greater than or equal to RETRY_DELAY_MS"
            )
        return self

    model_config = SettingsConfigDict(
        env_prefix="RESILIENCE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


settings = Settings()
