"""
Application configuration from environment variables using Pydantic BaseSettings.

All configuration values are loaded from environment variables at startup.
No hardcoded IPs, URLs, or credentials.

CHANGELOG:
- 2026-10-19: Restrict LOG_LEVEL to the standard level names (STORY-110)
- 2026-10-02: Add BILLING_START_DATE and LOG_LEVEL (STORY-106)
- 2026-09-28: Add device-control endpoint settings (STORY-103)
- 2026-09-26: Initial creation (STORY-101)

TODO:
- None
"""

from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings

LogLevel = Literal["CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"]


def _split_csv(value: str, *, lower: bool = False) -> list[str]:
    """Split a comma-separated setting into trimmed, non-empty entries."""
    parts = [part.strip() for part in value.split(",")]
    if lower:
        parts = [part.lower() for part in parts]
    return [part for part in parts if part]


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Attributes:
        DATABASE_URL: PostgreSQL connection string (asyncpg).
        REDIS_URL: Redis connection string.
        AUTH_SECRET: Shared secret used to verify session tokens.
        AUTH_ALGORITHM: JWT signing algorithm.
        ADMIN_EMAILS: Comma-separated emails granted the admin role.
        MEMBER_EMAILS: Comma-separated emails granted the member role.
        USE_REAL_DEVICE_API: Use the real device-control endpoint for all devices.
        SPECIAL_DEVICE_IPS: Comma-separated device IPs that always use the
            real device-control endpoint.
        DEVICE_API_URL: Base URL of the device-control endpoint.
        DEVICE_API_USER: Basic-auth user for the device-control endpoint.
        DEVICE_API_PWD: Basic-auth password for the device-control endpoint.
        DEVICE_API_TIMEOUT_S: Request timeout for the device-control endpoint.
        SIMULATED_DELAY_S: Artificial latency of the simulated reading source.
        BILLING_START_DATE: Start date of the current billing period.
        CACHE_TTL_S: Redis cache TTL in seconds.
        LOG_LEVEL: Root logging level name, case-insensitive.
    """

    DATABASE_URL: str
    REDIS_URL: str
    AUTH_SECRET: str
    AUTH_ALGORITHM: str = "HS256"
    ADMIN_EMAILS: str = ""
    MEMBER_EMAILS: str = ""
    USE_REAL_DEVICE_API: bool = False
    SPECIAL_DEVICE_IPS: str = ""
    DEVICE_API_URL: str = ""
    DEVICE_API_USER: str = ""
    DEVICE_API_PWD: str = ""
    DEVICE_API_TIMEOUT_S: float = 5.0
    SIMULATED_DELAY_S: float = 0.2
    BILLING_START_DATE: str | None = None
    CACHE_TTL_S: int = 30
    LOG_LEVEL: LogLevel = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def normalize_log_level(cls, value: object) -> object:
        return value.strip().upper() if isinstance(value, str) else value

    @property
    def admin_emails(self) -> list[str]:
        """Lower-cased admin allowlist."""
        return _split_csv(self.ADMIN_EMAILS, lower=True)

    @property
    def member_emails(self) -> list[str]:
        """Lower-cased member allowlist."""
        return _split_csv(self.MEMBER_EMAILS, lower=True)

    @property
    def special_device_ips(self) -> list[str]:
        """Device IPs that always use the real device-control endpoint."""
        return _split_csv(self.SPECIAL_DEVICE_IPS)


def get_settings() -> Settings:
    """Create and return a Settings instance.

    Returns:
        Settings: Validated configuration from environment variables.
    """
    return Settings()
