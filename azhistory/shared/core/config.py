from functools import lru_cache
from threading import Lock
from typing import Optional
import structlog
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, SecretStr, model_validator

AUTH_METHOD_SECRET = "secret"
AUTH_METHOD_MANAGED_IDENTITY = "managed_identity"

UNKNOWN_TAG_VALUE = "<unknown>"


@lru_cache
def get_settings() -> "Settings":
    """Returns a singleton instance of the application settings."""
    return Settings()


_settings_reload_lock = Lock()


def reload_settings_from_environment() -> "Settings":
    """
    Atomically rebuild and replace cached settings from environment values.

    This avoids mutating the cached singleton instance in-place.
    """
    logger = structlog.get_logger()
    with _settings_reload_lock:
        logger.info("settings_reload_started")
        get_settings.cache_clear()
        refreshed = get_settings()
        logger.info("settings_reload_completed")
        return refreshed


class Settings(BaseSettings):
    """
    Main configuration for Azure History.
    Uses Pydantic-Settings for environment variable parsing from .env.
    """

    APP_NAME: str = "azhistory"
    VERSION: str = "0.1.0"
    DEBUG: bool = False
    TESTING: bool = False

    # Azure identity. The interactive tool authenticates as a service
    # principal; the scheduled job runs under the host's managed identity.
    AZURE_TENANT_ID: Optional[str] = None
    AZURE_CLIENT_ID: Optional[str] = None
    AZURE_CLIENT_SECRET: Optional[SecretStr] = None
    AZURE_SUBSCRIPTION_ID: Optional[str] = None
    AZURE_AUTH_METHOD: str = AUTH_METHOD_SECRET

    # Reserved tag keys persisted onto resources
    CREATOR_TAG: str = "azh-creator"
    CREATED_DATE_TAG: str = "azh-createddate"
    LIFETIME_TAG: str = "azh-lifetime"

    # Activity Log retention on the standard tier is 90 days; 60 keeps us
    # clear of partially purged days.
    LOOKBACK_DAYS: int = Field(default=60, ge=1, le=90)
    RECONCILE_CONCURRENCY: int = Field(default=1, ge=1, le=64)
    AUDIT_QUERY_RATE_PER_SECOND: float = Field(default=5.0, gt=0)
    CLOUD_API_TIMEOUT_SECONDS: float = Field(default=60.0, gt=0)

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    @model_validator(mode="after")
    def validate_settings(self) -> "Settings":
        if self.AZURE_AUTH_METHOD not in (
            AUTH_METHOD_SECRET,
            AUTH_METHOD_MANAGED_IDENTITY,
        ):
            raise ValueError(
                f"AZURE_AUTH_METHOD must be '{AUTH_METHOD_SECRET}' or "
                f"'{AUTH_METHOD_MANAGED_IDENTITY}', got {self.AZURE_AUTH_METHOD!r}"
            )
        reserved = {self.CREATOR_TAG, self.CREATED_DATE_TAG}
        if len(reserved) != 2:
            raise ValueError("CREATOR_TAG and CREATED_DATE_TAG must differ")
        return self
