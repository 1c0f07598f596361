"""Engine settings with Pydantic validation."""

from typing import Any, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ...constants import Database, Search, Sequence, Slots
from ..enums import HolidayRecurrenceMode

_VALID_ENVIRONMENTS = frozenset(
    {"production", "staging", "development", "dev", "testing", "test", "local"}
)
_DEV_ENVIRONMENTS = frozenset({"development", "dev", "local", "testing", "test"})


class EngineSettings(BaseSettings):
    """Booking engine settings with validation and environment variable support."""

    # Environment
    env: str = Field(
        default="production", description="Environment (production, development, testing)"
    )

    @model_validator(mode="before")
    @classmethod
    def default_env_for_pytest(cls, data: Any) -> Any:
        """Auto-detect testing environment when running under pytest."""
        import sys

        if not isinstance(data, dict):
            return data

        if ("env" not in data or not data.get("env")) and "pytest" in sys.modules:
            data["env"] = "testing"

        return data

    # Database Configuration
    database_url: str = Field(
        default=Database.DEFAULT_URL, description="PostgreSQL database connection URL"
    )
    db_pool_size: int = Field(
        default=Database.POOL_SIZE, ge=1, le=100, description="Database connection pool size"
    )
    db_connection_timeout: float = Field(
        default=Database.CONNECTION_TIMEOUT,
        gt=0,
        description="Database connection timeout in seconds",
    )
    storage_retry_attempts: int = Field(
        default=3, ge=1, le=10, description="Attempts for transient storage errors"
    )

    # Logging
    log_level: str = Field(
        default="INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )
    log_json: bool = Field(default=True, description="Write JSON lines to the log file")

    # Search
    search_window_days: int = Field(
        default=Search.WINDOW_DAYS, ge=1, le=366, description="Days scanned per search"
    )
    max_results: int = Field(default=Search.MAX_RESULTS, ge=1, description="Search result limit")
    search_radius_km: float = Field(
        default=Search.RADIUS_KM, gt=0, description="Default nearby-branch radius in km"
    )
    service_name_language: str = Field(
        default=Search.SERVICE_NAME_LANGUAGE,
        description="Language code used for service type names in search results",
    )

    # Scheduling
    default_slot_minutes: int = Field(
        default=Slots.DURATION_MINUTES, gt=0, description="Fallback slot duration"
    )
    holiday_recurrence_mode: HolidayRecurrenceMode = Field(
        default=HolidayRecurrenceMode.WEEKDAY,
        description="Matching rule for yearly-recurring holidays (weekday or anniversary)",
    )

    # Sequence
    sequence_max: int = Field(
        default=Sequence.MAX_NUMBER,
        ge=1,
        description="Maximum appointment number issued per branch and year",
    )

    # Branch directory
    branch_directory_url: Optional[str] = Field(
        default=None, description="Base URL of the organization branch service"
    )
    branch_directory_timeout: float = Field(
        default=10.0, gt=0, description="Branch directory request timeout in seconds"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("env")
    @classmethod
    def validate_env(cls, v: str) -> str:
        """Normalize environment name; unknown values fall back to production."""
        v = (v or "production").lower()
        if v not in _VALID_ENVIRONMENTS:
            return "production"
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        v = v.upper()
        if v not in {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Invalid log level: {v}")
        return v

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        """Validate database URL scheme."""
        if not v.startswith(("postgresql://", "postgres://")):
            raise ValueError("DATABASE_URL must be a PostgreSQL URL")
        return v

    @field_validator("branch_directory_url")
    @classmethod
    def validate_branch_directory_url(cls, v: Optional[str]) -> Optional[str]:
        """Strip trailing slash from branch directory URL."""
        if not v:
            return None
        if not v.startswith(("http://", "https://")):
            raise ValueError("BRANCH_DIRECTORY_URL must be an http(s) URL")
        return v.rstrip("/")

    def is_development(self) -> bool:
        """Check if running in a development/test/local environment."""
        return self.env in _DEV_ENVIRONMENTS


_settings: Optional[EngineSettings] = None


def get_settings() -> EngineSettings:
    """
    Get engine settings singleton.

    Returns:
        EngineSettings instance

    Raises:
        ValidationError: If settings are invalid
    """
    global _settings
    if _settings is None:
        _settings = EngineSettings()
    return _settings


def reset_settings() -> None:
    """Reset settings singleton (useful for testing)."""
    global _settings
    _settings = None
