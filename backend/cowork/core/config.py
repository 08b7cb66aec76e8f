# backend/cowork/core/config.py
import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def is_running_tests() -> bool:
    """
    Detect if code is running under pytest.

    PYTEST_CURRENT_TEST is set automatically by pytest during test runs, and is
    not expected to be present in production environments.
    """
    return os.getenv("PYTEST_CURRENT_TEST") is not None


logger = logging.getLogger(__name__)

# Load .env file only if not in CI
if not os.getenv("CI"):
    env_path = Path(__file__).parent.parent.parent / ".env"  # Goes up to backend/.env
    logger.debug(f"[CONFIG] Looking for .env at: {env_path}")
    load_dotenv(env_path)


class Settings(BaseSettings):
    environment: str = Field(default="development", alias="ENVIRONMENT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Database
    database_url_raw: str = Field(
        default="sqlite:///./cowork.db",
        validation_alias=AliasChoices("DATABASE_URL", "database_url"),
    )
    test_database_url: Optional[str] = Field(default=None, alias="TEST_DATABASE_URL")
    sql_echo: bool = Field(default=False, alias="SQL_ECHO")

    # Facility clock: bookings are stored as naive local times of this zone
    facility_timezone: str = Field(default="Europe/Moscow", alias="FACILITY_TIMEZONE")

    # Scheduling defaults, overridable per deployment through system_settings
    slot_minutes: int = Field(default=15, alias="SLOT_MINUTES")
    min_booking_minutes: int = Field(default=60, alias="MIN_BOOKING_MINUTES")
    max_booking_days_ahead: int = Field(default=60, alias="MAX_BOOKING_DAYS_AHEAD")
    cancel_before_hours: int = Field(default=2, alias="CANCEL_BEFORE_HOURS")
    opening_time: str = Field(default="09:00", alias="OPENING_TIME")
    closing_time: str = Field(default="21:00", alias="CLOSING_TIME")
    working_hours_24_7: bool = Field(default=False, alias="WORKING_HOURS_24_7")

    # Operations slower than this are logged as warnings
    slow_operation_seconds: float = Field(default=1.0, alias="SLOW_OPERATION_SECONDS")

    model_config = SettingsConfigDict(
        env_file=".env" if not os.getenv("CI") else None,
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("facility_timezone")
    @classmethod
    def _validate_timezone(cls, value: str) -> str:
        import pytz

        try:
            pytz.timezone(value)
        except pytz.UnknownTimeZoneError as exc:
            raise ValueError(f"Unknown timezone: {value}") from exc
        return value

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().upper()
        return value

    def get_database_url(self) -> str:
        """Get the appropriate database URL based on context."""
        if is_running_tests() and self.test_database_url:
            return self.test_database_url
        return self.database_url_raw

    @property
    def is_sqlite(self) -> bool:
        return self.get_database_url().startswith("sqlite")


settings = Settings()
