# backend/cowork/services/settings_service.py
"""
Scheduling settings.

Values stored in ``system_settings`` override the deployment defaults from
``Settings``. Stored values are clamped into their allowed range; unparseable
values fall back to the default with a warning.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Dict, Mapping, Optional, Tuple

import pytz
from sqlalchemy.orm import Session

from ..core.config import Settings, settings as default_settings
from ..core.exceptions import ValidationException
from ..core.timezone_utils import facility_now, facility_today
from ..repositories.factory import RepositoryFactory
from .base import BaseService

SLOT_MINUTES_KEY = "slot_minutes"
MIN_BOOKING_MINUTES_KEY = "min_booking_minutes"
MAX_BOOKING_DAYS_AHEAD_KEY = "max_booking_days_ahead"
CANCEL_BEFORE_HOURS_KEY = "cancel_before_hours"
WORKING_HOURS_24_7_KEY = "working_hours_24_7"
TIMEZONE_KEY = "timezone"

# key -> (min, max)
INT_SETTING_BOUNDS: Dict[str, Tuple[int, int]] = {
    SLOT_MINUTES_KEY: (5, 120),
    MIN_BOOKING_MINUTES_KEY: (1, 1440),
    MAX_BOOKING_DAYS_AHEAD_KEY: (1, 365),
    CANCEL_BEFORE_HOURS_KEY: (0, 168),
}

_TRUE_VALUES = {"1", "true", "yes", "on"}


def parse_hhmm(value: str) -> time:
    """Parse ``HH:MM``; ``24:00`` is accepted as end of day."""
    hours_str, _, minutes_str = value.strip().partition(":")
    hours, minutes = int(hours_str), int(minutes_str or 0)
    if hours == 24 and minutes == 0:
        return time.max
    return time(hours, minutes)


@dataclass(frozen=True)
class SchedulingSettings:
    """Effective scheduling rules at the facility."""

    slot_minutes: int
    min_booking_minutes: int
    max_booking_days_ahead: int
    cancel_before_hours: int
    working_hours_24_7: bool
    timezone: str
    # ISO weekday -> (opening, closing)
    working_hours: Mapping[int, Tuple[time, time]] = field(default_factory=dict)

    def hours_for(self, iso_weekday: int) -> Optional[Tuple[time, time]]:
        return self.working_hours.get(iso_weekday)


def clamp(value: int, bounds: Tuple[int, int]) -> int:
    low, high = bounds
    return max(low, min(high, value))


class SettingsService(BaseService):
    """Reads and writes scheduling settings."""

    def __init__(self, db: Session, defaults: Optional[Settings] = None):
        super().__init__(db)
        self.defaults = defaults or default_settings
        self.settings_repository = RepositoryFactory.create_settings_repository(db)

    def get_scheduling_settings(self) -> SchedulingSettings:
        stored = self.settings_repository.get_all_values()

        def _int(key: str, default: int) -> int:
            raw = stored.get(key)
            if raw is None:
                return clamp(default, INT_SETTING_BOUNDS[key])
            try:
                return clamp(int(raw.strip()), INT_SETTING_BOUNDS[key])
            except ValueError:
                self.logger.warning("Invalid value %r for setting %s; using default", raw, key)
                return clamp(default, INT_SETTING_BOUNDS[key])

        raw_24_7 = stored.get(WORKING_HOURS_24_7_KEY)
        always_open = (
            raw_24_7.strip().lower() in _TRUE_VALUES
            if raw_24_7 is not None
            else self.defaults.working_hours_24_7
        )

        return SchedulingSettings(
            slot_minutes=_int(SLOT_MINUTES_KEY, self.defaults.slot_minutes),
            min_booking_minutes=_int(MIN_BOOKING_MINUTES_KEY, self.defaults.min_booking_minutes),
            max_booking_days_ahead=_int(
                MAX_BOOKING_DAYS_AHEAD_KEY, self.defaults.max_booking_days_ahead
            ),
            cancel_before_hours=_int(CANCEL_BEFORE_HOURS_KEY, self.defaults.cancel_before_hours),
            working_hours_24_7=always_open,
            timezone=self._timezone_from(stored),
            working_hours=self._load_working_hours(),
        )

    def _timezone_from(self, stored: Mapping[str, str]) -> str:
        return (stored.get(TIMEZONE_KEY) or "").strip() or self.defaults.facility_timezone

    def get_timezone(self) -> str:
        """Facility timezone name, stored value first."""
        return self._timezone_from(self.settings_repository.get_all_values())

    def current_time(self) -> datetime:
        """Naive wall-clock time on the facility clock."""
        return facility_now(self.get_timezone())

    def current_date(self) -> date:
        return facility_today(self.get_timezone())

    def _load_working_hours(self) -> Dict[int, Tuple[time, time]]:
        default_hours = (
            parse_hhmm(self.defaults.opening_time),
            parse_hhmm(self.defaults.closing_time),
        )
        hours = {day: default_hours for day in range(1, 8)}
        for row in self.settings_repository.get_working_hours():
            try:
                hours[row.day_of_week] = (parse_hhmm(row.opening_time), parse_hhmm(row.closing_time))
            except ValueError:
                self.logger.warning(
                    "Invalid working hours for day %s; using default", row.day_of_week
                )
        return hours

    @BaseService.measure_operation("update_setting")
    def update_setting(self, key: str, value: str) -> str:
        """
        Store one setting. Integer settings are clamped before storing.

        Returns:
            The value actually stored
        """
        if key in INT_SETTING_BOUNDS:
            try:
                stored = str(clamp(int(str(value).strip()), INT_SETTING_BOUNDS[key]))
            except ValueError as exc:
                raise ValidationException(
                    f"Setting {key} must be an integer", code="INVALID_SETTING"
                ) from exc
        elif key == WORKING_HOURS_24_7_KEY:
            stored = "true" if str(value).strip().lower() in _TRUE_VALUES else "false"
        elif key == TIMEZONE_KEY:
            stored = str(value).strip()
            try:
                pytz.timezone(stored)
            except pytz.UnknownTimeZoneError as exc:
                raise ValidationException(
                    f"Unknown timezone: {stored}", code="INVALID_SETTING"
                ) from exc
        else:
            raise ValidationException(f"Unknown setting: {key}", code="INVALID_SETTING")

        with self.transaction():
            self.settings_repository.set_value(key, stored)
        return stored

    @BaseService.measure_operation("update_working_hours")
    def update_working_hours(self, day_of_week: int, opening: str, closing: str) -> None:
        if not 1 <= day_of_week <= 7:
            raise ValidationException("Day of week must be 1..7", code="INVALID_SETTING")
        try:
            open_at, close_at = parse_hhmm(opening), parse_hhmm(closing)
        except ValueError as exc:
            raise ValidationException("Times must be HH:MM", code="INVALID_SETTING") from exc
        if close_at <= open_at:
            raise ValidationException(
                "Closing time must be after opening time", code="INVALID_SETTING"
            )
        with self.transaction():
            self.settings_repository.set_working_hours(day_of_week, opening, closing)
