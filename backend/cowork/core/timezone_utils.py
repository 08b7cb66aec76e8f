"""
Timezone utilities for the coworking facility.

Booking times are stored as naive datetimes in the facility's local zone.
These helpers produce "now" and "today" on that clock.
"""

from datetime import date, datetime
from typing import Optional

import pytz

from .config import settings


def get_facility_timezone(name: Optional[str] = None) -> pytz.BaseTzInfo:
    """
    Get the facility timezone.

    Args:
        name: Optional override of the configured timezone name

    Returns:
        Facility timezone as pytz timezone object
    """
    return pytz.timezone(name or settings.facility_timezone)


def facility_now(name: Optional[str] = None) -> datetime:
    """
    Get the current wall-clock time at the facility.

    Returns:
        Naive datetime in facility local time, truncated to seconds
    """
    tz = get_facility_timezone(name)
    return datetime.now(tz).replace(tzinfo=None, microsecond=0)


def facility_today(name: Optional[str] = None) -> date:
    """Get 'today' at the facility."""
    return facility_now(name).date()


def to_facility_time(dt: datetime, name: Optional[str] = None) -> datetime:
    """
    Convert an aware datetime to naive facility local time.

    Naive inputs are assumed to already be facility local and are returned as is.
    """
    if dt.tzinfo is None:
        return dt
    tz = get_facility_timezone(name)
    return dt.astimezone(tz).replace(tzinfo=None)
