# backend/cowork/services/conflict_checker.py
"""
Conflict Checker Service

Handles booking slot validation and overlap detection:
- Checking that an interval lies on the slot grid
- Checking if an interval conflicts with confirmed bookings on a space
- Facility policy checks (minimum duration, booking horizon, working hours)

Intervals are half-open ``[start, end)``: back-to-back bookings on the same
space are allowed.
"""

from contextlib import contextmanager
from datetime import date, datetime, time, timedelta
import logging
from typing import Any, Dict, Iterator, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..core.exceptions import InvalidSlotException, RepositoryException, SlotConflictException
from ..models.booking import BOOKING_OVERLAP_CONSTRAINT
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories import RepositoryFactory
from ..repositories.conflict_checker_repository import ConflictCheckerRepository
from .base import BaseService
from .settings_service import SchedulingSettings

logger = logging.getLogger(__name__)

_OVERLAP_ERROR_MARKERS = (
    BOOKING_OVERLAP_CONSTRAINT,
    "exclusion constraint",
    "conflicting key value violates exclusion",
)


def is_overlap_violation(exc: BaseException) -> bool:
    """True when a database error was raised by the per-space overlap constraint."""
    text = str(exc).lower()
    return any(marker in text for marker in _OVERLAP_ERROR_MARKERS)


@contextmanager
def translate_overlap_violation(space_id: str) -> Iterator[None]:
    """
    Re-raise overlap constraint violations as ``SlotConflictException``.

    Wraps booking inserts so a race lost at the database level surfaces the
    same error as a conflict found by the pre-check.
    """
    try:
        yield
    except (IntegrityError, RepositoryException) as exc:
        if not is_overlap_violation(exc):
            raise
        logger.warning("Overlap constraint rejected booking on space %s", space_id)
        prometheus_metrics.inc_booking_conflict("constraint")
        raise SlotConflictException(details={"space_id": space_id}) from exc


def validate_slot(start_time: datetime, end_time: datetime, slot_minutes: int) -> int:
    """
    Check that ``[start_time, end_time)`` is a well-formed slot-aligned interval.

    Args:
        start_time: Interval start (facility local)
        end_time: Interval end, exclusive
        slot_minutes: Slot granularity in minutes

    Returns:
        Duration in minutes

    Raises:
        InvalidSlotException: End not after start, start off the grid, or
            duration not a multiple of the slot length
    """
    details = {
        "start_time": start_time.isoformat(),
        "end_time": end_time.isoformat(),
        "slot_minutes": slot_minutes,
    }
    if slot_minutes <= 0:
        raise InvalidSlotException("Slot length must be positive", details=details)
    if end_time <= start_time:
        raise InvalidSlotException("End time must be after start time", details=details)

    if start_time.second or start_time.microsecond or end_time.second or end_time.microsecond:
        raise InvalidSlotException("Times must be whole minutes", details=details)

    minute_of_day = start_time.hour * 60 + start_time.minute
    if minute_of_day % slot_minutes:
        raise InvalidSlotException(
            f"Start time must be aligned to {slot_minutes}-minute slots", details=details
        )

    duration_minutes = int((end_time - start_time).total_seconds() // 60)
    if duration_minutes % slot_minutes:
        raise InvalidSlotException(
            f"Duration must be a multiple of {slot_minutes} minutes", details=details
        )
    return duration_minutes


class ConflictChecker(BaseService):
    """
    Service for checking booking conflicts and time validation.

    Availability answers are only authoritative inside the caller's
    transaction after ``lock_space``; see ``BookingService.create_booking``.
    """

    def __init__(self, db: Session, repository: Optional[ConflictCheckerRepository] = None):
        """
        Initialize conflict checker service.

        Args:
            db: Database session
            repository: Optional ConflictCheckerRepository instance
        """
        super().__init__(db)
        self.logger = logging.getLogger(__name__)
        self.repository = repository or RepositoryFactory.create_conflict_checker_repository(db)

    def validate_slot(self, start_time: datetime, end_time: datetime, slot_minutes: int) -> int:
        return validate_slot(start_time, end_time, slot_minutes)

    @BaseService.measure_operation("check_booking_conflicts")
    def check_booking_conflicts(
        self,
        space_id: str,
        start_time: datetime,
        end_time: datetime,
        exclude_booking_id: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """
        Check if an interval conflicts with confirmed bookings on a space.

        Returns:
            List of conflicts with booking details
        """
        bookings = self.repository.get_conflicting_bookings(
            space_id, start_time, end_time, exclude_booking_id
        )

        conflicts = [
            {
                "booking_id": booking.id,
                "start_time": booking.start_time.isoformat(),
                "end_time": booking.end_time.isoformat(),
                "status": booking.status.value,
            }
            for booking in bookings
        ]

        if conflicts:
            self.logger.warning(
                f"Found {len(conflicts)} booking conflicts for space {space_id} "
                f"between {start_time}-{end_time}"
            )

        return conflicts

    def is_slot_available(
        self,
        space_id: str,
        start_time: datetime,
        end_time: datetime,
        exclude_booking_id: Optional[str] = None,
    ) -> bool:
        """True when no confirmed booking on the space overlaps the interval."""
        return not self.check_booking_conflicts(space_id, start_time, end_time, exclude_booking_id)

    def ensure_slot_available(
        self,
        space_id: str,
        start_time: datetime,
        end_time: datetime,
        exclude_booking_id: Optional[str] = None,
    ) -> None:
        """
        Raises:
            SlotConflictException: If the interval is taken
        """
        conflicts = self.check_booking_conflicts(space_id, start_time, end_time, exclude_booking_id)
        if conflicts:
            prometheus_metrics.inc_booking_conflict("precheck")
            raise SlotConflictException(
                details={"space_id": space_id, "conflicts": conflicts},
            )

    def validate_booking_policy(
        self,
        start_time: datetime,
        end_time: datetime,
        scheduling: SchedulingSettings,
        now: datetime,
        *,
        skip_working_hours: bool = False,
    ) -> None:
        """
        Facility booking rules layered on top of slot validation.

        Checks minimum duration, that the start is not in the past, the
        booking horizon, and (unless the facility is open 24/7) that the
        interval lies within one day's working hours.

        Raises:
            InvalidSlotException: If a rule is violated
        """
        duration_minutes = validate_slot(start_time, end_time, scheduling.slot_minutes)
        details: Dict[str, Any] = {
            "start_time": start_time.isoformat(),
            "end_time": end_time.isoformat(),
        }

        if duration_minutes < scheduling.min_booking_minutes:
            raise InvalidSlotException(
                f"Minimum booking duration is {scheduling.min_booking_minutes} minutes",
                details={**details, "min_booking_minutes": scheduling.min_booking_minutes},
            )
        if start_time < now:
            raise InvalidSlotException("Cannot book a slot in the past", details=details)

        last_bookable_day = now.date() + timedelta(days=scheduling.max_booking_days_ahead)
        if start_time.date() > last_bookable_day:
            raise InvalidSlotException(
                f"Bookings can be made at most {scheduling.max_booking_days_ahead} days ahead",
                details={**details, "max_booking_days_ahead": scheduling.max_booking_days_ahead},
            )

        if skip_working_hours or scheduling.working_hours_24_7:
            return
        self._check_working_hours(start_time, end_time, scheduling, details)

    def _check_working_hours(
        self,
        start_time: datetime,
        end_time: datetime,
        scheduling: SchedulingSettings,
        details: Dict[str, Any],
    ) -> None:
        day: date = start_time.date()
        hours = scheduling.hours_for(day.isoweekday())
        if hours is None:
            raise InvalidSlotException("The facility is closed on this day", details=details)
        opening, closing = hours

        # Midnight end belongs to the start day
        if end_time.date() == day:
            end_clock = end_time.time()
        elif end_time == datetime.combine(day + timedelta(days=1), time.min):
            end_clock = time.max
        else:
            raise InvalidSlotException("Booking must not span several days", details=details)

        if start_time.time() < opening or end_clock > closing:
            raise InvalidSlotException(
                f"Booking must be within working hours {opening:%H:%M}-{closing:%H:%M}",
                details=details,
            )
