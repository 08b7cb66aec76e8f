# backend/tests/unit/services/test_slot_validation.py
"""
Unit tests for slot validation and facility booking policy.

Pure checks: no database access is needed, the conflict checker gets a mocked
session.
"""

from datetime import datetime, time
from unittest.mock import Mock

import pytest

from cowork.core.exceptions import InvalidSlotException
from cowork.services.conflict_checker import (
    ConflictChecker,
    is_overlap_violation,
    validate_slot,
)
from cowork.services.settings_service import SchedulingSettings


def _scheduling(**overrides) -> SchedulingSettings:
    values = dict(
        slot_minutes=15,
        min_booking_minutes=60,
        max_booking_days_ahead=60,
        cancel_before_hours=2,
        working_hours_24_7=False,
        timezone="Europe/Moscow",
        working_hours={day: (time(9, 0), time(21, 0)) for day in range(1, 8)},
    )
    values.update(overrides)
    return SchedulingSettings(**values)


class TestValidateSlot:
    """Granularity and ordering rules for booking intervals."""

    def test_returns_duration_for_aligned_interval(self):
        assert validate_slot(datetime(2024, 6, 1, 10, 0), datetime(2024, 6, 1, 11, 30), 15) == 90

    def test_end_before_start_is_rejected(self):
        with pytest.raises(InvalidSlotException) as exc_info:
            validate_slot(datetime(2024, 6, 1, 11, 0), datetime(2024, 6, 1, 10, 0), 15)
        assert exc_info.value.code == "INVALID_SLOT"

    def test_empty_interval_is_rejected(self):
        with pytest.raises(InvalidSlotException):
            validate_slot(datetime(2024, 6, 1, 10, 0), datetime(2024, 6, 1, 10, 0), 15)

    def test_misaligned_start_is_rejected(self):
        with pytest.raises(InvalidSlotException, match="aligned"):
            validate_slot(datetime(2024, 6, 1, 10, 5), datetime(2024, 6, 1, 11, 5), 15)

    def test_duration_not_multiple_of_slot_is_rejected(self):
        with pytest.raises(InvalidSlotException, match="multiple"):
            validate_slot(datetime(2024, 6, 1, 10, 0), datetime(2024, 6, 1, 10, 50), 15)

    def test_seconds_are_rejected(self):
        with pytest.raises(InvalidSlotException):
            validate_slot(datetime(2024, 6, 1, 10, 0, 30), datetime(2024, 6, 1, 11, 0), 15)

    def test_interval_may_cross_midnight(self):
        assert validate_slot(datetime(2024, 6, 1, 23, 0), datetime(2024, 6, 2, 1, 0), 30) == 120

    def test_custom_granularity(self):
        assert validate_slot(datetime(2024, 6, 1, 10, 20), datetime(2024, 6, 1, 10, 40), 10) == 20
        with pytest.raises(InvalidSlotException):
            validate_slot(datetime(2024, 6, 1, 10, 20), datetime(2024, 6, 1, 11, 20), 30)


class TestBookingPolicy:
    """Facility rules layered on top of slot validation."""

    @pytest.fixture
    def checker(self):
        return ConflictChecker(Mock())

    @pytest.fixture
    def now(self):
        return datetime(2024, 6, 1, 8, 0)

    def test_valid_booking_passes(self, checker, now):
        checker.validate_booking_policy(
            datetime(2024, 6, 1, 10, 0), datetime(2024, 6, 1, 12, 0), _scheduling(), now
        )

    def test_minimum_duration(self, checker, now):
        with pytest.raises(InvalidSlotException, match="Minimum booking duration"):
            checker.validate_booking_policy(
                datetime(2024, 6, 1, 10, 0), datetime(2024, 6, 1, 10, 45), _scheduling(), now
            )

    def test_past_start(self, checker, now):
        with pytest.raises(InvalidSlotException, match="past"):
            checker.validate_booking_policy(
                datetime(2024, 6, 1, 7, 0), datetime(2024, 6, 1, 9, 0), _scheduling(), now
            )

    def test_horizon(self, checker, now):
        scheduling = _scheduling(max_booking_days_ahead=7)
        checker.validate_booking_policy(
            datetime(2024, 6, 8, 10, 0), datetime(2024, 6, 8, 11, 0), scheduling, now
        )
        with pytest.raises(InvalidSlotException, match="days ahead"):
            checker.validate_booking_policy(
                datetime(2024, 6, 9, 10, 0), datetime(2024, 6, 9, 11, 0), scheduling, now
            )

    def test_outside_working_hours(self, checker, now):
        with pytest.raises(InvalidSlotException, match="working hours"):
            checker.validate_booking_policy(
                datetime(2024, 6, 1, 20, 0), datetime(2024, 6, 1, 22, 0), _scheduling(), now
            )

    def test_working_hours_ignored_when_open_around_the_clock(self, checker, now):
        checker.validate_booking_policy(
            datetime(2024, 6, 1, 20, 0),
            datetime(2024, 6, 1, 22, 0),
            _scheduling(working_hours_24_7=True),
            now,
        )

    def test_skip_working_hours_flag(self, checker, now):
        checker.validate_booking_policy(
            datetime(2024, 6, 1, 20, 0),
            datetime(2024, 6, 1, 22, 0),
            _scheduling(),
            now,
            skip_working_hours=True,
        )

    def test_closed_day(self, checker, now):
        # 2024-06-02 is a Sunday
        hours = {day: (time(9, 0), time(21, 0)) for day in range(1, 7)}
        with pytest.raises(InvalidSlotException, match="closed"):
            checker.validate_booking_policy(
                datetime(2024, 6, 2, 10, 0),
                datetime(2024, 6, 2, 11, 0),
                _scheduling(working_hours=hours),
                now,
            )

    def test_booking_until_midnight_with_late_closing(self, checker, now):
        hours = {day: (time(9, 0), time.max) for day in range(1, 8)}
        checker.validate_booking_policy(
            datetime(2024, 6, 1, 22, 0),
            datetime(2024, 6, 2, 0, 0),
            _scheduling(working_hours=hours),
            now,
        )

    def test_multi_day_span_rejected(self, checker, now):
        hours = {day: (time(0, 0), time.max) for day in range(1, 8)}
        with pytest.raises(InvalidSlotException, match="several days"):
            checker.validate_booking_policy(
                datetime(2024, 6, 1, 22, 0),
                datetime(2024, 6, 2, 2, 0),
                _scheduling(working_hours=hours),
                now,
            )


class TestOverlapViolationDetection:
    def test_constraint_name_is_recognised(self):
        error = Exception(
            'conflicting key value violates exclusion constraint "bookings_no_overlap_per_space"'
        )
        assert is_overlap_violation(error)

    def test_other_integrity_errors_are_not(self):
        assert not is_overlap_violation(Exception("UNIQUE constraint failed: members.email"))
