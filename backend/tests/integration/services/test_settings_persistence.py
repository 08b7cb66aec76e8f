# backend/tests/integration/services/test_settings_persistence.py
"""Stored settings change the rules booking workflows apply."""

from datetime import datetime, time, timedelta

import pytest

from cowork.core.exceptions import BusinessRuleException, InvalidSlotException
from cowork.core.timezone_utils import facility_now
from cowork.models.booking import BookingStatus, BookingType
from cowork.models.tariff import TariffType
from cowork.services.settings_service import SettingsService


@pytest.fixture
def settings_service(db):
    return SettingsService(db)


class TestStoredSettings:
    def test_round_trip(self, settings_service):
        settings_service.update_setting("cancel_before_hours", "6")
        settings_service.update_working_hours(6, "10:00", "16:00")

        scheduling = settings_service.get_scheduling_settings()

        assert scheduling.cancel_before_hours == 6
        assert scheduling.hours_for(6) == (time(10, 0), time(16, 0))

    def test_slot_length_applies_to_new_bookings(
        self, settings_service, booking_service, make_member, make_space, make_tariff
    ):
        settings_service.update_setting("slot_minutes", "30")
        member = make_member(balance="500.00")

        with pytest.raises(InvalidSlotException):
            booking_service.create_booking(
                member.id,
                make_space().id,
                datetime(2024, 6, 1, 10, 15),
                datetime(2024, 6, 1, 11, 15),
                BookingType.ONE_TIME,
                tariff_id=make_tariff(TariffType.HOURLY).id,
            )

    def test_cancellation_window_follows_setting(
        self, settings_service, booking_service, make_member, make_space, make_tariff
    ):
        member = make_member(balance="500.00")
        start = datetime(2024, 6, 1, 10, 0)
        booking = booking_service.create_booking(
            member.id,
            make_space().id,
            start,
            start + timedelta(hours=1),
            BookingType.ONE_TIME,
            tariff_id=make_tariff(TariffType.HOURLY).id,
        )
        settings_service.update_setting("cancel_before_hours", "24")

        with pytest.raises(BusinessRuleException):
            booking_service.cancel_booking(booking.id, member.id, as_of=start - timedelta(hours=3))

        cancelled = booking_service.cancel_booking(booking.id, member.id, as_of=start - timedelta(hours=24))
        assert cancelled.status == BookingStatus.CANCELLED


class TestStoredTimezone:
    ZONE = "Pacific/Kiritimati"

    def test_clock_follows_stored_timezone(self, settings_service):
        settings_service.update_setting("timezone", self.ZONE)

        assert settings_service.get_timezone() == self.ZONE
        assert abs(settings_service.current_time() - facility_now(self.ZONE)) < timedelta(minutes=1)

    def test_cancellation_window_uses_facility_clock(
        self, settings_service, booking_service, make_member, make_space, make_tariff
    ):
        settings_service.update_setting("timezone", self.ZONE)
        member = make_member(balance="500.00")
        # 60 to 75 minutes ahead on the facility clock, inside the 2 hour window
        start = facility_now(self.ZONE) + timedelta(minutes=75)
        start = start.replace(minute=start.minute - start.minute % 15, second=0, microsecond=0)
        booking = booking_service.create_booking(
            member.id,
            make_space().id,
            start,
            start + timedelta(hours=1),
            BookingType.ONE_TIME,
            tariff_id=make_tariff(TariffType.HOURLY).id,
        )

        with pytest.raises(BusinessRuleException) as exc_info:
            booking_service.cancel_booking(booking.id, member.id)
        assert exc_info.value.code == "CANCELLATION_WINDOW_CLOSED"
