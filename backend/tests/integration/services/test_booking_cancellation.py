# backend/tests/integration/services/test_booking_cancellation.py
"""
Integration tests for member and staff cancellation and participant edits.
"""

from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest

from cowork.core.exceptions import (
    AlreadyCancelledException,
    BusinessRuleException,
    NotAuthorizedException,
    NotFoundException,
    ValidationException,
)
from cowork.models.booking import BookingStatus, BookingType
from cowork.models.member import StaffRole
from cowork.models.tariff import TariffType
from cowork.models.transaction import TransactionType

START = datetime(2024, 6, 1, 10, 0)
END = datetime(2024, 6, 1, 11, 30)


@pytest.fixture
def room(make_space):
    return make_space()


@pytest.fixture
def day_pass(make_tariff):
    return make_tariff(TariffType.HOURLY, price="200.00")


@pytest.fixture
def creator(make_member):
    return make_member(balance="500.00")


@pytest.fixture
def guest(make_member):
    return make_member()


@pytest.fixture
def booking(booking_service, creator, guest, room, day_pass):
    return booking_service.create_booking(
        creator.id,
        room.id,
        START,
        END,
        BookingType.ONE_TIME,
        tariff_id=day_pass.id,
        participant_ids=[guest.id],
    )


class TestMemberCancel:
    def test_creator_cancels_without_refund(self, booking_service, ledger, booking, creator):
        as_of = START - timedelta(hours=3)

        cancelled = booking_service.cancel_booking(booking.id, creator.id, as_of=as_of)

        assert cancelled.status == BookingStatus.CANCELLED
        assert cancelled.cancelled_at == as_of
        assert ledger.get_balance(creator.id) == Decimal("200.00")
        assert all(t.type != TransactionType.REFUND for t in ledger.get_transactions(creator.id))

    def test_participant_may_cancel(self, booking_service, booking, guest):
        cancelled = booking_service.cancel_booking(booking.id, guest.id, as_of=START - timedelta(days=1))
        assert cancelled.status == BookingStatus.CANCELLED

    def test_window_boundary_is_inclusive(self, booking_service, booking, creator):
        cancelled = booking_service.cancel_booking(booking.id, creator.id, as_of=START - timedelta(hours=2))
        assert cancelled.status == BookingStatus.CANCELLED

    def test_inside_cancellation_window(self, booking_service, booking, creator):
        with pytest.raises(BusinessRuleException) as exc_info:
            booking_service.cancel_booking(booking.id, creator.id, as_of=START - timedelta(hours=1))
        assert exc_info.value.code == "CANCELLATION_WINDOW_CLOSED"
        assert booking_service.get_booking(booking.id).status == BookingStatus.CONFIRMED

    def test_started_booking(self, booking_service, booking, creator):
        with pytest.raises(BusinessRuleException) as exc_info:
            booking_service.cancel_booking(booking.id, creator.id, as_of=START + timedelta(minutes=10))
        assert exc_info.value.code == "BOOKING_STARTED"

    def test_uninvolved_member(self, booking_service, booking, make_member):
        stranger = make_member()
        with pytest.raises(NotAuthorizedException):
            booking_service.cancel_booking(booking.id, stranger.id, as_of=START - timedelta(days=1))

    def test_cancel_twice(self, booking_service, booking, creator):
        as_of = START - timedelta(days=1)
        booking_service.cancel_booking(booking.id, creator.id, as_of=as_of)
        with pytest.raises(AlreadyCancelledException):
            booking_service.cancel_booking(booking.id, creator.id, as_of=as_of)

    def test_unknown_booking(self, booking_service, creator):
        with pytest.raises(NotFoundException) as exc_info:
            booking_service.cancel_booking("missing", creator.id, as_of=START)
        assert exc_info.value.code == "BOOKING_NOT_FOUND"


class TestStaffCancel:
    def test_one_time_refunds_full_charge(self, booking_service, ledger, booking, creator, make_staff):
        staff = make_staff()

        booking_service.staff_cancel_booking(booking.id, staff.id, as_of=START + timedelta(minutes=30))

        assert booking_service.get_booking(booking.id).status == BookingStatus.CANCELLED
        assert ledger.get_balance(creator.id) == Decimal("500.00")
        refunds = [t for t in ledger.get_transactions(creator.id) if t.type == TransactionType.REFUND]
        assert [t.amount for t in refunds] == [Decimal("300.00")]
        assert ledger.verify_balance(creator.id)

    def test_without_money_return(self, booking_service, ledger, booking, creator, make_staff):
        booking_service.staff_cancel_booking(
            booking.id, make_staff().id, return_money=False, as_of=START
        )
        assert ledger.get_balance(creator.id) == Decimal("200.00")

    def test_subscription_minutes_are_returned(
        self, booking_service, subscription_service, make_member, make_tariff, make_staff, room
    ):
        member = make_member()
        package = make_tariff(TariffType.PACKAGE, duration_days=30, included_minutes=120)
        subscription = subscription_service.issue(member.id, package.id, date(2024, 6, 1), date(2024, 7, 1), 120)
        booked = booking_service.create_booking(
            member.id, room.id, START, END, BookingType.SUBSCRIPTION, subscription_id=subscription.id
        )
        assert subscription_service.get_subscription(subscription.id).remaining_minutes == 30

        booking_service.staff_cancel_booking(booked.id, make_staff().id, as_of=START)

        assert subscription_service.get_subscription(subscription.id).remaining_minutes == 120

    def test_subscription_minutes_kept_when_not_returned(
        self, booking_service, subscription_service, make_member, make_tariff, make_staff, room
    ):
        member = make_member()
        package = make_tariff(TariffType.PACKAGE, duration_days=30, included_minutes=120)
        subscription = subscription_service.issue(member.id, package.id, date(2024, 6, 1), date(2024, 7, 1), 120)
        booked = booking_service.create_booking(
            member.id, room.id, START, END, BookingType.SUBSCRIPTION, subscription_id=subscription.id
        )

        booking_service.staff_cancel_booking(booked.id, make_staff().id, return_minutes=False, as_of=START)

        assert subscription_service.get_subscription(subscription.id).remaining_minutes == 30

    def test_inactive_staff(self, booking_service, booking, make_staff):
        inactive = make_staff(role=StaffRole.INACTIVE)
        with pytest.raises(NotAuthorizedException):
            booking_service.staff_cancel_booking(booking.id, inactive.id, as_of=START)

    def test_unknown_staff(self, booking_service, booking):
        with pytest.raises(NotAuthorizedException):
            booking_service.staff_cancel_booking(booking.id, "missing", as_of=START)

    def test_cancel_after_member_cancel(self, booking_service, booking, creator, make_staff):
        booking_service.cancel_booking(booking.id, creator.id, as_of=START - timedelta(days=1))
        with pytest.raises(AlreadyCancelledException):
            booking_service.staff_cancel_booking(booking.id, make_staff().id, as_of=START)


class TestUpdateParticipants:
    def test_creator_replaces_participants(self, booking_service, booking, creator, guest, make_member):
        newcomer = make_member()

        updated = booking_service.update_participants(
            booking.id,
            [newcomer.id, creator.id, newcomer.id],
            acting_member_id=creator.id,
            as_of=START - timedelta(days=1),
        )

        assert updated.participant_ids == [newcomer.id]
        assert not updated.involves(guest.id)

    def test_staff_may_edit_any_booking(self, booking_service, booking, make_staff):
        updated = booking_service.update_participants(
            booking.id, [], staff_id=make_staff().id, as_of=START - timedelta(days=1)
        )
        assert updated.participant_ids == []

    def test_participant_cannot_edit(self, booking_service, booking, guest):
        with pytest.raises(NotAuthorizedException):
            booking_service.update_participants(
                booking.id, [], acting_member_id=guest.id, as_of=START - timedelta(days=1)
            )

    def test_unknown_member_keeps_old_set(self, booking_service, booking, creator, guest):
        with pytest.raises(NotFoundException):
            booking_service.update_participants(
                booking.id, ["nobody"], acting_member_id=creator.id, as_of=START - timedelta(days=1)
            )
        assert booking_service.get_booking(booking.id).participant_ids == [guest.id]

    def test_started_booking(self, booking_service, booking, creator):
        with pytest.raises(BusinessRuleException) as exc_info:
            booking_service.update_participants(booking.id, [], acting_member_id=creator.id, as_of=START)
        assert exc_info.value.code == "BOOKING_STARTED"

    def test_cancelled_booking(self, booking_service, booking, creator):
        as_of = START - timedelta(days=1)
        booking_service.cancel_booking(booking.id, creator.id, as_of=as_of)
        with pytest.raises(BusinessRuleException) as exc_info:
            booking_service.update_participants(booking.id, [], acting_member_id=creator.id, as_of=as_of)
        assert exc_info.value.code == "BOOKING_NOT_CONFIRMED"

    def test_exactly_one_actor(self, booking_service, booking, creator, make_staff):
        with pytest.raises(ValidationException):
            booking_service.update_participants(booking.id, [])
        with pytest.raises(ValidationException):
            booking_service.update_participants(
                booking.id, [], acting_member_id=creator.id, staff_id=make_staff().id
            )
