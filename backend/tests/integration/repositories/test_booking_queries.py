# backend/tests/integration/repositories/test_booking_queries.py
"""Query-level tests for booking and conflict repositories."""

from datetime import datetime

import pytest

from cowork.models.booking import Booking, BookingStatus, BookingType, booking_participants
from cowork.repositories import RepositoryFactory


@pytest.fixture
def space(make_space):
    return make_space()


@pytest.fixture
def add_booking(db, space):
    def _add(member, start, end, status=BookingStatus.CONFIRMED, participants=()):
        booking = Booking(
            space_id=space.id,
            created_by=member.id,
            booking_type=BookingType.ONE_TIME,
            start_time=start,
            end_time=end,
            status=status,
        )
        db.add(booking)
        db.flush()
        for participant in participants:
            db.execute(
                booking_participants.insert().values(booking_id=booking.id, member_id=participant.id)
            )
        db.commit()
        return booking

    return _add


class TestConflictCheckerRepository:
    def test_overlap_is_half_open(self, db, space, make_member, add_booking):
        member = make_member()
        existing = add_booking(member, datetime(2024, 6, 1, 10, 0), datetime(2024, 6, 1, 11, 0))
        repo = RepositoryFactory.create_conflict_checker_repository(db)

        assert repo.get_conflicting_bookings(
            space.id, datetime(2024, 6, 1, 11, 0), datetime(2024, 6, 1, 12, 0)
        ) == []
        assert repo.get_conflicting_bookings(
            space.id, datetime(2024, 6, 1, 9, 0), datetime(2024, 6, 1, 10, 0)
        ) == []
        assert repo.get_conflicting_bookings(
            space.id, datetime(2024, 6, 1, 10, 45), datetime(2024, 6, 1, 11, 15)
        ) == [existing]

    def test_cancelled_bookings_do_not_conflict(self, db, space, make_member, add_booking):
        add_booking(
            make_member(),
            datetime(2024, 6, 1, 10, 0),
            datetime(2024, 6, 1, 11, 0),
            status=BookingStatus.CANCELLED,
        )
        repo = RepositoryFactory.create_conflict_checker_repository(db)
        assert repo.get_conflicting_bookings(
            space.id, datetime(2024, 6, 1, 10, 0), datetime(2024, 6, 1, 11, 0)
        ) == []

    def test_exclude_booking(self, db, space, make_member, add_booking):
        existing = add_booking(make_member(), datetime(2024, 6, 1, 10, 0), datetime(2024, 6, 1, 11, 0))
        repo = RepositoryFactory.create_conflict_checker_repository(db)
        assert repo.get_conflicting_bookings(
            space.id,
            datetime(2024, 6, 1, 10, 0),
            datetime(2024, 6, 1, 11, 0),
            exclude_booking_id=existing.id,
        ) == []

    def test_lock_space(self, db, space):
        repo = RepositoryFactory.create_conflict_checker_repository(db)
        assert repo.lock_space(space.id).id == space.id
        assert repo.lock_space("missing") is None


class TestBookingRepository:
    def test_get_for_member_includes_participation(self, db, make_member, add_booking):
        creator, guest, stranger = make_member(), make_member(), make_member()
        early = add_booking(creator, datetime(2024, 6, 1, 10, 0), datetime(2024, 6, 1, 11, 0))
        late = add_booking(
            creator, datetime(2024, 6, 2, 10, 0), datetime(2024, 6, 2, 11, 0), participants=[guest]
        )
        repo = RepositoryFactory.create_booking_repository(db)

        assert [b.id for b in repo.get_for_member(creator.id)] == [late.id, early.id]
        assert [b.id for b in repo.get_for_member(guest.id)] == [late.id]
        assert repo.get_for_member(stranger.id) == []

    def test_mark_cancelled_only_touches_confirmed(self, db, make_member, add_booking):
        member = make_member()
        confirmed = add_booking(member, datetime(2024, 6, 1, 10, 0), datetime(2024, 6, 1, 11, 0))
        cancelled = add_booking(
            member,
            datetime(2024, 6, 1, 12, 0),
            datetime(2024, 6, 1, 13, 0),
            status=BookingStatus.CANCELLED,
        )
        repo = RepositoryFactory.create_booking_repository(db)
        when = datetime(2024, 5, 20, 12, 0)

        assert repo.mark_cancelled([confirmed.id, cancelled.id], when) == 1
        assert confirmed.status == BookingStatus.CANCELLED
        assert confirmed.cancelled_at == when
        assert cancelled.cancelled_at is None

    def test_count_by_columns(self, db, make_member, add_booking):
        member = make_member()
        add_booking(member, datetime(2024, 6, 1, 10, 0), datetime(2024, 6, 1, 11, 0))
        add_booking(
            member,
            datetime(2024, 6, 1, 12, 0),
            datetime(2024, 6, 1, 13, 0),
            status=BookingStatus.CANCELLED,
        )
        repo = RepositoryFactory.create_booking_repository(db)

        assert repo.count(created_by=member.id) == 2
        assert repo.count(created_by=member.id, status=BookingStatus.CONFIRMED) == 1
        assert repo.count(created_by="missing") == 0
