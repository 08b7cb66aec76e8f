# backend/cowork/services/booking_read_service.py
"""
Booking read models.

Builds the occupancy timeline, member history, ledger history and the staff
booking detail. Reads never mutate bookings; the only write on these paths is
the idempotent subscription expiry sweep run before member history is built.
"""

from datetime import datetime
from decimal import Decimal
import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from ..core.exceptions import ValidationException, not_found
from ..models.booking import Booking, BookingStatus
from ..models.subscription import Subscription, SubscriptionStatus
from ..repositories import RepositoryFactory
from ..schemas.booking import (
    BookingDetail,
    MemberHistory,
    ParticipantInfo,
    SubscriptionSummary,
    TimelineEntry,
)
from ..schemas.ledger import LedgerEntry
from .base import BaseService
from .subscription_service import SubscriptionService

logger = logging.getLogger(__name__)


def _participant_infos(booking: Booking) -> List[ParticipantInfo]:
    return [ParticipantInfo(id=member.id, name=member.name) for member in booking.participants]


def build_timeline_entry(
    booking: Booking, viewer_member_id: Optional[str], now: datetime
) -> TimelineEntry:
    """
    Project a booking for a viewer.

    ``viewer_member_id=None`` is the staff view and is never redacted.
    """
    is_creator = viewer_member_id is not None and booking.created_by == viewer_member_id
    is_participant = (
        viewer_member_id is not None and viewer_member_id in booking.participant_ids
    )
    reveal = viewer_member_id is None or is_creator or is_participant

    return TimelineEntry(
        booking_id=booking.id,
        space_id=booking.space_id,
        space_name=booking.space.name,
        start_time=booking.start_time,
        end_time=booking.end_time,
        status=booking.effective_status(now),
        booking_type=booking.booking_type,
        creator_id=booking.created_by if reveal else None,
        creator_name=booking.creator.name if reveal else None,
        participants=_participant_infos(booking) if reveal else None,
        is_creator=is_creator,
        is_participant=is_participant,
    )


def build_subscription_summary(subscription: Subscription) -> SubscriptionSummary:
    return SubscriptionSummary(
        subscription_id=subscription.id,
        tariff_id=subscription.tariff_id,
        tariff_name=subscription.tariff.name,
        tariff_type=subscription.tariff.type,
        start_date=subscription.start_date,
        end_date=subscription.end_date,
        remaining_minutes=subscription.remaining_minutes,
        unlimited_minutes=subscription.unlimited_minutes,
        status=subscription.status,
    )


class BookingReadService(BaseService):
    """Read-side projections over bookings, subscriptions and the ledger."""

    def __init__(self, db: Session, subscription_service: Optional[SubscriptionService] = None):
        super().__init__(db)
        self.booking_repository = RepositoryFactory.create_booking_repository(db)
        self.member_repository = RepositoryFactory.create_member_repository(db)
        self.subscription_repository = RepositoryFactory.create_subscription_repository(db)
        self.transaction_repository = RepositoryFactory.create_transaction_repository(db)
        self.subscription_service = subscription_service or SubscriptionService(db)
        self.settings_service = self.subscription_service.settings_service

    @BaseService.measure_operation("timeline_for_range")
    def timeline_for_range(
        self,
        range_start: datetime,
        range_end: datetime,
        viewer_member_id: str,
        *,
        as_of: Optional[datetime] = None,
    ) -> List[TimelineEntry]:
        """
        Bookings of every space intersecting ``[range_start, range_end)``, by start time.

        Creator and participants are hidden on bookings the viewer is not part of.
        """
        return self._timeline(range_start, range_end, viewer_member_id, as_of)

    @BaseService.measure_operation("staff_timeline_for_range")
    def staff_timeline_for_range(
        self, range_start: datetime, range_end: datetime, *, as_of: Optional[datetime] = None
    ) -> List[TimelineEntry]:
        return self._timeline(range_start, range_end, None, as_of)

    def _timeline(
        self,
        range_start: datetime,
        range_end: datetime,
        viewer_member_id: Optional[str],
        as_of: Optional[datetime],
    ) -> List[TimelineEntry]:
        if range_end <= range_start:
            raise ValidationException(
                "Range end must be after range start",
                code="INVALID_RANGE",
                details={"from": range_start.isoformat(), "to": range_end.isoformat()},
            )
        now = as_of or self.settings_service.current_time()
        bookings = self.booking_repository.get_in_range(range_start, range_end)
        return [build_timeline_entry(booking, viewer_member_id, now) for booking in bookings]

    @BaseService.measure_operation("history_for_member")
    def history_for_member(
        self, member_id: str, *, as_of: Optional[datetime] = None
    ) -> MemberHistory:
        """
        Bookings the member created or joined, and the member's subscriptions.

        Current bookings are confirmed and not yet ended; current subscriptions
        are active. Everything else is archive. Lists are newest first.
        """
        now = as_of or self.settings_service.current_time()
        if self.member_repository.get_by_id(member_id) is None:
            raise not_found("member", member_id)

        self.subscription_service.sweep_expired(now.date())

        history = MemberHistory(member_id=member_id)
        for booking in self.booking_repository.get_for_member(member_id):
            entry = build_timeline_entry(booking, member_id, now)
            if booking.status == BookingStatus.CONFIRMED and booking.end_time > now:
                history.current_bookings.append(entry)
            else:
                history.archived_bookings.append(entry)

        for subscription in self.subscription_repository.list_for_member(member_id):
            summary = build_subscription_summary(subscription)
            if subscription.status == SubscriptionStatus.ACTIVE:
                history.current_subscriptions.append(summary)
            else:
                history.archived_subscriptions.append(summary)

        return history

    def transaction_history(self, member_id: str) -> List[LedgerEntry]:
        """Ledger entries of a member, newest first, with signed amounts."""
        if self.member_repository.get_by_id(member_id) is None:
            raise not_found("member", member_id)
        return [
            LedgerEntry(
                transaction_id=entry.id,
                type=entry.type,
                amount=Decimal(entry.amount),
                signed_amount=entry.signed_amount,
                description=entry.description,
                created_at=entry.created_at,
            )
            for entry in self.transaction_repository.list_for_member(member_id)
        ]

    def booking_detail(
        self, booking_id: str, *, as_of: Optional[datetime] = None
    ) -> BookingDetail:
        """Staff view of one booking with its paying subscription or tariff."""
        now = as_of or self.settings_service.current_time()
        booking = self.booking_repository.get_by_id(booking_id)
        if booking is None:
            raise not_found("booking", booking_id)

        subscription_id = self.booking_repository.get_subscription_id(booking.id)
        tariff = None
        if subscription_id is not None:
            subscription = self.subscription_repository.get_by_id(subscription_id)
            tariff = subscription.tariff if subscription is not None else None
        else:
            one_off = self.transaction_repository.get_one_off_for_booking(booking.id)
            if one_off is not None:
                tariff = RepositoryFactory.create_tariff_repository(self.db).get_by_id(
                    one_off.tariff_id
                )

        return BookingDetail(
            booking_id=booking.id,
            space_id=booking.space_id,
            space_name=booking.space.name,
            creator_id=booking.created_by,
            creator_name=booking.creator.name,
            start_time=booking.start_time,
            end_time=booking.end_time,
            duration_minutes=booking.duration_minutes,
            status=booking.effective_status(now),
            booking_type=booking.booking_type,
            participants=_participant_infos(booking),
            subscription_id=subscription_id,
            tariff_id=tariff.id if tariff is not None else None,
            tariff_type=tariff.type if tariff is not None else None,
            created_at=booking.created_at,
            cancelled_at=booking.cancelled_at,
        )
