# backend/cowork/repositories/booking_repository.py
"""
Booking Repository

Reads and writes bookings together with their participant and subscription
link rows.
"""

from datetime import datetime
import logging
from typing import Dict, Iterable, List, Optional, Sequence, cast

from sqlalchemy import delete, insert, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.booking import (
    Booking,
    BookingStatus,
    booking_participants,
    booking_subscriptions,
)
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class BookingRepository(BaseRepository[Booking]):
    def __init__(self, db: Session):
        super().__init__(db, Booking)

    # Link tables

    def add_participants(self, booking_id: str, member_ids: Iterable[str]) -> None:
        rows = [{"booking_id": booking_id, "member_id": member_id} for member_id in member_ids]
        if not rows:
            return
        try:
            self.db.execute(insert(booking_participants), rows)
        except SQLAlchemyError as e:
            self.logger.error(f"Error adding participants to {booking_id}: {str(e)}")
            raise RepositoryException(f"Failed to add participants: {str(e)}")

    def replace_participants(self, booking: Booking, member_ids: Sequence[str]) -> None:
        """Replace the participant set of a booking."""
        try:
            self.db.execute(
                delete(booking_participants).where(booking_participants.c.booking_id == booking.id)
            )
            self.add_participants(booking.id, member_ids)
            self.db.flush()
            self.db.expire(booking, ["participants"])
        except SQLAlchemyError as e:
            self.logger.error(f"Error replacing participants of {booking.id}: {str(e)}")
            raise RepositoryException(f"Failed to replace participants: {str(e)}")

    def link_subscription(self, booking_id: str, subscription_id: str) -> None:
        try:
            self.db.execute(
                insert(booking_subscriptions).values(
                    booking_id=booking_id, subscription_id=subscription_id
                )
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error linking booking {booking_id}: {str(e)}")
            raise RepositoryException(f"Failed to link booking subscription: {str(e)}")

    def get_subscription_id(self, booking_id: str) -> Optional[str]:
        """Subscription that paid for a booking, if any."""
        try:
            return cast(
                Optional[str],
                self.db.execute(
                    select(booking_subscriptions.c.subscription_id).where(
                        booking_subscriptions.c.booking_id == booking_id
                    )
                ).scalar_one_or_none(),
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error loading subscription of {booking_id}: {str(e)}")
            raise RepositoryException(f"Failed to load booking subscription: {str(e)}")

    def get_subscription_ids(self, booking_ids: Sequence[str]) -> Dict[str, str]:
        """Map booking id to paying subscription id for the given bookings."""
        if not booking_ids:
            return {}
        try:
            rows = self.db.execute(
                select(booking_subscriptions.c.booking_id, booking_subscriptions.c.subscription_id)
                .where(booking_subscriptions.c.booking_id.in_(list(booking_ids)))
            ).all()
            return {row[0]: row[1] for row in rows}
        except SQLAlchemyError as e:
            self.logger.error(f"Error loading booking subscriptions: {str(e)}")
            raise RepositoryException(f"Failed to load booking subscriptions: {str(e)}")

    # Status transitions

    def mark_cancelled(self, booking_ids: Sequence[str], cancelled_at: datetime) -> int:
        """Flip confirmed bookings to cancelled; returns how many changed."""
        if not booking_ids:
            return 0
        try:
            bookings = (
                self.db.query(Booking)
                .filter(Booking.id.in_(list(booking_ids)), Booking.status == BookingStatus.CONFIRMED)
                .all()
            )
            for booking in bookings:
                booking.status = BookingStatus.CANCELLED
                booking.cancelled_at = cancelled_at
            self.db.flush()
            return len(bookings)
        except SQLAlchemyError as e:
            self.logger.error(f"Error cancelling bookings: {str(e)}")
            raise RepositoryException(f"Failed to cancel bookings: {str(e)}")

    # Read queries

    def get_in_range(self, range_start: datetime, range_end: datetime) -> List[Booking]:
        """Bookings of any status intersecting ``[range_start, range_end)``, by start time."""
        try:
            return cast(
                List[Booking],
                self.db.query(Booking)
                .filter(Booking.start_time < range_end, Booking.end_time > range_start)
                .order_by(Booking.start_time, Booking.space_id)
                .all(),
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error loading bookings in range: {str(e)}")
            raise RepositoryException(f"Failed to load bookings: {str(e)}")

    def get_for_member(self, member_id: str) -> List[Booking]:
        """Bookings a member created or participates in, newest start first."""
        try:
            participant_booking_ids = select(booking_participants.c.booking_id).where(
                booking_participants.c.member_id == member_id
            )
            return cast(
                List[Booking],
                self.db.query(Booking)
                .filter(
                    or_(
                        Booking.created_by == member_id,
                        Booking.id.in_(participant_booking_ids),
                    )
                )
                .order_by(Booking.start_time.desc(), Booking.id.desc())
                .all(),
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error loading bookings for {member_id}: {str(e)}")
            raise RepositoryException(f"Failed to load member bookings: {str(e)}")
