# backend/cowork/repositories/conflict_checker_repository.py
"""
ConflictChecker Repository

Overlap queries for space bookings. Intervals are half-open, so a booking
ending at 12:00 and another starting at 12:00 on the same space do not
conflict. Only confirmed bookings occupy a space.
"""

from datetime import datetime
import logging
from typing import List, Optional, cast

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.booking import Booking, BookingStatus
from ..models.space import Space
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class ConflictCheckerRepository(BaseRepository[Booking]):
    """Repository for conflict checking data access."""

    def __init__(self, db: Session):
        """Initialize with Booking model as primary."""
        super().__init__(db, Booking)
        self.logger = logging.getLogger(__name__)

    def get_conflicting_bookings(
        self,
        space_id: str,
        start_time: datetime,
        end_time: datetime,
        exclude_booking_id: Optional[str] = None,
    ) -> List[Booking]:
        """
        Get confirmed bookings on a space that overlap ``[start_time, end_time)``.

        Args:
            space_id: The space to check
            start_time: Start of the requested interval
            end_time: End of the requested interval (exclusive)
            exclude_booking_id: Optional booking ID to exclude from results

        Returns:
            Overlapping bookings ordered by start time
        """
        try:
            query = self.db.query(Booking).filter(
                Booking.space_id == space_id,
                Booking.status == BookingStatus.CONFIRMED,
                Booking.start_time < end_time,
                Booking.end_time > start_time,
            )

            if exclude_booking_id:
                query = query.filter(Booking.id != exclude_booking_id)

            return cast(List[Booking], query.order_by(Booking.start_time).all())

        except SQLAlchemyError as e:
            self.logger.error(f"Error getting bookings for conflict check: {str(e)}")
            raise RepositoryException(f"Failed to get conflict bookings: {str(e)}")

    def lock_space(self, space_id: str) -> Optional[Space]:
        """
        Load a space row with an exclusive row lock.

        Concurrent booking attempts on the same space queue behind this lock,
        so the overlap check and the insert that follows are serialized.
        """
        try:
            return cast(
                Optional[Space],
                self.db.query(Space)
                .filter(Space.id == space_id)
                .with_for_update(of=Space)
                .first(),
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error locking space {space_id}: {str(e)}")
            raise RepositoryException(f"Failed to lock space: {str(e)}")
