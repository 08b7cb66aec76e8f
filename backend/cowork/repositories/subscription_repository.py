# backend/cowork/repositories/subscription_repository.py
"""Data access for subscriptions and their booking links."""

from datetime import date
import logging
from typing import List, Optional, cast

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.booking import Booking, BookingStatus, booking_subscriptions
from ..models.subscription import Subscription, SubscriptionStatus
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class SubscriptionRepository(BaseRepository[Subscription]):
    def __init__(self, db: Session):
        super().__init__(db, Subscription)

    def get_for_update(self, subscription_id: str) -> Optional[Subscription]:
        """Load a subscription with its minute pool locked."""
        return self.get_by_id(subscription_id, for_update=True)

    def list_for_member(self, member_id: str) -> List[Subscription]:
        """All subscriptions of a member, newest start first."""
        try:
            return cast(
                List[Subscription],
                self.db.query(Subscription)
                .filter(Subscription.member_id == member_id)
                .order_by(Subscription.start_date.desc(), Subscription.id.desc())
                .all(),
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error listing subscriptions for {member_id}: {str(e)}")
            raise RepositoryException(f"Failed to list subscriptions: {str(e)}")

    def count_active_for_tariff(self, tariff_id: str) -> int:
        return self.count(tariff_id=tariff_id, status=SubscriptionStatus.ACTIVE)

    def count_for_tariff(self, tariff_id: str) -> int:
        return self.count(tariff_id=tariff_id)

    def expire_ended(self, today: date) -> int:
        """
        Mark active subscriptions whose end date is before ``today`` as expired.

        Returns:
            Number of subscriptions transitioned
        """
        try:
            result = self.db.execute(
                update(Subscription)
                .where(
                    Subscription.status == SubscriptionStatus.ACTIVE,
                    Subscription.end_date < today,
                )
                .values(status=SubscriptionStatus.EXPIRED)
                .execution_options(synchronize_session="fetch")
            )
            return int(result.rowcount or 0)
        except SQLAlchemyError as e:
            self.logger.error(f"Error expiring subscriptions: {str(e)}")
            raise RepositoryException(f"Failed to expire subscriptions: {str(e)}")

    def get_confirmed_booking_ids(self, subscription_id: str) -> List[str]:
        """Ids of confirmed bookings paid by a subscription."""
        try:
            rows = self.db.execute(
                select(Booking.id)
                .join(booking_subscriptions, booking_subscriptions.c.booking_id == Booking.id)
                .where(
                    booking_subscriptions.c.subscription_id == subscription_id,
                    Booking.status == BookingStatus.CONFIRMED,
                )
            ).all()
            return [row[0] for row in rows]
        except SQLAlchemyError as e:
            self.logger.error(f"Error loading bookings of {subscription_id}: {str(e)}")
            raise RepositoryException(f"Failed to load subscription bookings: {str(e)}")
