"""Booking and subscription read models."""

from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional

from pydantic import Field

from ..models.booking import BookingStatus, BookingType
from ..models.subscription import SubscriptionStatus
from ..models.tariff import TariffType
from ._strict_base import StrictModel


class ParticipantInfo(StrictModel):
    id: str
    name: str


class TimelineEntry(StrictModel):
    """
    One booking on the occupancy timeline.

    Identity fields are ``None`` when the viewer neither created nor
    participates in the booking.
    """

    booking_id: str
    space_id: str
    space_name: str
    start_time: datetime
    end_time: datetime
    status: BookingStatus
    booking_type: BookingType
    creator_id: Optional[str] = None
    creator_name: Optional[str] = None
    participants: Optional[List[ParticipantInfo]] = None
    is_creator: bool = False
    is_participant: bool = False

    @property
    def is_redacted(self) -> bool:
        return self.creator_id is None


class SubscriptionSummary(StrictModel):
    subscription_id: str
    tariff_id: str
    tariff_name: str
    tariff_type: TariffType
    start_date: date
    end_date: date
    remaining_minutes: int
    unlimited_minutes: bool
    status: SubscriptionStatus


class MemberHistory(StrictModel):
    """A member's bookings and subscriptions split into current and archive, newest first."""

    member_id: str
    current_bookings: List[TimelineEntry] = Field(default_factory=list)
    archived_bookings: List[TimelineEntry] = Field(default_factory=list)
    current_subscriptions: List[SubscriptionSummary] = Field(default_factory=list)
    archived_subscriptions: List[SubscriptionSummary] = Field(default_factory=list)


class BookingDetail(StrictModel):
    """Staff view of a single booking."""

    booking_id: str
    space_id: str
    space_name: str
    creator_id: str
    creator_name: str
    start_time: datetime
    end_time: datetime
    duration_minutes: int
    status: BookingStatus
    booking_type: BookingType
    participants: List[ParticipantInfo] = Field(default_factory=list)
    subscription_id: Optional[str] = None
    tariff_id: Optional[str] = None
    tariff_type: Optional[TariffType] = None
    created_at: datetime
    cancelled_at: Optional[datetime] = None
