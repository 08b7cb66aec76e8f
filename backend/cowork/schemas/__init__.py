"""Read models returned by the booking read service."""

from .booking import (
    BookingDetail,
    MemberHistory,
    ParticipantInfo,
    SubscriptionSummary,
    TimelineEntry,
)
from .ledger import LedgerEntry

__all__ = [
    "BookingDetail",
    "LedgerEntry",
    "MemberHistory",
    "ParticipantInfo",
    "SubscriptionSummary",
    "TimelineEntry",
]
