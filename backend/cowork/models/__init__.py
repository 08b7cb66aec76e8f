"""
SQLAlchemy models for the coworking engine.

Importing this package registers every table on ``Base.metadata``.
"""

from .base_enum import create_safe_enum, decode_enum
from .booking import (
    BOOKING_OVERLAP_CONSTRAINT,
    Booking,
    BookingStatus,
    BookingType,
    OneOff,
    booking_participants,
    booking_subscriptions,
    transaction_one_offs,
)
from .member import Member, Staff, StaffRole
from .space import Space, SpaceStatus
from .subscription import Subscription, SubscriptionStatus, transaction_subscriptions
from .system_setting import SystemSetting, WorkingHours
from .tariff import Tariff, TariffType, tariff_spaces
from .transaction import CREDIT_TRANSACTION_TYPES, Transaction, TransactionType

__all__ = [
    "BOOKING_OVERLAP_CONSTRAINT",
    "Booking",
    "BookingStatus",
    "BookingType",
    "CREDIT_TRANSACTION_TYPES",
    "Member",
    "OneOff",
    "Space",
    "SpaceStatus",
    "Staff",
    "StaffRole",
    "Subscription",
    "SubscriptionStatus",
    "SystemSetting",
    "Tariff",
    "TariffType",
    "Transaction",
    "TransactionType",
    "WorkingHours",
    "booking_participants",
    "booking_subscriptions",
    "create_safe_enum",
    "decode_enum",
    "tariff_spaces",
    "transaction_one_offs",
    "transaction_subscriptions",
]
