# backend/cowork/models/booking.py
"""
Booking model for the coworking engine.

A booking reserves one space for the half-open interval
``[start_time, end_time)`` in facility local time. Bookings are paid either by
a subscription (linked through ``booking_subscriptions``) or by a one-off
ledger charge (``one_offs`` + ``transaction_one_offs``).

Status ``completed`` is never written by the booking lifecycle; a confirmed
booking whose end lies in the past is reported as completed by read models.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
import ulid

from ..database import Base
from .base_enum import create_safe_enum
from .member import Member
from .space import Space


class BookingStatus(str, Enum):
    """Booking lifecycle statuses."""

    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class BookingType(str, Enum):
    """How a booking is paid for."""

    ONE_TIME = "one_time"
    SUBSCRIPTION = "subscription"


# Name of the PostgreSQL exclusion constraint guarding per-space overlap
BOOKING_OVERLAP_CONSTRAINT = "bookings_no_overlap_per_space"

booking_participants = Table(
    "booking_participants",
    Base.metadata,
    Column(
        "booking_id", String(26), ForeignKey("bookings.id", ondelete="CASCADE"), primary_key=True
    ),
    Column(
        "member_id", String(26), ForeignKey("members.id", ondelete="CASCADE"), primary_key=True
    ),
)

booking_subscriptions = Table(
    "booking_subscriptions",
    Base.metadata,
    Column(
        "booking_id", String(26), ForeignKey("bookings.id", ondelete="CASCADE"), primary_key=True
    ),
    Column(
        "subscription_id",
        String(26),
        ForeignKey("subscriptions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    ),
)

transaction_one_offs = Table(
    "transaction_one_offs",
    Base.metadata,
    Column(
        "transaction_id",
        String(26),
        ForeignKey("transactions.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column(
        "one_off_id",
        String(26),
        ForeignKey("one_offs.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    ),
)


class Booking(Base):
    __tablename__ = "bookings"

    id: Mapped[str] = mapped_column(
        String(26), primary_key=True, default=lambda: str(ulid.ULID())
    )
    space_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("spaces.id", ondelete="RESTRICT"), nullable=False
    )
    created_by: Mapped[str] = mapped_column(
        String(26), ForeignKey("members.id", ondelete="CASCADE"), nullable=False
    )
    booking_type: Mapped[BookingType] = mapped_column(
        create_safe_enum(BookingType, "booking_type"), nullable=False
    )
    start_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    end_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    status: Mapped[BookingStatus] = mapped_column(
        create_safe_enum(BookingStatus, "booking_status"),
        nullable=False,
        default=BookingStatus.CONFIRMED,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    space: Mapped[Space] = relationship(Space, lazy="joined")
    creator: Mapped[Member] = relationship(Member, foreign_keys=[created_by], lazy="joined")
    participants: Mapped[List[Member]] = relationship(
        Member, secondary=booking_participants, lazy="selectin"
    )

    __table_args__ = (
        CheckConstraint("end_time > start_time", name="ck_bookings_time_order"),
        Index("idx_bookings_space_start", "space_id", "start_time"),
        Index("idx_bookings_created_by", "created_by"),
    )

    @property
    def duration_minutes(self) -> int:
        return int((self.end_time - self.start_time).total_seconds() // 60)

    @property
    def participant_ids(self) -> List[str]:
        return [member.id for member in self.participants]

    def involves(self, member_id: str) -> bool:
        """True when ``member_id`` created or participates in this booking."""
        return self.created_by == member_id or member_id in self.participant_ids

    def effective_status(self, now: datetime) -> BookingStatus:
        """Status as shown to readers: confirmed bookings in the past are completed."""
        if self.status == BookingStatus.CONFIRMED and self.end_time <= now:
            return BookingStatus.COMPLETED
        return self.status

    def __repr__(self) -> str:
        return (
            f"<Booking {self.id} space={self.space_id} "
            f"{self.start_time:%Y-%m-%d %H:%M}-{self.end_time:%H:%M} {self.status}>"
        )


class OneOff(Base):
    """Record of a booking paid once from the member balance."""

    __tablename__ = "one_offs"

    id: Mapped[str] = mapped_column(
        String(26), primary_key=True, default=lambda: str(ulid.ULID())
    )
    booking_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    member_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("members.id", ondelete="CASCADE"), nullable=False
    )
    tariff_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("tariffs.id", ondelete="RESTRICT"), nullable=False
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (CheckConstraint("quantity > 0", name="ck_one_offs_quantity_positive"),)
