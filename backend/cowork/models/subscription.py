# backend/cowork/models/subscription.py
"""
Subscription model.

A subscription entitles a member to book spaces against a minute pool for a
period. ``unlimited_minutes`` distinguishes an unlimited pool from a finite
pool that has been drawn down to zero.
"""

from datetime import date, datetime
from enum import Enum
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
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
from .tariff import Tariff

if TYPE_CHECKING:
    from .member import Member


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


# One payment transaction per subscription
transaction_subscriptions = Table(
    "transaction_subscriptions",
    Base.metadata,
    Column(
        "transaction_id",
        String(26),
        ForeignKey("transactions.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column(
        "subscription_id",
        String(26),
        ForeignKey("subscriptions.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    ),
)


class Subscription(Base):
    __tablename__ = "subscriptions"

    id: Mapped[str] = mapped_column(
        String(26), primary_key=True, default=lambda: str(ulid.ULID())
    )
    member_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("members.id", ondelete="CASCADE"), nullable=False
    )
    tariff_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("tariffs.id", ondelete="RESTRICT"), nullable=False
    )
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    remaining_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    unlimited_minutes: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    status: Mapped[SubscriptionStatus] = mapped_column(
        create_safe_enum(SubscriptionStatus, "subscription_status"),
        nullable=False,
        default=SubscriptionStatus.ACTIVE,
    )
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    member: Mapped["Member"] = relationship("Member", back_populates="subscriptions")
    tariff: Mapped[Tariff] = relationship(Tariff, lazy="joined")

    __table_args__ = (
        CheckConstraint("remaining_minutes >= 0", name="ck_subscriptions_minutes_non_negative"),
        CheckConstraint("end_date >= start_date", name="ck_subscriptions_period"),
        Index("idx_subscriptions_member_status", "member_id", "status"),
    )

    @property
    def is_active(self) -> bool:
        return self.status == SubscriptionStatus.ACTIVE

    def __repr__(self) -> str:
        return (
            f"<Subscription {self.id} member={self.member_id} status={self.status} "
            f"remaining={'unlimited' if self.unlimited_minutes else self.remaining_minutes}>"
        )
