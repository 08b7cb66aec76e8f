# backend/cowork/models/member.py
"""
Member and staff directory models.

A member's ``balance`` is a materialized view over the member's ledger
transactions: it is only ever written together with an appended
``Transaction`` row by the ledger service.
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import CheckConstraint, DateTime, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship
import ulid

from ..database import Base
from .base_enum import create_safe_enum

if TYPE_CHECKING:
    from .subscription import Subscription
    from .transaction import Transaction


class StaffRole(str, Enum):
    """Staff permission levels. Inactive staff cannot act."""

    SUPERADMIN = "superadmin"
    ADMIN = "admin"
    STAFF = "staff"
    INACTIVE = "inactive"


class Member(Base):
    """A coworking member holding a monetary balance."""

    __tablename__ = "members"

    id: Mapped[str] = mapped_column(
        String(26), primary_key=True, default=lambda: str(ulid.ULID())
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    phone: Mapped[Optional[str]] = mapped_column(String(32), unique=True)
    balance: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), nullable=False, default=Decimal("0.00")
    )
    registered_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )

    transactions: Mapped[List["Transaction"]] = relationship(
        "Transaction", back_populates="member", passive_deletes=True
    )
    subscriptions: Mapped[List["Subscription"]] = relationship(
        "Subscription", back_populates="member", passive_deletes=True
    )

    __table_args__ = (CheckConstraint("balance >= 0", name="ck_members_balance_non_negative"),)

    def __repr__(self) -> str:
        return f"<Member {self.id} {self.email} balance={self.balance}>"


class Staff(Base):
    """Administrator or operator acting on behalf of the facility."""

    __tablename__ = "staff"

    id: Mapped[str] = mapped_column(
        String(26), primary_key=True, default=lambda: str(ulid.ULID())
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    role: Mapped[StaffRole] = mapped_column(
        create_safe_enum(StaffRole, "staff_role"), nullable=False, default=StaffRole.STAFF
    )

    @property
    def is_active(self) -> bool:
        return self.role != StaffRole.INACTIVE

    def __repr__(self) -> str:
        return f"<Staff {self.id} {self.email} role={self.role}>"
