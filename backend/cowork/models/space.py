# backend/cowork/models/space.py
"""Bookable space catalog."""

from enum import Enum

from sqlalchemy import CheckConstraint, Integer, String
from sqlalchemy.orm import Mapped, mapped_column
import ulid

from ..database import Base
from .base_enum import create_safe_enum


class SpaceStatus(str, Enum):
    """Operational status of a space. Maintenance blocks new bookings."""

    AVAILABLE = "available"
    OCCUPIED = "occupied"
    MAINTENANCE = "maintenance"


class Space(Base):
    """A desk, room, or zone that can be reserved by the minute."""

    __tablename__ = "spaces"

    id: Mapped[str] = mapped_column(
        String(26), primary_key=True, default=lambda: str(ulid.ULID())
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    floor: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    status: Mapped[SpaceStatus] = mapped_column(
        create_safe_enum(SpaceStatus, "space_status"),
        nullable=False,
        default=SpaceStatus.AVAILABLE,
    )

    __table_args__ = (CheckConstraint("capacity > 0", name="ck_spaces_capacity_positive"),)

    @property
    def is_bookable(self) -> bool:
        return self.status != SpaceStatus.MAINTENANCE

    def __repr__(self) -> str:
        return f"<Space {self.id} {self.name} status={self.status}>"
