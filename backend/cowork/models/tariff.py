# backend/cowork/models/tariff.py
"""
Tariff catalog.

Tariff types:
    - fixed: pays for a dedicated space for the whole subscription period
    - hourly: priced per hour, paid per booking from the member balance
    - package: a prepaid pool of minutes (or unlimited) over a period
"""

from decimal import Decimal
from enum import Enum
from typing import List

from sqlalchemy import Boolean, CheckConstraint, Column, ForeignKey, Integer, Numeric, String, Table
from sqlalchemy.orm import Mapped, mapped_column, relationship
import ulid

from ..database import Base
from .base_enum import create_safe_enum
from .space import Space


class TariffType(str, Enum):
    FIXED = "fixed"
    HOURLY = "hourly"
    PACKAGE = "package"


tariff_spaces = Table(
    "tariff_spaces",
    Base.metadata,
    Column(
        "tariff_id", String(26), ForeignKey("tariffs.id", ondelete="CASCADE"), primary_key=True
    ),
    Column("space_id", String(26), ForeignKey("spaces.id", ondelete="CASCADE"), primary_key=True),
)


class Tariff(Base):
    """Pricing plan. ``included_minutes == 0`` means an unlimited minute pool."""

    __tablename__ = "tariffs"

    id: Mapped[str] = mapped_column(
        String(26), primary_key=True, default=lambda: str(ulid.ULID())
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    type: Mapped[TariffType] = mapped_column(
        create_safe_enum(TariffType, "tariff_type"), nullable=False
    )
    duration_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    included_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    spaces: Mapped[List[Space]] = relationship(Space, secondary=tariff_spaces, lazy="selectin")

    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_tariffs_price_non_negative"),
        CheckConstraint("duration_days >= 0", name="ck_tariffs_duration_non_negative"),
        CheckConstraint("included_minutes >= 0", name="ck_tariffs_minutes_non_negative"),
    )

    @property
    def is_unlimited(self) -> bool:
        return self.included_minutes == 0

    def __repr__(self) -> str:
        return f"<Tariff {self.id} {self.name} type={self.type} price={self.price}>"
