# backend/cowork/models/system_setting.py
"""Key/value facility settings and per-weekday working hours."""

from sqlalchemy import CheckConstraint, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from ..database import Base


class SystemSetting(Base):
    __tablename__ = "system_settings"

    key: Mapped[str] = mapped_column(String(64), primary_key=True)
    value: Mapped[str] = mapped_column(String(255), nullable=False)


class WorkingHours(Base):
    """Opening hours for one ISO weekday (1 = Monday .. 7 = Sunday)."""

    __tablename__ = "working_hours"

    day_of_week: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    opening_time: Mapped[str] = mapped_column(String(5), nullable=False)
    closing_time: Mapped[str] = mapped_column(String(5), nullable=False)

    __table_args__ = (
        CheckConstraint("day_of_week BETWEEN 1 AND 7", name="ck_working_hours_day"),
    )
