# backend/cowork/models/base_enum.py
"""
Safe enum helpers for SQLAlchemy.

Enum columns persist enum VALUES (``"one_time"``), never member NAMES
(``"ONE_TIME"``), so rows written by raw SQL seeding and rows written by the
ORM are read back identically.

Usage:
    from cowork.models.base_enum import create_safe_enum

    class Booking(Base):
        status: Mapped[BookingStatus] = mapped_column(
            create_safe_enum(BookingStatus, "booking_status"),
            nullable=False,
            default=BookingStatus.CONFIRMED,
        )

All Python enums for database storage inherit from (str, Enum) and define
lowercase values explicitly.
"""

from enum import Enum
from typing import Any, Sequence, Type, TypeVar

from sqlalchemy import Enum as SAEnum

from ..core.exceptions import EnumDecodeError

E = TypeVar("E", bound=Enum)


def create_safe_enum(
    enum_class: Type[Enum],
    name: str,
    *,
    native_enum: bool = True,
    validate_strings: bool = True,
) -> SAEnum:
    """
    Create a SQLAlchemy Enum that correctly uses enum values (not names).

    Args:
        enum_class: The Python Enum class to use
        name: Database type name for PostgreSQL native enum
        native_enum: Whether to use PostgreSQL native enum type (default True)
        validate_strings: Whether to validate string values (default True)

    Returns:
        SQLAlchemy Enum column type configured for safe value-based storage
    """
    return SAEnum(
        enum_class,
        name=name,
        native_enum=native_enum,
        validate_strings=validate_strings,
        values_callable=_get_enum_values,
    )


def _get_enum_values(enum_class: Type[Enum]) -> Sequence[str]:
    return [member.value for member in enum_class]


def decode_enum(enum_class: Type[E], raw: Any) -> E:
    """
    Decode any textual representation of an enum value.

    Accepts enum members, plain strings (case and surrounding whitespace are
    ignored, values and member names both match), bytes, and driver wrapper
    objects exposing a ``value`` attribute (e.g. PostgreSQL enum objects).

    Raises:
        EnumDecodeError: If the value does not name a member of ``enum_class``
    """
    if isinstance(raw, enum_class):
        return raw

    candidate = raw
    if isinstance(candidate, Enum):
        candidate = candidate.value
    elif not isinstance(candidate, (str, bytes)) and hasattr(candidate, "value"):
        candidate = getattr(candidate, "value")

    if isinstance(candidate, (bytes, bytearray)):
        try:
            candidate = bytes(candidate).decode("utf-8")
        except UnicodeDecodeError as exc:
            raise EnumDecodeError(enum_class.__name__, raw) from exc

    if not isinstance(candidate, str):
        raise EnumDecodeError(enum_class.__name__, raw)

    normalized = candidate.strip().lower()
    for member in enum_class:
        if str(member.value).lower() == normalized or member.name.lower() == normalized:
            return member
    raise EnumDecodeError(enum_class.__name__, raw)
