"""
Shared field types for the coworking schemas.
"""
from decimal import Decimal, InvalidOperation
from typing import Any

from pydantic_core import core_schema

CENTS = Decimal("0.01")


def _to_money(value: Any) -> Decimal:
    # floats go through str() so 0.1 becomes 0.10, not its binary expansion
    raw = str(value) if isinstance(value, float) else value
    try:
        return Decimal(raw).quantize(CENTS)
    except (InvalidOperation, TypeError) as exc:
        raise ValueError(f"{value!r} is not a monetary amount") from exc


class Money(Decimal):
    """Amount in currency units, two decimal places, emitted as a string in JSON."""

    @classmethod
    def __get_pydantic_core_schema__(cls, source_type: Any, handler: Any) -> core_schema.CoreSchema:
        accepted = core_schema.union_schema(
            [
                core_schema.is_instance_schema(Decimal),
                core_schema.int_schema(),
                core_schema.float_schema(),
                core_schema.str_schema(),
            ]
        )
        return core_schema.no_info_after_validator_function(
            _to_money,
            accepted,
            serialization=core_schema.plain_serializer_function_ser_schema(
                lambda amount: f"{amount:.2f}", return_schema=core_schema.str_schema()
            ),
        )
