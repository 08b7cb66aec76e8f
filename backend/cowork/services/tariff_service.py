# backend/cowork/services/tariff_service.py
"""
Tariff catalog administration.

Tariff type is fixed at creation. Duration, included minutes and price can
only change while no active subscription references the tariff, and a tariff
referenced by any subscription cannot be deleted.
"""

from decimal import Decimal, InvalidOperation
from typing import Iterable, List, Optional, Union

from sqlalchemy.orm import Session

from ..core.exceptions import (
    ConflictException,
    EnumDecodeError,
    TariffInUseException,
    ValidationException,
    not_found,
)
from ..models.base_enum import decode_enum
from ..models.tariff import Tariff, TariffType
from ..repositories.factory import RepositoryFactory
from .base import BaseService
from .ledger_service import CENT


def parse_price(price: Union[Decimal, int, str]) -> Decimal:
    """Non-negative price with at most two decimal places."""
    try:
        value = price if isinstance(price, Decimal) else Decimal(str(price).strip())
    except (InvalidOperation, ValueError) as exc:
        raise ValidationException(
            f"Invalid price: {price!r}", code="INVALID_PRICE", details={"price": str(price)}
        ) from exc
    if not value.is_finite() or value < 0:
        raise ValidationException(
            "Price must not be negative", code="INVALID_PRICE", details={"price": str(price)}
        )
    if value != value.quantize(CENT):
        raise ValidationException(
            "Price must have at most two decimal places",
            code="INVALID_PRICE",
            details={"price": str(price)},
        )
    return value.quantize(CENT)


class TariffService(BaseService):
    """Create, edit and delete tariffs and their space bindings."""

    def __init__(self, db: Session):
        super().__init__(db)
        self.tariff_repository = RepositoryFactory.create_tariff_repository(db)
        self.space_repository = RepositoryFactory.create_space_repository(db)
        self.subscription_repository = RepositoryFactory.create_subscription_repository(db)

    def get_tariff(self, tariff_id: str) -> Tariff:
        tariff = self.tariff_repository.get_by_id(tariff_id)
        if tariff is None:
            raise not_found("tariff", tariff_id)
        return tariff

    def list_active(self) -> List[Tariff]:
        return self.tariff_repository.list_active()

    @BaseService.measure_operation("create_tariff")
    def create_tariff(
        self,
        name: str,
        tariff_type: Union[TariffType, str],
        price: Union[Decimal, int, str],
        duration_days: int = 0,
        included_minutes: int = 0,
        is_active: bool = True,
        space_ids: Iterable[str] = (),
    ) -> Tariff:
        """
        Create a tariff.

        Hourly tariffs have no period and no pool; fixed tariffs always get an
        unlimited pool for their period.
        """
        clean_name = name.strip()
        if not clean_name:
            raise ValidationException("Tariff name is required", code="INVALID_TARIFF")
        try:
            kind = decode_enum(TariffType, tariff_type)
        except EnumDecodeError as exc:
            raise ValidationException(
                str(exc), code="INVALID_TARIFF_TYPE", details={"value": str(tariff_type)}
            ) from exc
        value = parse_price(price)

        if kind == TariffType.HOURLY:
            duration_days, included_minutes = 0, 0
        elif kind == TariffType.FIXED:
            included_minutes = 0
        duration_days = max(0, duration_days)
        included_minutes = max(0, included_minutes)

        with self.transaction():
            if self.tariff_repository.exists(name=clean_name):
                raise ConflictException(
                    "A tariff with this name already exists",
                    code="TARIFF_NAME_TAKEN",
                    details={"name": clean_name},
                )
            tariff = self.tariff_repository.create(
                name=clean_name,
                type=kind,
                price=value,
                duration_days=duration_days,
                included_minutes=included_minutes,
                is_active=is_active,
            )
            self._replace_spaces(tariff.id, list(space_ids))
            self.log_operation("create_tariff", tariff_id=tariff.id, type=kind.value)

        return tariff

    @BaseService.measure_operation("update_tariff")
    def update_tariff(
        self,
        tariff_id: str,
        name: Optional[str] = None,
        price: Optional[Union[Decimal, int, str]] = None,
        duration_days: Optional[int] = None,
        included_minutes: Optional[int] = None,
        is_active: Optional[bool] = None,
    ) -> Tariff:
        """
        Edit a tariff. Name and active flag can always change.

        Raises:
            TariffInUseException: Duration, minutes or price given while
                active subscriptions reference the tariff
        """
        new_price = parse_price(price) if price is not None else None

        with self.transaction():
            tariff = self.get_tariff(tariff_id)

            restricted_change = any(
                value is not None for value in (new_price, duration_days, included_minutes)
            )
            if restricted_change:
                active = self.subscription_repository.count_active_for_tariff(tariff.id)
                if active:
                    raise TariffInUseException(tariff.id, active)

            if name is not None:
                clean_name = name.strip()
                if not clean_name:
                    raise ValidationException("Tariff name must not be empty", code="INVALID_TARIFF")
                existing = self.tariff_repository.find_one_by(name=clean_name)
                if existing is not None and existing.id != tariff.id:
                    raise ConflictException(
                        "A tariff with this name already exists",
                        code="TARIFF_NAME_TAKEN",
                        details={"name": clean_name},
                    )
                tariff.name = clean_name

            if new_price is not None:
                tariff.price = new_price
            if duration_days is not None and tariff.type != TariffType.HOURLY:
                tariff.duration_days = max(0, duration_days)
            if included_minutes is not None and tariff.type == TariffType.PACKAGE:
                tariff.included_minutes = max(0, included_minutes)
            if is_active is not None:
                tariff.is_active = is_active

            self.tariff_repository.flush()
            self.log_operation("update_tariff", tariff_id=tariff.id)

        return tariff

    @BaseService.measure_operation("delete_tariff")
    def delete_tariff(self, tariff_id: str) -> None:
        """
        Raises:
            TariffInUseException: Any subscription references the tariff
        """
        with self.transaction():
            tariff = self.get_tariff(tariff_id)
            subscriptions = self.subscription_repository.count_for_tariff(tariff.id)
            if subscriptions:
                raise TariffInUseException(tariff.id, subscriptions)
            self.tariff_repository.delete(tariff.id)
            self.log_operation("delete_tariff", tariff_id=tariff_id)

    @BaseService.measure_operation("set_tariff_spaces")
    def set_spaces(self, tariff_id: str, space_ids: Iterable[str]) -> List[str]:
        """Replace the spaces a tariff is bound to."""
        with self.transaction():
            tariff = self.get_tariff(tariff_id)
            self._replace_spaces(tariff.id, list(space_ids))
            self.db.expire(tariff, ["spaces"])
            return self.tariff_repository.get_space_ids(tariff.id)

    def _replace_spaces(self, tariff_id: str, space_ids: List[str]) -> None:
        unique_ids = list(dict.fromkeys(space_ids))
        for space_id in unique_ids:
            if self.space_repository.get_by_id(space_id) is None:
                raise not_found("space", space_id)
        self.tariff_repository.replace_space_ids(tariff_id, unique_ids)
