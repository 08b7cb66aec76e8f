# backend/tests/integration/services/test_tariff_service.py
"""Integration tests for tariff catalog management."""

from datetime import date
from decimal import Decimal

import pytest

from cowork.core.exceptions import (
    ConflictException,
    NotFoundException,
    TariffInUseException,
    ValidationException,
)
from cowork.models.tariff import Tariff, TariffType
from cowork.services.tariff_service import TariffService


@pytest.fixture
def tariff_service(db):
    return TariffService(db)


class TestCreateTariff:
    def test_hourly_tariff_has_no_period_or_pool(self, tariff_service):
        tariff = tariff_service.create_tariff(
            "Day Pass", "hourly", "200", duration_days=30, included_minutes=600
        )

        assert tariff.type == TariffType.HOURLY
        assert tariff.price == Decimal("200.00")
        assert tariff.duration_days == 0
        assert tariff.included_minutes == 0

    def test_fixed_tariff_pool_is_unlimited(self, tariff_service, make_space):
        desk = make_space()
        tariff = tariff_service.create_tariff(
            "Fixed desk", TariffType.FIXED, "1000", duration_days=30, included_minutes=600, space_ids=[desk.id]
        )

        assert tariff.included_minutes == 0
        assert tariff.duration_days == 30
        assert tariff_service.tariff_repository.get_space_ids(tariff.id) == [desk.id]

    def test_name_must_be_unique(self, tariff_service):
        tariff_service.create_tariff("Flex", "package", "500", duration_days=30, included_minutes=600)
        with pytest.raises(ConflictException) as exc_info:
            tariff_service.create_tariff("Flex", "package", "700", duration_days=30)
        assert exc_info.value.code == "TARIFF_NAME_TAKEN"

    def test_unknown_type(self, tariff_service):
        with pytest.raises(ValidationException) as exc_info:
            tariff_service.create_tariff("Weekly", "weekly", "100")
        assert exc_info.value.code == "INVALID_TARIFF_TYPE"

    def test_unknown_space_rolls_back(self, tariff_service, db):
        with pytest.raises(NotFoundException):
            tariff_service.create_tariff("Ghost", "hourly", "100", space_ids=["missing"])
        assert db.query(Tariff).count() == 0

    def test_list_active(self, tariff_service):
        tariff_service.create_tariff("Open", "hourly", "100")
        tariff_service.create_tariff("Closed", "hourly", "100", is_active=False)
        assert [t.name for t in tariff_service.list_active()] == ["Open"]


class TestUpdateTariff:
    def test_price_locked_while_subscriptions_active(self, tariff_service, subscription_service, make_member, make_tariff):
        package = make_tariff(TariffType.PACKAGE, duration_days=30, included_minutes=600)
        subscription = subscription_service.issue(
            make_member().id, package.id, date(2024, 6, 1), date(2024, 7, 1), 600
        )

        with pytest.raises(TariffInUseException):
            tariff_service.update_tariff(package.id, price="900")
        with pytest.raises(TariffInUseException):
            tariff_service.update_tariff(package.id, included_minutes=300)

        renamed = tariff_service.update_tariff(package.id, name="Flex Plus", is_active=False)
        assert renamed.name == "Flex Plus"
        assert renamed.is_active is False

        subscription_service.cancel(subscription.id)
        repriced = tariff_service.update_tariff(package.id, price="900")
        assert repriced.price == Decimal("900.00")

    def test_minutes_only_apply_to_packages(self, tariff_service, make_tariff):
        hourly = make_tariff(TariffType.HOURLY)
        updated = tariff_service.update_tariff(hourly.id, duration_days=10, included_minutes=60)
        assert updated.duration_days == 0
        assert updated.included_minutes == 0

    def test_rename_to_taken_name(self, tariff_service, make_tariff):
        make_tariff(name="Taken")
        other = make_tariff()
        with pytest.raises(ConflictException):
            tariff_service.update_tariff(other.id, name="Taken")

    def test_unknown_tariff(self, tariff_service):
        with pytest.raises(NotFoundException):
            tariff_service.update_tariff("missing", name="X")


class TestDeleteTariff:
    def test_unused_tariff_is_deleted(self, tariff_service, make_tariff, make_space, db):
        tariff = make_tariff(spaces=[make_space()])
        tariff_service.delete_tariff(tariff.id)
        assert db.get(Tariff, tariff.id) is None

    def test_referenced_tariff_is_kept(self, tariff_service, subscription_service, make_member, make_tariff):
        package = make_tariff(TariffType.PACKAGE, duration_days=30, included_minutes=600)
        subscription = subscription_service.issue(
            make_member().id, package.id, date(2024, 5, 1), date(2024, 5, 10), 600
        )
        subscription_service.cancel(subscription.id)

        with pytest.raises(TariffInUseException):
            tariff_service.delete_tariff(package.id)


class TestSetSpaces:
    def test_replaces_bound_spaces(self, tariff_service, make_tariff, make_space):
        first, second = make_space(), make_space()
        tariff = make_tariff(spaces=[first])

        assert tariff_service.set_spaces(tariff.id, [second.id, second.id]) == [second.id]
        assert tariff_service.set_spaces(tariff.id, []) == []
