# backend/tests/unit/services/test_base_service.py
"""Unit tests for BaseService transaction handling and operation metrics."""

from unittest.mock import Mock

import pytest
from sqlalchemy.exc import OperationalError

from cowork.core.exceptions import ServiceException, ValidationException
from cowork.monitoring.prometheus_metrics import prometheus_metrics
from cowork.services.base import BaseService


class SampleService(BaseService):
    @BaseService.measure_operation("do_work")
    def do_work(self, fail: bool = False) -> str:
        if fail:
            raise ValidationException("bad input")
        return "done"


@pytest.fixture
def mock_db():
    return Mock()


class TestTransaction:
    def test_commits_on_success(self, mock_db):
        service = BaseService(mock_db)
        with service.transaction():
            pass
        mock_db.commit.assert_called_once()
        mock_db.rollback.assert_not_called()

    def test_domain_errors_roll_back_and_propagate(self, mock_db):
        service = BaseService(mock_db)
        with pytest.raises(ValidationException):
            with service.transaction():
                raise ValidationException("nope")
        mock_db.rollback.assert_called_once()
        mock_db.commit.assert_not_called()

    def test_database_errors_become_service_exceptions(self, mock_db):
        service = BaseService(mock_db)
        with pytest.raises(ServiceException):
            with service.transaction():
                raise OperationalError("SELECT 1", {}, Exception("database is locked"))
        mock_db.rollback.assert_called_once()


class TestMeasureOperation:
    def test_success_and_failure_are_counted(self, mock_db):
        service = SampleService(mock_db)
        assert service.do_work() == "done"
        with pytest.raises(ValidationException):
            service.do_work(fail=True)

        metrics = service.get_metrics()["do_work"]
        assert metrics["count"] == 2
        assert metrics["success_count"] == 1
        assert metrics["failure_count"] == 1
        assert metrics["success_rate"] == 0.5

    def test_operation_name_is_attached(self):
        assert getattr(SampleService.do_work, "_operation_name") == "do_work"
        assert getattr(SampleService.do_work, "_is_measured") is True

    def test_reset_metrics(self, mock_db):
        service = SampleService(mock_db)
        service.do_work()
        service.reset_metrics()
        assert service.get_metrics() == {}

    def test_prometheus_export_includes_operation(self, mock_db):
        SampleService(mock_db).do_work()
        payload = prometheus_metrics.get_metrics().decode()
        assert "cowork_service_operations_total" in payload
        assert 'operation="do_work"' in payload
