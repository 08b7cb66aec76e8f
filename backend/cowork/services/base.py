# backend/cowork/services/base.py
"""
Service layer foundation.

BaseService owns the unit of work for every booking, ledger and subscription
operation and times each public call so slow or failing operations show up
in the logs and in the Prometheus export.
"""

from contextlib import contextmanager
from functools import wraps
import logging
import time
from typing import Any, Callable, Dict, Iterator, Optional, TypeVar, cast

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import ServiceException
from ..monitoring.prometheus_metrics import prometheus_metrics

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


def _empty_stats() -> Dict[str, float]:
    return {
        "count": 0,
        "success_count": 0,
        "failure_count": 0,
        "total_time": 0.0,
        "min_time": float("inf"),
        "max_time": 0.0,
    }


class BaseService:
    """
    Parent of every service.

    Public operations open one transaction through ``transaction()``. When a
    service is called as a step of another service's workflow it is passed
    ``use_transaction=False`` and works inside the caller's transaction, so
    the whole workflow commits or rolls back together.
    """

    # service class name -> operation name -> running totals
    _class_metrics: Dict[str, Dict[str, Dict[str, float]]] = {}

    def __init__(self, db: Session):
        self.db = db
        self.logger = logging.getLogger(self.__class__.__name__)

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """
        Run the block as one unit of work.

        Commits when the block finishes. Any exception rolls back; driver
        and ORM failures are re-raised as ServiceException while domain
        exceptions pass through unchanged.
        """
        try:
            yield self.db
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            self.logger.error("Rolled back after database error: %s", exc)
            raise ServiceException(f"Database operation failed: {exc}") from exc
        except Exception as exc:
            self.db.rollback()
            self.logger.debug("Rolled back after %s: %s", type(exc).__name__, exc)
            raise

    @staticmethod
    def measure_operation(operation_name: str) -> Callable[[F], F]:
        """Time a service method and count its outcomes under ``operation_name``."""

        def decorator(func: F) -> F:
            @wraps(func)
            def wrapper(self: "BaseService", *args: Any, **kwargs: Any) -> Any:
                started = time.perf_counter()
                failure: Optional[BaseException] = None
                try:
                    return func(self, *args, **kwargs)
                except Exception as exc:
                    failure = exc
                    raise
                finally:
                    self._finish_operation(operation_name, time.perf_counter() - started, failure)

            setattr(wrapper, "_operation_name", operation_name)
            setattr(wrapper, "_is_measured", True)
            return cast(F, wrapper)

        return decorator

    def log_operation(self, operation: str, **context: Any) -> None:
        self.logger.info(f"Operation: {operation}", extra={"operation": operation, **context})

    def _finish_operation(
        self, operation: str, elapsed: float, failure: Optional[BaseException]
    ) -> None:
        service_name = self.__class__.__name__
        stats = BaseService._class_metrics.setdefault(service_name, {}).setdefault(
            operation, _empty_stats()
        )
        stats["count"] += 1
        stats["total_time"] += elapsed
        stats["min_time"] = min(stats["min_time"], elapsed)
        stats["max_time"] = max(stats["max_time"], elapsed)
        stats["failure_count" if failure else "success_count"] += 1

        if elapsed > settings.slow_operation_seconds:
            self.logger.warning("%s.%s took %.2fs", service_name, operation, elapsed)

        prometheus_metrics.record_service_operation(
            service=service_name,
            operation=operation,
            duration=elapsed,
            status="error" if failure else "success",
            error_type=type(failure).__name__ if failure else None,
        )

    def get_metrics(self) -> Dict[str, Any]:
        """
        Summarize measured operations of this service class.

        Returns:
            Operation name mapped to count, success/failure counts,
            success_rate and avg/min/max/total timings
        """
        summary: Dict[str, Any] = {}
        for operation, stats in BaseService._class_metrics.get(self.__class__.__name__, {}).items():
            count = stats["count"]
            if not count:
                continue
            summary[operation] = {
                **stats,
                "avg_time": stats["total_time"] / count,
                "success_rate": stats["success_count"] / count,
            }
        return summary

    def reset_metrics(self) -> None:
        BaseService._class_metrics.pop(self.__class__.__name__, None)
        self.logger.info("Metrics reset")
