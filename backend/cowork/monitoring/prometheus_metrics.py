"""
Prometheus export for the coworking engine.

Every @measure_operation call lands in the service histogram and counters;
booking conflicts and ledger entries get their own domain counters.
"""

from typing import Optional, cast

from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest

# Dedicated registry so repeated imports in tests never collide with the global one
REGISTRY = CollectorRegistry()

service_operation_duration_seconds = Histogram(
    "cowork_service_operation_duration_seconds",
    "Wall time of measured service operations",
    ["service", "operation"],
    registry=REGISTRY,
    buckets=(0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0),
)

service_operations_total = Counter(
    "cowork_service_operations_total",
    "Measured service operations by outcome",
    ["service", "operation", "status"],
    registry=REGISTRY,
)

service_errors_total = Counter(
    "cowork_service_errors_total",
    "Failed service operations by exception class",
    ["service", "operation", "error_type"],
    registry=REGISTRY,
)

booking_conflicts_total = Counter(
    "cowork_booking_conflicts_total",
    "Booking attempts rejected because the slot was taken",
    ["source"],  # precheck | constraint
    registry=REGISTRY,
)

ledger_transactions_total = Counter(
    "cowork_ledger_transactions_total",
    "Ledger entries appended, by kind",
    ["kind"],
    registry=REGISTRY,
)


class PrometheusMetrics:
    """Thin facade over the module-level collectors."""

    @staticmethod
    def record_service_operation(
        service: str,
        operation: str,
        duration: float,
        status: str = "success",
        error_type: Optional[str] = None,
    ) -> None:
        service_operation_duration_seconds.labels(service=service, operation=operation).observe(
            duration
        )
        service_operations_total.labels(service=service, operation=operation, status=status).inc()
        if error_type:
            service_errors_total.labels(
                service=service, operation=operation, error_type=error_type
            ).inc()

    @staticmethod
    def inc_booking_conflict(source: str) -> None:
        booking_conflicts_total.labels(source=source).inc()

    @staticmethod
    def inc_ledger_transaction(kind: str) -> None:
        ledger_transactions_total.labels(kind=kind).inc()

    @staticmethod
    def get_metrics() -> bytes:
        """Current values in the Prometheus text exposition format."""
        return cast(bytes, generate_latest(REGISTRY))


prometheus_metrics = PrometheusMetrics()
