"""
Prometheus metrics.

Service timings come from the @measure_operation decorator; booking and
token counters are recorded by the services that own those outcomes.
"""

from typing import Optional

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

# Create a custom registry to avoid conflicts with default metrics
REGISTRY = CollectorRegistry()

service_operation_duration_seconds = Histogram(
    "lessonbook_service_operation_duration_seconds",
    "Service operation duration in seconds",
    ["service", "operation"],
    registry=REGISTRY,
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

service_operations_total = Counter(
    "lessonbook_service_operations_total",
    "Total number of service operations",
    ["service", "operation", "status"],
    registry=REGISTRY,
)

errors_total = Counter(
    "lessonbook_errors_total",
    "Total number of errors",
    ["service", "operation", "error_type"],
    registry=REGISTRY,
)

booking_outcomes_total = Counter(
    "lessonbook_booking_outcomes_total",
    "Booking attempts by outcome code",
    ["outcome"],
    registry=REGISTRY,
)

ledger_transactions_total = Counter(
    "lessonbook_ledger_transactions_total",
    "Credit ledger rows written",
    ["transaction_type"],
    registry=REGISTRY,
)

share_token_validations_total = Counter(
    "lessonbook_share_token_validations_total",
    "Share token validations by result",
    ["result"],
    registry=REGISTRY,
)

housekeeping_items_total = Counter(
    "lessonbook_housekeeping_items_total",
    "Rows changed by background housekeeping jobs",
    ["job"],
    registry=REGISTRY,
)


class PrometheusMetrics:
    """Thin facade so callers never touch metric objects directly."""

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
        if status == "error" and error_type:
            errors_total.labels(service=service, operation=operation, error_type=error_type).inc()

    @staticmethod
    def record_booking_outcome(outcome: str) -> None:
        booking_outcomes_total.labels(outcome=outcome).inc()

    @staticmethod
    def record_ledger_transaction(transaction_type: str) -> None:
        ledger_transactions_total.labels(transaction_type=transaction_type).inc()

    @staticmethod
    def record_token_validation(result: str) -> None:
        share_token_validations_total.labels(result=result).inc()

    @staticmethod
    def record_housekeeping(job: str, count: int) -> None:
        if count:
            housekeeping_items_total.labels(job=job).inc(count)

    @staticmethod
    def get_metrics() -> bytes:
        return generate_latest(REGISTRY)

    @staticmethod
    def get_content_type() -> str:
        return CONTENT_TYPE_LATEST


prometheus_metrics = PrometheusMetrics()
