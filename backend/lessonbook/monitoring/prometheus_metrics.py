"""
Prometheus metrics for lessonbook.

Service timings come from ``@BaseService.measure_operation``; booking-specific
counters record lock outcomes, conflicts and notification delivery.
"""

from typing import Optional

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

# Custom registry so test processes can import this module repeatedly
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

booking_lock_total = Counter(
    "lessonbook_booking_lock_total",
    "Per-teacher booking lock operations",
    ["action", "outcome"],
    registry=REGISTRY,
)

booking_conflicts_total = Counter(
    "lessonbook_booking_conflicts_total",
    "Rejected bookings by reason code",
    ["code"],
    registry=REGISTRY,
)

notifications_total = Counter(
    "lessonbook_notifications_total",
    "Notification deliveries by template and outcome",
    ["template_type", "status"],
    registry=REGISTRY,
)


class PrometheusMetrics:
    """Thin static facade over the module-level collectors."""

    @staticmethod
    def record_service_operation(
        service: str,
        operation: str,
        duration: float,
        status: str = "success",
        error_type: Optional[str] = None,
    ) -> None:
        """
        Record service operation metrics from @measure_operation decorator.

        Args:
            service: Service name (e.g., 'BookingService')
            operation: Operation/method name (e.g., 'book_lesson')
            duration: Operation duration in seconds
            status: Operation status ('success' or 'error')
            error_type: Type of error if status is 'error'
        """
        service_operation_duration_seconds.labels(service=service, operation=operation).observe(
            duration
        )
        service_operations_total.labels(service=service, operation=operation, status=status).inc()
        if status == "error" and error_type:
            errors_total.labels(service=service, operation=operation, error_type=error_type).inc()

    @staticmethod
    def record_booking_lock(action: str, outcome: str) -> None:
        booking_lock_total.labels(action=action, outcome=outcome).inc()

    @staticmethod
    def record_booking_rejection(code: str) -> None:
        booking_conflicts_total.labels(code=code).inc()

    @staticmethod
    def record_notification(template_type: str, status: str) -> None:
        notifications_total.labels(template_type=template_type, status=status).inc()

    @staticmethod
    def get_metrics() -> bytes:
        """Generate metrics in Prometheus text exposition format."""
        return generate_latest(REGISTRY)

    @staticmethod
    def get_content_type() -> str:
        return CONTENT_TYPE_LATEST


prometheus_metrics = PrometheusMetrics()
