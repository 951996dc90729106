"""
Table Client Metrics Collection

Prometheus metrics for monitoring table operations: attempts, retries,
failures by status, latency, and request payload size.
"""

from typing import Optional

from prometheus_client import (
    Counter,
    Histogram,
    CollectorRegistry,
    generate_latest,
    REGISTRY,
)


class TableClientMetrics:
    """
    Prometheus metrics collector for table operations.

    One instance per registry; create it with a private CollectorRegistry in
    tests to avoid duplicate registration on the default registry.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        """
        Initialize metrics collectors.

        Args:
            registry: Prometheus registry (uses default if None)
        """
        self.registry = registry if registry is not None else REGISTRY

        self.operations_total = Counter(
            'zuretable_operations_total',
            'Total table operations executed',
            ['operation', 'outcome'],
            registry=self.registry
        )

        self.attempts_total = Counter(
            'zuretable_request_attempts_total',
            'Total HTTP attempts sent',
            ['operation', 'status_code'],
            registry=self.registry
        )

        self.retries_total = Counter(
            'zuretable_request_retries_total',
            'Total attempts retried after a failure',
            ['operation'],
            registry=self.registry
        )

        self.errors_total = Counter(
            'zuretable_errors_total',
            'Total failed operations',
            ['operation', 'status_code', 'fatal'],
            registry=self.registry
        )

        self.operation_duration_seconds = Histogram(
            'zuretable_operation_duration_seconds',
            'Operation duration including retries',
            ['operation'],
            buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
            registry=self.registry
        )

        self.payload_size_bytes = Histogram(
            'zuretable_payload_size_bytes',
            'Serialized entity size in bytes',
            ['operation'],
            buckets=[100, 1000, 10000, 100000, 1000000],
            registry=self.registry
        )

    def track_attempt(self, operation: str, status_code: Optional[int]) -> None:
        """
        Track one HTTP attempt.

        Args:
            operation: Operation kind
            status_code: Response status, None when no response arrived
        """
        status = str(status_code) if status_code is not None else "none"
        self.attempts_total.labels(operation=operation, status_code=status).inc()

    def track_retry(self, operation: str) -> None:
        self.retries_total.labels(operation=operation).inc()

    def track_success(self, operation: str, duration: float) -> None:
        self.operations_total.labels(operation=operation, outcome="success").inc()
        self.operation_duration_seconds.labels(operation=operation).observe(duration)

    def track_error(self, operation: str, status_code: Optional[int], is_fatal: bool, duration: float) -> None:
        """
        Track a failed operation.

        Args:
            operation: Operation kind
            status_code: Final status code, None for transport failures
            is_fatal: Error classification
            duration: Operation duration in seconds
        """
        status = str(status_code) if status_code is not None else "none"
        self.operations_total.labels(operation=operation, outcome="error").inc()
        self.errors_total.labels(operation=operation, status_code=status, fatal=str(is_fatal).lower()).inc()
        self.operation_duration_seconds.labels(operation=operation).observe(duration)

    def track_payload(self, operation: str, size_bytes: int) -> None:
        self.payload_size_bytes.labels(operation=operation).observe(size_bytes)

    def generate_metrics(self) -> bytes:
        """
        Generate Prometheus metrics output.

        Returns:
            Metrics in Prometheus text format
        """
        return generate_latest(self.registry)


_metrics: Optional[TableClientMetrics] = None


def get_metrics() -> TableClientMetrics:
    """Get the process-wide metrics collector on the default registry."""
    global _metrics
    if _metrics is None:
        _metrics = TableClientMetrics()
    return _metrics
