"""
Tests for table client Prometheus metrics.
"""

import pytest
from prometheus_client import CollectorRegistry

from zuretable.core.metrics import TableClientMetrics


class TestTableClientMetrics:
    """Test cases for metrics collection."""

    @pytest.fixture
    def registry(self):
        return CollectorRegistry()

    @pytest.fixture
    def metrics(self, registry):
        """Create metrics instance on a private registry."""
        return TableClientMetrics(registry=registry)

    def test_track_attempt(self, metrics, registry):
        metrics.track_attempt("merge", 204)
        metrics.track_attempt("merge", None)

        assert registry.get_sample_value(
            "zuretable_request_attempts_total", {"operation": "merge", "status_code": "204"}
        ) == 1
        assert registry.get_sample_value(
            "zuretable_request_attempts_total", {"operation": "merge", "status_code": "none"}
        ) == 1

    def test_track_success(self, metrics, registry):
        metrics.track_success("retrieve", 0.05)

        assert registry.get_sample_value(
            "zuretable_operations_total", {"operation": "retrieve", "outcome": "success"}
        ) == 1
        assert registry.get_sample_value(
            "zuretable_operation_duration_seconds_count", {"operation": "retrieve"}
        ) == 1

    def test_track_error(self, metrics, registry):
        metrics.track_error("delete", 409, False, 0.2)
        metrics.track_error("delete", None, True, 0.2)

        assert registry.get_sample_value(
            "zuretable_errors_total", {"operation": "delete", "status_code": "409", "fatal": "false"}
        ) == 1
        assert registry.get_sample_value(
            "zuretable_errors_total", {"operation": "delete", "status_code": "none", "fatal": "true"}
        ) == 1
        assert registry.get_sample_value(
            "zuretable_operations_total", {"operation": "delete", "outcome": "error"}
        ) == 2

    def test_track_retry_and_payload(self, metrics, registry):
        metrics.track_retry("insert")
        metrics.track_payload("insert", 2048)

        assert registry.get_sample_value("zuretable_request_retries_total", {"operation": "insert"}) == 1
        assert registry.get_sample_value("zuretable_payload_size_bytes_sum", {"operation": "insert"}) == 2048

    def test_generate_metrics(self, metrics):
        metrics.track_success("insert", 0.01)

        output = metrics.generate_metrics().decode("utf-8")

        assert "zuretable_operations_total" in output
        assert 'operation="insert"' in output
