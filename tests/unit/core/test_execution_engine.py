"""
Unit Tests for the Execution Engine

Covers attempt bookkeeping, retry decisions, endpoint rotation, signing and
transport failure translation.
"""

import logging
from dataclasses import replace

import pytest
from prometheus_client import CollectorRegistry

from zuretable.core.execution import (
    ExecutionEngine,
    LocationMode,
    OperationContext,
    RequestSpec,
    RoundRobinEndpointResolver,
    StaticEndpointResolver,
)
from zuretable.core.logging_config import client_request_id
from zuretable.core.metrics import TableClientMetrics
from zuretable.core.retry import ExponentialRetry, NoRetry
from zuretable.core.transport import TransportError
from zuretable.table.exceptions import TableServiceError, generate_table_service_error
from zuretable.table.models import TableResult


class FakeTransport:
    def __init__(self, *items):
        self.items = list(items)
        self.requests = []

    def send(self, request, timeout=None):
        self.requests.append(request)
        item = self.items.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def close(self):
        pass


class RecordingSigner:
    def __init__(self):
        self.signed = []

    def sign(self, request):
        self.signed.append(request)
        request.headers["Authorization"] = f"Test {len(self.signed)}"


def status_spec(body=None, fatal_statuses=(500, 503)):
    """Spec that succeeds on 2xx, fails non-fatally on 404 and fatally otherwise."""
    def pre_process(response, context):
        if 200 <= response.status_code < 300:
            return TableResult(status_code=response.status_code)
        is_fatal = response.status_code != 404
        raise generate_table_service_error(is_fatal, response.status_code, response.headers, response.read())

    return RequestSpec(
        operation="insert",
        method="POST",
        path="/T",
        headers={"Accept": "application/json"},
        pre_process=pre_process,
        body=body,
        query={"timeout": "30"},
    )


def make_engine(transport, sleeps, **kwargs):
    return ExecutionEngine(
        transport=transport,
        endpoint_resolver=kwargs.pop("resolver", StaticEndpointResolver("https://acct.example/")),
        sleep=sleeps.append,
        **kwargs,
    )


class TestExecutionEngine:
    """Tests for ExecutionEngine.run()."""

    def test_success_records_attempt(self, respond):
        transport = FakeTransport(respond(201, {"x-ms-request-id": "srv-1", "ETag": "W/1"}))
        engine = make_engine(transport, [])
        context = OperationContext()

        result = engine.run(status_spec(b"{}"), NoRetry(), context)

        assert result.status_code == 201
        assert len(context.request_results) == 1
        attempt = context.last_result
        assert attempt.status_code == 201
        assert attempt.service_request_id == "srv-1"
        assert attempt.etag == "W/1"
        assert attempt.end_time >= attempt.start_time
        assert attempt.exception is None

    def test_request_shape(self, respond):
        """Test url, per-attempt headers and body of the built request."""
        transport = FakeTransport(respond(204))
        engine = make_engine(transport, [])
        context = OperationContext(client_request_id="cid-1")

        engine.run(status_spec(b"payload"), NoRetry(), context)

        request = transport.requests[0]
        assert request.url == "https://acct.example/T?timeout=30"
        assert request.headers["x-ms-client-request-id"] == "cid-1"
        assert request.headers["x-ms-date"].endswith("GMT")
        assert request.headers["Accept"] == "application/json"
        assert request.body == b"payload"

    def test_fatal_errors_retried_with_same_body(self, respond):
        body = b'{"PartitionKey":"a"}'
        transport = FakeTransport(respond(503), respond(500), respond(204))
        sleeps = []
        engine = make_engine(transport, sleeps)
        context = OperationContext()

        result = engine.run(status_spec(body), ExponentialRetry(initial_backoff=0.5, jitter=0.0), context)

        assert result.status_code == 204
        assert sleeps == [0.5, 1.0]
        assert all(r.body is body for r in transport.requests)
        assert [r.status_code for r in context.request_results] == [503, 500, 204]

    def test_non_fatal_errors_not_retried(self, respond):
        """Test a business failure is raised even when the policy would retry."""
        transport = FakeTransport(respond(404))
        sleeps = []
        engine = make_engine(transport, sleeps)
        context = OperationContext()

        with pytest.raises(TableServiceError) as exc_info:
            engine.run(status_spec(), ExponentialRetry(), context)

        assert exc_info.value.is_fatal is False
        assert sleeps == []
        assert context.last_result.exception is exc_info.value

    def test_retries_exhausted(self, respond):
        transport = FakeTransport(respond(500), respond(500))
        engine = make_engine(transport, [])

        with pytest.raises(TableServiceError) as exc_info:
            engine.run(status_spec(), ExponentialRetry(max_attempts=2, jitter=0.0), OperationContext())

        assert exc_info.value.status_code == 500
        assert len(transport.requests) == 2

    def test_transport_error_translated(self, respond):
        """Test transport exceptions surface as fatal service errors without a status."""
        transport = FakeTransport(TransportError("connection reset"), respond(204))
        sleeps = []
        engine = make_engine(transport, sleeps)
        context = OperationContext()

        result = engine.run(status_spec(), ExponentialRetry(jitter=0.0), context)

        assert result.status_code == 204
        first = context.request_results[0]
        assert first.status_code is None
        assert isinstance(first.exception, TableServiceError)
        assert first.exception.is_fatal is True
        assert first.exception.error_code == "TransportError"
        assert len(sleeps) == 1

    def test_transport_error_not_leaked(self):
        transport = FakeTransport(TransportError("refused"))
        engine = make_engine(transport, [])

        with pytest.raises(TableServiceError) as exc_info:
            engine.run(status_spec(), NoRetry(), OperationContext())
        assert exc_info.value.status_code is None

    def test_signs_every_attempt(self, respond):
        transport = FakeTransport(respond(500), respond(204))
        signer = RecordingSigner()
        engine = make_engine(transport, [], signer=signer)

        engine.run(status_spec(), ExponentialRetry(jitter=0.0), OperationContext())

        assert len(signer.signed) == 2
        assert transport.requests[1].headers["Authorization"] == "Test 2"

    def test_round_robin_endpoints(self, respond):
        transport = FakeTransport(respond(500), respond(500), respond(204))
        resolver = RoundRobinEndpointResolver("https://primary/", "https://secondary")
        engine = make_engine(transport, [], resolver=resolver)
        spec = replace(status_spec(), location_mode=LocationMode.PRIMARY_THEN_SECONDARY)

        engine.run(spec, ExponentialRetry(max_attempts=3, jitter=0.0), OperationContext())

        assert [r.url.split("/T")[0] for r in transport.requests] == [
            "https://primary", "https://secondary", "https://primary"
        ]

    def test_primary_only_ignores_secondary(self, respond):
        transport = FakeTransport(respond(503), respond(204))
        resolver = RoundRobinEndpointResolver("https://primary/", "https://secondary")
        engine = make_engine(transport, [], resolver=resolver)

        engine.run(status_spec(), ExponentialRetry(jitter=0.0), OperationContext())

        assert [r.url.split("/T")[0] for r in transport.requests] == ["https://primary", "https://primary"]

    def test_client_request_id_scoped_to_run(self, respond):
        seen = []

        def pre_process(response, context):
            seen.append(client_request_id.get())
            return TableResult(status_code=response.status_code)

        spec = RequestSpec(operation="retrieve", method="GET", path="/T", headers={}, pre_process=pre_process)
        engine = make_engine(FakeTransport(respond(200)), [])

        engine.run(spec, NoRetry(), OperationContext(client_request_id="cid-9"))

        assert seen == ["cid-9"]
        assert client_request_id.get() is None

    def test_response_closed(self, respond):
        closed = []
        response = respond(204)
        response._closer = lambda: closed.append(True)
        engine = make_engine(FakeTransport(response), [])

        engine.run(status_spec(), NoRetry(), OperationContext())

        assert closed == [True]

    def test_logs_retry_and_failure(self, respond, caplog):
        transport = FakeTransport(respond(500), respond(500))
        engine = make_engine(transport, [])

        with caplog.at_level(logging.INFO, logger="zuretable.core.execution"):
            with pytest.raises(TableServiceError):
                engine.run(status_spec(), ExponentialRetry(max_attempts=2, jitter=0.0), OperationContext())

        messages = [record.getMessage() for record in caplog.records]
        assert any("retrying" in message for message in messages)
        assert any("failed after 2 attempt(s)" in message for message in messages)
        retry, final = [r for r in caplog.records if getattr(r, "operation", None) == "insert"]
        assert (retry.attempt, retry.status_code, retry.retry_delay_seconds) == (1, 500, 3.0)
        assert (final.attempt, final.is_fatal) == (2, True)


class TestEngineMetrics:
    """Tests for metrics emitted by the engine."""

    def test_counts(self, respond):
        registry = CollectorRegistry()
        metrics = TableClientMetrics(registry=registry)
        transport = FakeTransport(respond(503), respond(204))
        engine = make_engine(transport, [], metrics=metrics)

        engine.run(status_spec(b"12345"), ExponentialRetry(jitter=0.0), OperationContext())

        sample = registry.get_sample_value
        assert sample("zuretable_request_attempts_total", {"operation": "insert", "status_code": "503"}) == 1
        assert sample("zuretable_request_attempts_total", {"operation": "insert", "status_code": "204"}) == 1
        assert sample("zuretable_request_retries_total", {"operation": "insert"}) == 1
        assert sample("zuretable_operations_total", {"operation": "insert", "outcome": "success"}) == 1
        assert sample("zuretable_payload_size_bytes_sum", {"operation": "insert"}) == 5

    def test_error_counted(self, respond):
        registry = CollectorRegistry()
        engine = make_engine(FakeTransport(respond(404)), [], metrics=TableClientMetrics(registry=registry))

        with pytest.raises(TableServiceError):
            engine.run(status_spec(), NoRetry(), OperationContext())

        assert registry.get_sample_value(
            "zuretable_errors_total",
            {"operation": "insert", "status_code": "404", "fatal": "false"},
        ) == 1
