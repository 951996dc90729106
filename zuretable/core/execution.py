"""
Execution engine for table requests.

Drives a replayable RequestSpec through one or more attempts: each attempt
resolves an endpoint, builds a fresh HttpRequest around the same body
bytes, signs it, sends it, and hands the response to the RequestSpec's
pre-process and post-process callbacks. Failures classified as fatal are
offered to the retry policy; business failures are raised immediately.
"""

import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import formatdate
from enum import Enum
from typing import Callable, Dict, List, Optional, Protocol
from urllib.parse import urlencode

from zuretable.core.logging_config import client_request_id, log_attempt
from zuretable.core.metrics import TableClientMetrics
from zuretable.core.retry import RetryPolicy
from zuretable.core.transport import HttpRequest, HttpResponse, Transport, TransportError
from zuretable.table.constants import HeaderConstants
from zuretable.table.exceptions import TableServiceError
from zuretable.table.models import TableResult

logger = logging.getLogger(__name__)


@dataclass
class RequestResult:
    """What happened on one attempt."""

    url: str
    start_time: datetime
    status_code: Optional[int] = None
    service_request_id: Optional[str] = None
    etag: Optional[str] = None
    exception: Optional[Exception] = None
    end_time: Optional[datetime] = None


@dataclass
class OperationContext:
    """
    Per-operation state shared by all attempts.

    Attributes:
        client_request_id: Sent as x-ms-client-request-id on every attempt
        request_results: One RequestResult per attempt, in order
    """

    client_request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    request_results: List[RequestResult] = field(default_factory=list)

    def initialize(self) -> None:
        """Forget results of any previous execution."""
        self.request_results = []

    @property
    def last_result(self) -> Optional[RequestResult]:
        return self.request_results[-1] if self.request_results else None


class LocationMode(str, Enum):
    """Which endpoints a request may be sent to."""
    PRIMARY_ONLY = "primary_only"
    PRIMARY_THEN_SECONDARY = "primary_then_secondary"


@dataclass(frozen=True)
class RequestSpec:
    """
    Replayable description of one logical request.

    Attributes:
        operation: Operation kind name, for logs and metrics
        method: HTTP method
        path: URL path below the service endpoint, starting with "/"
        headers: Static headers for every attempt
        body: Pre-serialized body bytes, reused unchanged on every attempt
        query: Query parameters
        pre_process: Decides success or failure from status and headers;
            returns a TableResult or raises TableServiceError
        post_process: Optional second pass that may read the body
        client_timeout: Socket timeout per attempt, in seconds
        location_mode: Writes stay on the primary; reads may use the secondary
    """

    operation: str
    method: str
    path: str
    headers: Dict[str, str]
    pre_process: Callable[[HttpResponse, OperationContext], TableResult]
    body: Optional[bytes] = None
    query: Dict[str, str] = field(default_factory=dict)
    post_process: Optional[Callable[[HttpResponse, TableResult, OperationContext], TableResult]] = None
    client_timeout: Optional[float] = None
    location_mode: LocationMode = LocationMode.PRIMARY_ONLY


class EndpointResolver(Protocol):
    """Supplies the base URI for a given attempt."""

    def resolve(self, attempt: int, location_mode: LocationMode = LocationMode.PRIMARY_ONLY) -> str:
        ...


class StaticEndpointResolver:
    """Always targets the same endpoint."""

    def __init__(self, endpoint: str):
        self.endpoint = endpoint.rstrip("/")

    def resolve(self, attempt: int, location_mode: LocationMode = LocationMode.PRIMARY_ONLY) -> str:
        return self.endpoint


class RoundRobinEndpointResolver:
    """
    Alternates primary and secondary for requests that allow it.

    Primary-only requests always target the primary.
    """

    def __init__(self, primary: str, secondary: str):
        self.primary = primary.rstrip("/")
        self.secondary = secondary.rstrip("/")

    def resolve(self, attempt: int, location_mode: LocationMode = LocationMode.PRIMARY_ONLY) -> str:
        if location_mode is LocationMode.PRIMARY_ONLY:
            return self.primary
        return self.primary if attempt % 2 == 1 else self.secondary


class Signer(Protocol):
    """Adds authentication to a built request."""

    def sign(self, request: HttpRequest) -> None:
        ...


class ExecutionEngine:
    """Runs request specs with retries."""

    def __init__(
        self,
        transport: Transport,
        endpoint_resolver: EndpointResolver,
        signer: Optional[Signer] = None,
        metrics: Optional[TableClientMetrics] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.transport = transport
        self.endpoint_resolver = endpoint_resolver
        self.signer = signer
        self.metrics = metrics
        self._sleep = sleep

    def run(
        self,
        spec: RequestSpec,
        retry_policy: RetryPolicy,
        context: OperationContext
    ) -> TableResult:
        """
        Run the request until it succeeds or fails for good.

        Args:
            spec: Request to run
            retry_policy: Policy consulted after each fatal failure
            context: Operation context receiving per-attempt results

        Returns:
            TableResult of the successful attempt

        Raises:
            TableServiceError: Final failure
        """
        token = client_request_id.set(context.client_request_id)
        started = time.monotonic()
        if self.metrics and spec.body is not None:
            self.metrics.track_payload(spec.operation, len(spec.body))
        attempt = 0
        try:
            while True:
                attempt += 1
                try:
                    result = self._attempt(spec, attempt, context)
                except TableServiceError as e:
                    delay = retry_policy.should_retry(attempt, e.status_code, e) if e.is_fatal else None
                    if delay is None:
                        log_attempt(
                            logger,
                            logging.WARNING if e.is_fatal else logging.INFO,
                            f"{spec.operation} failed after {attempt} attempt(s): {e}",
                            operation=spec.operation,
                            attempt=attempt,
                            status_code=e.status_code,
                            error_code=e.error_code,
                            is_fatal=e.is_fatal,
                        )
                        if self.metrics:
                            self.metrics.track_error(spec.operation, e.status_code, e.is_fatal, time.monotonic() - started)
                        raise

                    log_attempt(
                        logger,
                        logging.WARNING,
                        f"{spec.operation} attempt {attempt} failed, retrying in {delay:.2f}s: {e}",
                        operation=spec.operation,
                        attempt=attempt,
                        status_code=e.status_code,
                        retry_delay_seconds=delay,
                    )
                    if self.metrics:
                        self.metrics.track_retry(spec.operation)
                    self._sleep(delay)
                    continue

                if attempt > 1:
                    logger.info(f"{spec.operation} succeeded after {attempt} attempts")
                if self.metrics:
                    self.metrics.track_success(spec.operation, time.monotonic() - started)
                return result
        finally:
            client_request_id.reset(token)

    def _attempt(self, spec: RequestSpec, attempt: int, context: OperationContext) -> TableResult:
        request = self._build_request(spec, attempt, context)
        request_result = RequestResult(url=request.url, start_time=datetime.now(timezone.utc))
        context.request_results.append(request_result)

        logger.debug(f"Attempt {attempt}: {request.method} {request.url}")

        response: Optional[HttpResponse] = None
        try:
            response = self.transport.send(request, timeout=spec.client_timeout)
            request_result.status_code = response.status_code
            request_result.service_request_id = response.headers.get(HeaderConstants.REQUEST_ID)
            request_result.etag = response.headers.get(HeaderConstants.ETAG)
            if self.metrics:
                self.metrics.track_attempt(spec.operation, response.status_code)

            result = spec.pre_process(response, context)
            if spec.post_process is not None:
                result = spec.post_process(response, result, context)
            return result
        except TransportError as e:
            if response is None and self.metrics:
                self.metrics.track_attempt(spec.operation, None)
            error = TableServiceError(
                message=f"Transport failure: {e}",
                status_code=request_result.status_code,
                is_fatal=True,
                error_code="TransportError",
            )
            request_result.exception = error
            raise error from e
        except Exception as e:
            request_result.exception = e
            raise
        finally:
            request_result.end_time = datetime.now(timezone.utc)
            if response is not None:
                response.close()

    def _build_request(self, spec: RequestSpec, attempt: int, context: OperationContext) -> HttpRequest:
        base_url = self.endpoint_resolver.resolve(attempt, spec.location_mode).rstrip("/")
        url = base_url + spec.path
        if spec.query:
            url = f"{url}?{urlencode(spec.query)}"

        headers = dict(spec.headers)
        headers[HeaderConstants.CLIENT_REQUEST_ID] = context.client_request_id
        headers[HeaderConstants.DATE] = formatdate(usegmt=True)

        request = HttpRequest(method=spec.method, url=url, headers=headers, body=spec.body)
        if self.signer is not None:
            self.signer.sign(request)
        return request
