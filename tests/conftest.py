"""
Shared fixtures: a scripted transport and a client wired to it.
"""

from typing import Dict, List, Optional

import pytest

from zuretable.core.retry import ExponentialRetry
from zuretable.core.transport import HttpRequest, HttpResponse
from zuretable.table.client import TableClient
from zuretable.table.options import TableRequestOptions

ENDPOINT = "https://acct.table.core.windows.net"


class FakeTransport:
    """Returns (or raises) scripted items in order and records every request."""

    def __init__(self, items):
        self.items = list(items)
        self.requests: List[HttpRequest] = []
        self.timeouts: List[Optional[float]] = []
        self.responses: List[HttpResponse] = []
        self.closed = False

    def send(self, request: HttpRequest, timeout: Optional[float] = None) -> HttpResponse:
        self.requests.append(request)
        self.timeouts.append(timeout)
        if not self.items:
            raise AssertionError(f"Unexpected request: {request.method} {request.url}")
        item = self.items.pop(0)
        if isinstance(item, Exception):
            raise item
        self.responses.append(item)
        return item

    def close(self) -> None:
        self.closed = True


def make_response(
    status_code: int,
    headers: Optional[Dict[str, str]] = None,
    body: bytes = b"",
    reason: Optional[str] = None
) -> HttpResponse:
    return HttpResponse(status_code, headers or {}, lambda: body, reason=reason)


@pytest.fixture
def respond():
    """Factory for scripted responses."""
    return make_response


@pytest.fixture
def sleeps():
    """Delays requested by the engine between attempts."""
    return []


@pytest.fixture
def client_factory(sleeps):
    """Build a client over a FakeTransport scripted with the given items."""
    def factory(*items, **kwargs):
        transport = FakeTransport(items)
        kwargs.setdefault(
            "default_request_options",
            TableRequestOptions(retry_policy=ExponentialRetry(initial_backoff=1.0, jitter=0.0)),
        )
        kwargs.setdefault("endpoint", ENDPOINT)
        client = TableClient(transport=transport, sleep=sleeps.append, **kwargs)
        return client, transport
    return factory


@pytest.fixture
def transport_factory():
    """Build a bare FakeTransport scripted with the given items."""
    def factory(*items):
        return FakeTransport(items)
    return factory
