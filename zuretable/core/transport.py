"""
HTTP transport for table requests.

The execution engine hands a fully built HttpRequest to a Transport and
gets back an HttpResponse whose body is read lazily, so that interpreters
can decide success or failure from the status line and headers alone.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional, Protocol

import requests
from requests.structures import CaseInsensitiveDict

logger = logging.getLogger(__name__)


class TransportError(Exception):
    """Raised when no HTTP response could be obtained."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


@dataclass
class HttpRequest:
    """A single wire request. Rebuilt for every attempt."""

    method: str
    url: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[bytes] = None


class HttpResponse:
    """
    Response with a lazily read body.

    Args:
        status_code: HTTP status code
        headers: Response headers
        body_reader: Callable returning the body; invoked at most once
        reason: HTTP reason phrase
        closer: Releases the underlying connection
    """

    def __init__(
        self,
        status_code: int,
        headers: Dict[str, str],
        body_reader: Callable[[], bytes],
        reason: Optional[str] = None,
        closer: Optional[Callable[[], None]] = None,
    ):
        self.status_code = status_code
        self.headers = CaseInsensitiveDict(headers)
        self.reason = reason
        self._body_reader = body_reader
        self._closer = closer
        self._body: Optional[bytes] = None

    @property
    def body_consumed(self) -> bool:
        return self._body is not None

    def read(self) -> bytes:
        """Read (once) and return the response body."""
        if self._body is None:
            self._body = self._body_reader() or b""
        return self._body

    def close(self) -> None:
        if self._closer is not None:
            self._closer()


class Transport(Protocol):
    """Sends one request and returns the response."""

    def send(self, request: HttpRequest, timeout: Optional[float] = None) -> HttpResponse:
        ...

    def close(self) -> None:
        ...


class RequestsTransport:
    """Transport backed by a requests.Session."""

    def __init__(self, session: Optional[requests.Session] = None):
        self._owns_session = session is None
        self.session = session or requests.Session()

    def send(self, request: HttpRequest, timeout: Optional[float] = None) -> HttpResponse:
        try:
            response = self.session.request(
                request.method,
                request.url,
                headers=request.headers,
                data=request.body,
                timeout=timeout,
                stream=True,
                allow_redirects=False,
            )
        except requests.RequestException as e:
            logger.debug(f"Transport failure for {request.method} {request.url}: {e}")
            raise TransportError(str(e), cause=e) from e

        def read_body() -> bytes:
            try:
                return response.content
            except requests.RequestException as e:
                raise TransportError(f"Failed reading response body: {e}", cause=e) from e

        return HttpResponse(
            status_code=response.status_code,
            headers=dict(response.headers),
            body_reader=read_body,
            reason=response.reason,
            closer=response.close,
        )

    def close(self) -> None:
        if self._owns_session:
            self.session.close()
