"""
Unit Tests for the requests-backed transport.
"""

from unittest.mock import MagicMock, PropertyMock

import pytest
import requests

from zuretable.core.transport import HttpRequest, HttpResponse, RequestsTransport, TransportError


def fake_requests_response(status=200, headers=None, content=b"", reason="OK"):
    response = MagicMock(spec=requests.Response)
    response.status_code = status
    response.headers = headers or {}
    response.reason = reason
    type(response).content = PropertyMock(return_value=content)
    return response


class TestHttpResponse:
    """Tests for lazy body handling."""

    def test_body_read_once(self):
        calls = []

        def reader():
            calls.append(1)
            return b"data"

        response = HttpResponse(200, {}, reader)

        assert response.body_consumed is False
        assert response.read() == b"data"
        assert response.read() == b"data"
        assert calls == [1]
        assert response.body_consumed is True

    def test_headers_case_insensitive(self):
        response = HttpResponse(204, {"ETag": "W/1"}, lambda: b"")
        assert response.headers["etag"] == "W/1"

    def test_none_body_is_empty(self):
        assert HttpResponse(204, {}, lambda: None).read() == b""


class TestRequestsTransport:
    """Tests for RequestsTransport."""

    def test_send(self):
        session = MagicMock(spec=requests.Session)
        session.request.return_value = fake_requests_response(201, {"ETag": "W/1"}, b"{}", "Created")
        transport = RequestsTransport(session)
        request = HttpRequest("POST", "https://acct/T", {"Accept": "application/json"}, b"{}")

        response = transport.send(request, timeout=5.0)

        session.request.assert_called_once_with(
            "POST",
            "https://acct/T",
            headers={"Accept": "application/json"},
            data=b"{}",
            timeout=5.0,
            stream=True,
            allow_redirects=False,
        )
        assert response.status_code == 201
        assert response.reason == "Created"
        assert response.headers["etag"] == "W/1"
        assert response.read() == b"{}"

    def test_connection_error(self):
        session = MagicMock(spec=requests.Session)
        session.request.side_effect = requests.ConnectionError("refused")
        transport = RequestsTransport(session)

        with pytest.raises(TransportError) as exc_info:
            transport.send(HttpRequest("GET", "https://acct/T"))
        assert isinstance(exc_info.value.cause, requests.ConnectionError)

    def test_body_read_error(self):
        raw = fake_requests_response()
        type(raw).content = PropertyMock(side_effect=requests.exceptions.ChunkedEncodingError("cut"))
        session = MagicMock(spec=requests.Session)
        session.request.return_value = raw

        response = RequestsTransport(session).send(HttpRequest("GET", "https://acct/T"))

        with pytest.raises(TransportError):
            response.read()

    def test_close_only_owned_session(self):
        session = MagicMock(spec=requests.Session)
        RequestsTransport(session).close()
        session.close.assert_not_called()

        owned = RequestsTransport()
        owned.session = MagicMock(spec=requests.Session)
        owned.close()
        owned.session.close.assert_called_once()
