"""
In-memory table service emulator used by the client integration tests.

Implements single-entity insert, update, merge, delete and get with etag
checks, plus fault injection for retry tests. The client reaches it through
FastAPI's TestClient wrapped as a transport.
"""

import base64
import itertools
import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import pytest
from fastapi import FastAPI, Header, Request, Response, status
from fastapi.responses import JSONResponse
from fastapi.testclient import TestClient

from zuretable.auth.sharedkey import SharedKeyCredentials
from zuretable.core.retry import ExponentialRetry
from zuretable.core.transport import HttpRequest, HttpResponse
from zuretable.table.client import TableClient
from zuretable.table.options import TableRequestOptions

ACCOUNT = "devstoreaccount1"
ACCOUNT_KEY = base64.b64encode(b"emulator-account-key").decode("ascii")
ENDPOINT = "http://testserver"
ENTITY_PATH = "/{table_name}(PartitionKey='{partition_key}',RowKey='{row_key}')"


def create_error_response(error_code: str, message: str, status_code: int) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "odata.error": {
                "code": error_code,
                "message": {"lang": "en-US", "value": message}
            }
        },
        headers={"x-ms-request-id": "emulator-request-id"},
    )


class TableEmulator:
    """Rows keyed by (table, pk, rk); each row keeps its wire properties."""

    def __init__(self):
        self.rows: Dict[Tuple[str, str, str], Dict[str, Any]] = {}
        self.faults: List[int] = []
        self.requests: List[Tuple[str, Dict[str, str]]] = []
        self._versions = itertools.count(1)

    def stamp(self, properties: Dict[str, Any]) -> Dict[str, Any]:
        version = next(self._versions)
        properties = dict(properties)
        properties["Timestamp"] = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f") + "0Z"
        properties["odata.etag"] = f"W/\"datetime'{version}'\""
        return properties

    def check_etag(self, key, if_match: Optional[str]) -> Optional[JSONResponse]:
        row = self.rows.get(key)
        if row is None:
            return create_error_response("ResourceNotFound", "The specified resource does not exist.", 404)
        if if_match not in (None, "*") and row["odata.etag"] != if_match:
            return create_error_response(
                "UpdateConditionNotSatisfied",
                "The update condition specified in the request was not satisfied.",
                412,
            )
        return None


def create_app(emulator: TableEmulator) -> FastAPI:
    app = FastAPI()

    @app.middleware("http")
    async def record_and_inject_faults(request: Request, call_next):
        emulator.requests.append((request.method, dict(request.headers)))
        if not request.headers.get("Authorization", "").startswith(f"SharedKey {ACCOUNT}:"):
            return create_error_response("AuthenticationFailed", "Missing SharedKey authorization", 403)
        if emulator.faults:
            code = emulator.faults.pop(0)
            return create_error_response("ServerBusy", "Injected fault", code)
        return await call_next(request)

    @app.post("/{table_name}")
    async def insert_entity(table_name: str, request: Request, prefer: Optional[str] = Header(default=None)):
        body = json.loads(await request.body())
        key = (table_name, body["PartitionKey"], body["RowKey"])
        if key in emulator.rows:
            return create_error_response("EntityAlreadyExists", "The specified entity already exists.", 409)
        row = emulator.stamp(body)
        emulator.rows[key] = row
        headers = {"ETag": row["odata.etag"]}
        if prefer == "return-no-content":
            return Response(status_code=status.HTTP_204_NO_CONTENT, headers=headers)
        return JSONResponse(status_code=status.HTTP_201_CREATED, content=row, headers=headers)

    @app.get(ENTITY_PATH)
    async def get_entity(table_name: str, partition_key: str, row_key: str):
        row = emulator.rows.get((table_name, partition_key, row_key))
        if row is None:
            return create_error_response("ResourceNotFound", "The specified resource does not exist.", 404)
        return JSONResponse(content=row, headers={"ETag": row["odata.etag"]})

    @app.put(ENTITY_PATH)
    async def update_entity(
        table_name: str,
        partition_key: str,
        row_key: str,
        request: Request,
        if_match: Optional[str] = Header(default=None, alias="If-Match"),
    ):
        key = (table_name, partition_key, row_key)
        if if_match is not None:
            error = emulator.check_etag(key, if_match)
            if error is not None:
                return error
        body = json.loads(await request.body())
        row = emulator.stamp(body)
        emulator.rows[key] = row
        return Response(status_code=status.HTTP_204_NO_CONTENT, headers={"ETag": row["odata.etag"]})

    @app.api_route(ENTITY_PATH, methods=["MERGE"])
    async def merge_entity(
        table_name: str,
        partition_key: str,
        row_key: str,
        request: Request,
        if_match: Optional[str] = Header(default=None, alias="If-Match"),
    ):
        key = (table_name, partition_key, row_key)
        if if_match is not None:
            error = emulator.check_etag(key, if_match)
            if error is not None:
                return error
        merged = dict(emulator.rows.get(key, {}))
        merged.update(json.loads(await request.body()))
        row = emulator.stamp(merged)
        emulator.rows[key] = row
        return Response(status_code=status.HTTP_204_NO_CONTENT, headers={"ETag": row["odata.etag"]})

    @app.delete(ENTITY_PATH)
    async def delete_entity(
        table_name: str,
        partition_key: str,
        row_key: str,
        if_match: Optional[str] = Header(default=None, alias="If-Match"),
    ):
        key = (table_name, partition_key, row_key)
        error = emulator.check_etag(key, if_match)
        if error is not None:
            return error
        del emulator.rows[key]
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    return app


class TestClientTransport:
    """Adapts FastAPI's TestClient to the zuretable transport interface."""

    def __init__(self, client: TestClient):
        self.client = client

    def send(self, request: HttpRequest, timeout: Optional[float] = None) -> HttpResponse:
        response = self.client.request(
            request.method,
            request.url,
            headers=request.headers,
            content=request.body,
        )
        return HttpResponse(
            status_code=response.status_code,
            headers=dict(response.headers),
            body_reader=lambda: response.content,
            reason=response.reason_phrase,
        )

    def close(self) -> None:
        self.client.close()


@pytest.fixture
def emulator():
    return TableEmulator()


@pytest.fixture
def table_client(emulator, sleeps):
    """TableClient signed with SharedKey and talking to the emulator."""
    transport = TestClientTransport(TestClient(create_app(emulator)))
    client = TableClient(
        endpoint=ENDPOINT,
        credentials=SharedKeyCredentials(ACCOUNT, ACCOUNT_KEY),
        transport=transport,
        default_request_options=TableRequestOptions(
            retry_policy=ExponentialRetry(initial_backoff=0.1, jitter=0.0),
        ),
        sleep=sleeps.append,
    )
    yield client
    transport.close()
