"""
Request builders and response interpreters, one per operation kind.

Each builder turns an operation into a RequestSpec: method, path, headers,
the pre-serialized body, and the interpreter callbacks bound to that kind.
The pre-process callback decides success or failure from the status line
and headers only. The post-process callback is the only place a successful
response body is read (echo inserts and retrieves).
"""

import logging
from typing import TYPE_CHECKING, Dict, Optional

from zuretable.core.execution import LocationMode, OperationContext, RequestSpec
from zuretable.core.transport import HttpResponse
from zuretable.table.constants import (
    DATA_SERVICE_VERSION,
    JSON_CONTENT_TYPE,
    PARTITION_KEY,
    PREFER_RETURN_CONTENT,
    PREFER_RETURN_NO_CONTENT,
    ROW_KEY,
    TABLE_NAME,
    TABLES_SERVICE_TABLES_NAME,
    TARGET_STORAGE_VERSION,
    HeaderConstants,
)
from zuretable.table.exceptions import (
    InvalidOperationError,
    PreconditionError,
    TableServiceError,
    generate_table_service_error,
)
from zuretable.table.models import OperationKind, TableResult
from zuretable.table.options import TableRequestOptions
from zuretable.table.serialization import encode_entity, materialize, parse_single

if TYPE_CHECKING:
    from zuretable.table.operation import RetrieveOperation, TableOperation

logger = logging.getLogger(__name__)

HTTP_OK = 200
HTTP_CREATED = 201
HTTP_NO_CONTENT = 204
HTTP_NOT_FOUND = 404
HTTP_CONFLICT = 409


def _service_error(is_fatal: bool, response: HttpResponse) -> TableServiceError:
    """Build the error for an unexpected response; reads the error body."""
    return generate_table_service_error(
        is_fatal,
        response.status_code,
        response.headers,
        response.read(),
        response.reason,
    )


def _require(argument: str, value: Optional[str], allow_empty: bool = True) -> None:
    if value is None or (not allow_empty and value == ""):
        raise PreconditionError(argument)


def _write_result(
    operation: "TableOperation",
    status_code: int,
    etag: Optional[str]
) -> TableResult:
    """Result of a write that returned no body; refreshes the entity's etag."""
    entity = operation.entity
    if operation.kind is not OperationKind.DELETE and etag is not None:
        entity.update_etag(etag)
        return TableResult(status_code=status_code, result=entity, etag=etag)
    return TableResult(status_code=status_code, result=entity)


class RequestBuilder:
    """Base class for per-kind builders."""

    def build(self, operation: "TableOperation", table_name: str, options: TableRequestOptions) -> RequestSpec:
        raise NotImplementedError

    @staticmethod
    def _headers(options: TableRequestOptions, body: Optional[bytes] = None) -> Dict[str, str]:
        headers = {
            HeaderConstants.ACCEPT: options.payload_format.accept_header,
            HeaderConstants.DATA_SERVICE_VERSION: DATA_SERVICE_VERSION,
            HeaderConstants.MAX_DATA_SERVICE_VERSION: DATA_SERVICE_VERSION,
            HeaderConstants.STORAGE_VERSION: TARGET_STORAGE_VERSION,
        }
        if body is not None:
            headers[HeaderConstants.CONTENT_TYPE] = JSON_CONTENT_TYPE
            headers[HeaderConstants.CONTENT_LENGTH] = str(len(body))
        return headers

    @staticmethod
    def _query(options: TableRequestOptions) -> Dict[str, str]:
        if options.timeout_seconds:
            return {"timeout": str(options.timeout_seconds)}
        return {}

    @staticmethod
    def _path(table_name: str, identity: str) -> str:
        return f"/{table_name}({identity})" if identity else f"/{table_name}"

    @staticmethod
    def _table_entry(operation: "TableOperation", table_name: str):
        is_table_entry = table_name == TABLES_SERVICE_TABLES_NAME
        entry_name = None
        if is_table_entry:
            entry_name = operation.entity.table_name
            _require(TABLE_NAME, entry_name, allow_empty=False)
        return is_table_entry, entry_name


class InsertBuilder(RequestBuilder):
    """INSERT, INSERT_OR_MERGE and INSERT_OR_REPLACE."""

    def build(self, operation: "TableOperation", table_name: str, options: TableRequestOptions) -> RequestSpec:
        kind = operation.kind
        entity = operation.entity
        is_table_entry, entry_name = self._table_entry(operation, table_name)

        if not is_table_entry:
            _require(PARTITION_KEY, entity.PartitionKey)
            _require(ROW_KEY, entity.RowKey)

        # Encoded once; every attempt sends these same bytes.
        body = encode_entity(entity, options.payload_format, is_table_entry)
        headers = self._headers(options, body)

        if kind is OperationKind.INSERT:
            method = "POST"
            path = self._path(table_name, "")
            headers[HeaderConstants.PREFER] = (
                PREFER_RETURN_CONTENT if operation.echo_content else PREFER_RETURN_NO_CONTENT
            )
        else:
            method = "MERGE" if kind.update_type == "MERGE" else "PUT"
            path = self._path(
                table_name,
                operation.generate_request_identity(is_table_entry, entry_name, encode_keys=True),
            )
            if entity.etag:
                headers[HeaderConstants.IF_MATCH] = entity.etag

        echo_insert = kind is OperationKind.INSERT and operation.echo_content
        payload_format = options.payload_format

        def pre_process(response: HttpResponse, context: OperationContext) -> TableResult:
            status = response.status_code
            if kind is OperationKind.INSERT:
                if echo_insert:
                    if status == HTTP_CREATED:
                        # Body is parsed in post_process.
                        return TableResult(status_code=status)
                    raise _service_error(status != HTTP_CONFLICT, response)
                if status == HTTP_NO_CONTENT:
                    return _write_result(operation, status, response.headers.get(HeaderConstants.ETAG))
                raise _service_error(status != HTTP_CONFLICT, response)

            if status == HTTP_NO_CONTENT:
                return _write_result(operation, status, response.headers.get(HeaderConstants.ETAG))
            raise _service_error(True, response)

        def post_process(response: HttpResponse, result: TableResult, context: OperationContext) -> TableResult:
            parsed = parse_single(response.read(), payload_format, response.status_code)
            etag = response.headers.get(HeaderConstants.ETAG) or parsed.etag
            entity.update_etag(etag)
            if parsed.timestamp is not None:
                entity.Timestamp = parsed.timestamp
            entity.read_entity(parsed.properties)
            return TableResult(status_code=response.status_code, result=entity, etag=etag)

        return RequestSpec(
            operation=kind.value,
            method=method,
            path=path,
            headers=headers,
            body=body,
            query=self._query(options),
            pre_process=pre_process,
            post_process=post_process if echo_insert else None,
            client_timeout=options.client_timeout_seconds,
        )


class DeleteBuilder(RequestBuilder):
    """DELETE."""

    def build(self, operation: "TableOperation", table_name: str, options: TableRequestOptions) -> RequestSpec:
        entity = operation.entity
        is_table_entry, entry_name = self._table_entry(operation, table_name)

        if not is_table_entry:
            _require("entity etag", entity.etag, allow_empty=False)
            _require(PARTITION_KEY, entity.PartitionKey)
            _require(ROW_KEY, entity.RowKey)

        headers = self._headers(options)
        if entity.etag is not None:
            headers[HeaderConstants.IF_MATCH] = entity.etag

        def pre_process(response: HttpResponse, context: OperationContext) -> TableResult:
            status = response.status_code
            if status in (HTTP_NOT_FOUND, HTTP_CONFLICT):
                raise _service_error(False, response)
            if status != HTTP_NO_CONTENT:
                raise _service_error(True, response)
            return _write_result(operation, status, None)

        return RequestSpec(
            operation=operation.kind.value,
            method="DELETE",
            path=self._path(
                table_name,
                operation.generate_request_identity(is_table_entry, entry_name, encode_keys=True),
            ),
            headers=headers,
            query=self._query(options),
            pre_process=pre_process,
            client_timeout=options.client_timeout_seconds,
        )


class ConditionalUpdateBuilder(RequestBuilder):
    """Shared shape of MERGE and REPLACE: etag required, 404/409 are business outcomes."""

    method = "PUT"

    def build(self, operation: "TableOperation", table_name: str, options: TableRequestOptions) -> RequestSpec:
        entity = operation.entity
        _require("entity etag", entity.etag, allow_empty=False)
        _require(PARTITION_KEY, entity.PartitionKey)
        _require(ROW_KEY, entity.RowKey)

        body = encode_entity(entity, options.payload_format, False)
        headers = self._headers(options, body)
        headers[HeaderConstants.IF_MATCH] = entity.etag

        def pre_process(response: HttpResponse, context: OperationContext) -> TableResult:
            status = response.status_code
            if status in (HTTP_NOT_FOUND, HTTP_CONFLICT):
                raise _service_error(False, response)
            if status == HTTP_NO_CONTENT:
                return _write_result(operation, status, response.headers.get(HeaderConstants.ETAG))
            raise _service_error(True, response)

        return RequestSpec(
            operation=operation.kind.value,
            method=self.method,
            path=self._path(table_name, operation.generate_request_identity(False, None, encode_keys=True)),
            headers=headers,
            body=body,
            query=self._query(options),
            pre_process=pre_process,
            client_timeout=options.client_timeout_seconds,
        )


class MergeBuilder(ConditionalUpdateBuilder):
    """MERGE: sends only the given properties."""
    method = "MERGE"


class ReplaceBuilder(ConditionalUpdateBuilder):
    """REPLACE: sends the full entity."""
    method = "PUT"


class RetrieveBuilder(RequestBuilder):
    """Point RETRIEVE by partition and row key."""

    def build(self, operation: "RetrieveOperation", table_name: str, options: TableRequestOptions) -> RequestSpec:
        payload_format = options.payload_format
        target = operation.target

        def pre_process(response: HttpResponse, context: OperationContext) -> TableResult:
            status = response.status_code
            if status in (HTTP_OK, HTTP_NOT_FOUND):
                return TableResult(status_code=status)
            raise _service_error(True, response)

        def post_process(response: HttpResponse, result: TableResult, context: OperationContext) -> TableResult:
            if result.status_code == HTTP_NOT_FOUND:
                return result
            parsed = parse_single(response.read(), payload_format, response.status_code)
            etag = response.headers.get(HeaderConstants.ETAG) or parsed.etag
            parsed.etag = etag
            return TableResult(status_code=result.status_code, result=materialize(parsed, target), etag=etag)

        return RequestSpec(
            operation=operation.kind.value,
            method="GET",
            path=self._path(table_name, operation.generate_request_identity(False, None, encode_keys=True)),
            headers=self._headers(options),
            query=self._query(options),
            pre_process=pre_process,
            post_process=post_process,
            client_timeout=options.client_timeout_seconds,
            location_mode=LocationMode.PRIMARY_THEN_SECONDARY,
        )


_INSERT_BUILDER = InsertBuilder()

_BUILDERS: Dict[OperationKind, RequestBuilder] = {
    OperationKind.INSERT: _INSERT_BUILDER,
    OperationKind.INSERT_OR_MERGE: _INSERT_BUILDER,
    OperationKind.INSERT_OR_REPLACE: _INSERT_BUILDER,
    OperationKind.DELETE: DeleteBuilder(),
    OperationKind.MERGE: MergeBuilder(),
    OperationKind.REPLACE: ReplaceBuilder(),
    OperationKind.RETRIEVE: RetrieveBuilder(),
}


def get_builder(kind: OperationKind) -> RequestBuilder:
    """
    Look up the builder for an operation kind.

    Raises:
        InvalidOperationError: If kind has no builder
    """
    try:
        return _BUILDERS[kind]
    except (KeyError, TypeError):
        raise InvalidOperationError(kind) from None
