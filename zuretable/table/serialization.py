"""
JSON payload codec for single entities.

encode_entity() turns an entity into the request body; parse_single() reads
one entity back from a response body. Typed values that JSON cannot carry
natively (64-bit integers, dates, GUIDs, binary, special doubles) travel as
strings with a "<name>@odata.type" annotation.
"""

import base64
import binascii
import json
import math
import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from zuretable.table.constants import (
    ETAG_PROPERTY,
    ODATA_PREFIX,
    ODATA_TYPE_SUFFIX,
    PARTITION_KEY,
    ROW_KEY,
    TABLE_NAME,
    TIMESTAMP,
)
from zuretable.table.exceptions import PreconditionError, SerializationError
from zuretable.table.models import (
    EdmType,
    EntityTypeTarget,
    ResolverTarget,
    RetrieveTarget,
    TableEntity,
)
from zuretable.table.options import TablePayloadFormat

INT32_MIN, INT32_MAX = -(2 ** 31), 2 ** 31 - 1
INT64_MIN, INT64_MAX = -(2 ** 63), 2 ** 63 - 1

# Service timestamps carry 7 fractional digits; datetime holds 6.
_DATETIME_PATTERN = re.compile(
    r"^(?P<base>\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})(?:\.(?P<fraction>\d+))?(?P<tz>Z|[+-]\d{2}:\d{2})?$"
)


@dataclass
class ParsedEntity:
    """A single row as read from a response body."""

    partition_key: Optional[str] = None
    row_key: Optional[str] = None
    timestamp: Optional[datetime] = None
    etag: Optional[str] = None
    properties: Dict[str, Any] = field(default_factory=dict)


# ========== Encoding ==========

def _encode_value(name: str, value: Any) -> Tuple[Any, Optional[EdmType]]:
    """Return the JSON value and the annotation it needs, if any."""
    if isinstance(value, bool):
        return value, None
    if isinstance(value, int):
        if INT32_MIN <= value <= INT32_MAX:
            return value, None
        if INT64_MIN <= value <= INT64_MAX:
            return str(value), EdmType.INT64
        raise SerializationError(f"Property '{name}' is outside the 64-bit integer range")
    if isinstance(value, float):
        if math.isnan(value):
            return "NaN", EdmType.DOUBLE
        if math.isinf(value):
            return ("Infinity" if value > 0 else "-Infinity"), EdmType.DOUBLE
        return value, None
    if isinstance(value, str):
        return value, None
    if isinstance(value, datetime):
        return format_datetime(value), EdmType.DATETIME
    if isinstance(value, uuid.UUID):
        return str(value), EdmType.GUID
    if isinstance(value, (bytes, bytearray)):
        return base64.b64encode(bytes(value)).decode("ascii"), EdmType.BINARY
    raise SerializationError(
        f"Property '{name}' has unsupported type {type(value).__name__}"
    )


def format_datetime(value: datetime) -> str:
    """Format a datetime as UTC ISO-8601 with a Z suffix. Naive values are taken as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def encode_entity(
    entity: TableEntity,
    payload_format: TablePayloadFormat,
    is_table_entry: bool = False
) -> bytes:
    """
    Serialize an entity into a request body.

    Output is deterministic: the same entity, format and flags always give
    byte-identical results.

    Args:
        entity: Entity to serialize
        payload_format: Payload format of the request
        is_table_entry: True when writing a row of the table-of-tables,
            in which case only TableName is sent

    Returns:
        UTF-8 JSON bytes

    Raises:
        SerializationError: If a property cannot be represented
        PreconditionError: If a table entry has no TableName
    """
    if is_table_entry:
        table_name = entity.table_name
        if not table_name:
            raise PreconditionError(TABLE_NAME)
        properties: Dict[str, Any] = {TABLE_NAME: table_name}
    else:
        properties = entity.write_entity()

    document: Dict[str, Any] = {}
    for name, value in properties.items():
        if value is None:
            continue
        if name.startswith(ODATA_PREFIX) or name.endswith(ODATA_TYPE_SUFFIX):
            raise SerializationError(f"Property name '{name}' is reserved")
        encoded, edm_type = _encode_value(name, value)
        if edm_type is not None:
            document[f"{name}{ODATA_TYPE_SUFFIX}"] = edm_type.value
        document[name] = encoded

    try:
        text = json.dumps(document, ensure_ascii=False, separators=(",", ":"), allow_nan=False)
    except (TypeError, ValueError) as e:
        raise SerializationError(f"Entity could not be serialized as {payload_format.value}: {e}", cause=e) from e
    return text.encode("utf-8")


# ========== Parsing ==========

def parse_datetime(value: str) -> datetime:
    """Parse a service timestamp (up to 7 fractional digits) into an aware datetime."""
    match = _DATETIME_PATTERN.match(value.strip())
    if not match:
        raise SerializationError(f"Invalid DateTime value: {value!r}")
    text = match.group("base")
    fraction = match.group("fraction")
    if fraction:
        text += "." + fraction[:6].ljust(6, "0")
    tz = match.group("tz")
    text += "+00:00" if tz in (None, "Z") else tz
    return datetime.fromisoformat(text).astimezone(timezone.utc)


def _decode_value(name: str, value: Any, edm_type: Optional[str]) -> Any:
    if edm_type is None or value is None:
        return value
    try:
        if edm_type == EdmType.INT64.value:
            return int(value)
        if edm_type == EdmType.INT32.value:
            return int(value)
        if edm_type == EdmType.DOUBLE.value:
            return float(value)
        if edm_type == EdmType.DATETIME.value:
            return parse_datetime(value)
        if edm_type == EdmType.GUID.value:
            return uuid.UUID(value)
        if edm_type == EdmType.BINARY.value:
            return base64.b64decode(value)
        if edm_type == EdmType.BOOLEAN.value:
            return value if isinstance(value, bool) else str(value).lower() == "true"
    except (ValueError, TypeError, binascii.Error) as e:
        raise SerializationError(f"Property '{name}' is not a valid {edm_type}", cause=e) from e
    return value


def parse_single(
    body: bytes,
    payload_format: TablePayloadFormat,
    status_code: int
) -> ParsedEntity:
    """
    Parse one entity from a response body.

    Args:
        body: Response body
        payload_format: Payload format that was requested
        status_code: Response status, used in error messages

    Returns:
        ParsedEntity

    Raises:
        SerializationError: If the body is not a JSON object
    """
    try:
        document = json.loads(body.decode("utf-8")) if body else {}
    except (UnicodeDecodeError, ValueError) as e:
        raise SerializationError(
            f"Response body for status {status_code} is not valid {payload_format.value} JSON", cause=e
        ) from e
    if not isinstance(document, dict):
        raise SerializationError(f"Response body for status {status_code} is not a JSON object")

    parsed = ParsedEntity(
        partition_key=document.get(PARTITION_KEY),
        row_key=document.get(ROW_KEY),
        etag=document.get(ETAG_PROPERTY),
    )
    if document.get(TIMESTAMP):
        parsed.timestamp = parse_datetime(document[TIMESTAMP])

    for name, value in document.items():
        if name in (PARTITION_KEY, ROW_KEY, TIMESTAMP):
            continue
        if name.startswith(ODATA_PREFIX) or ODATA_TYPE_SUFFIX in name:
            continue
        edm_type = document.get(f"{name}{ODATA_TYPE_SUFFIX}")
        parsed.properties[name] = _decode_value(name, value, edm_type)

    return parsed


def materialize(parsed: ParsedEntity, target: RetrieveTarget) -> Any:
    """
    Turn a parsed row into the caller's requested shape.

    Args:
        parsed: Parsed row
        target: Entity type or resolver

    Returns:
        TableEntity instance or the resolver's return value
    """
    if isinstance(target, ResolverTarget):
        return target.resolver(
            parsed.partition_key,
            parsed.row_key,
            parsed.timestamp,
            parsed.properties,
            parsed.etag,
        )
    if isinstance(target, EntityTypeTarget):
        return target.entity_type.from_properties(
            parsed.partition_key,
            parsed.row_key,
            parsed.timestamp,
            parsed.etag,
            parsed.properties,
        )
    raise TypeError(f"Unsupported retrieve target: {target!r}")
