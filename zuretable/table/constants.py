"""
Wire-level constants for the Table service REST protocol.
"""

# Name of the service catalog table; rows in it describe tables themselves.
TABLES_SERVICE_TABLES_NAME = "Tables"

PARTITION_KEY = "PartitionKey"
ROW_KEY = "RowKey"
TIMESTAMP = "Timestamp"
TABLE_NAME = "TableName"
ETAG_PROPERTY = "odata.etag"
ODATA_TYPE_SUFFIX = "@odata.type"
ODATA_PREFIX = "odata."

SYSTEM_PROPERTIES = frozenset({PARTITION_KEY, ROW_KEY, TIMESTAMP})

TARGET_STORAGE_VERSION = "2019-02-02"
DATA_SERVICE_VERSION = "3.0;NetFx"

JSON_CONTENT_TYPE = "application/json"

PREFER_RETURN_CONTENT = "return-content"
PREFER_RETURN_NO_CONTENT = "return-no-content"


class HeaderConstants:
    """HTTP header names used by table requests and responses."""

    ACCEPT = "Accept"
    AUTHORIZATION = "Authorization"
    CONTENT_LENGTH = "Content-Length"
    CONTENT_MD5 = "Content-MD5"
    CONTENT_TYPE = "Content-Type"
    DATA_SERVICE_VERSION = "DataServiceVersion"
    MAX_DATA_SERVICE_VERSION = "MaxDataServiceVersion"
    ETAG = "ETag"
    IF_MATCH = "If-Match"
    PREFER = "Prefer"
    STORAGE_VERSION = "x-ms-version"
    DATE = "x-ms-date"
    CLIENT_REQUEST_ID = "x-ms-client-request-id"
    REQUEST_ID = "x-ms-request-id"
