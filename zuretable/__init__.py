"""
zuretable: single-entity table storage operations.

Builds exact REST requests for insert, upsert, merge, replace, delete and
point retrieve, runs them through a retrying execution engine, and turns
the responses into TableResult objects or classified errors.
"""

__version__ = "0.1.0"

from zuretable.auth.sharedkey import SharedKeyCredentials, SharedKeySigner
from zuretable.core.execution import OperationContext
from zuretable.core.retry import ExponentialRetry, LinearRetry, NoRetry
from zuretable.table.client import TableClient
from zuretable.table.exceptions import (
    InvalidOperationError,
    PreconditionError,
    SerializationError,
    StorageError,
    TableServiceError,
)
from zuretable.table.models import OperationKind, TableEntity, TableResult
from zuretable.table.operation import TableOperation
from zuretable.table.options import TablePayloadFormat, TableRequestOptions

__all__ = [
    "__version__",
    # Client
    "TableClient",
    "TableOperation",
    "OperationKind",
    "OperationContext",
    "TableEntity",
    "TableResult",
    "TableRequestOptions",
    "TablePayloadFormat",
    # Retry
    "ExponentialRetry",
    "LinearRetry",
    "NoRetry",
    # Auth
    "SharedKeyCredentials",
    "SharedKeySigner",
    # Exceptions
    "StorageError",
    "PreconditionError",
    "SerializationError",
    "InvalidOperationError",
    "TableServiceError",
]
