"""
Data models for single-entity table operations.

Defines the entity model callers hand to operations, the EDM type tags used
on the wire, and the result object returned by an executed operation.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Optional, Type, Union

from pydantic import BaseModel, ConfigDict, Field

from zuretable.table.constants import (
    ETAG_PROPERTY,
    PARTITION_KEY,
    ROW_KEY,
    SYSTEM_PROPERTIES,
    TABLE_NAME,
)


class EdmType(str, Enum):
    """Entity Data Model type annotations understood by the service."""
    STRING = "Edm.String"
    INT32 = "Edm.Int32"
    INT64 = "Edm.Int64"
    DOUBLE = "Edm.Double"
    BOOLEAN = "Edm.Boolean"
    DATETIME = "Edm.DateTime"
    GUID = "Edm.Guid"
    BINARY = "Edm.Binary"


class OperationKind(str, Enum):
    """Kinds of single-entity operations."""
    INSERT = "insert"
    INSERT_OR_MERGE = "insert_or_merge"
    INSERT_OR_REPLACE = "insert_or_replace"
    MERGE = "merge"
    REPLACE = "replace"
    DELETE = "delete"
    RETRIEVE = "retrieve"

    @property
    def update_type(self) -> Optional[str]:
        """Update semantics of insert kinds: None for a plain insert, else MERGE or REPLACE."""
        if self in (OperationKind.INSERT_OR_MERGE, OperationKind.MERGE):
            return "MERGE"
        if self in (OperationKind.INSERT_OR_REPLACE, OperationKind.REPLACE):
            return "REPLACE"
        return None


class TableEntity(BaseModel):
    """
    Table entity model.

    PartitionKey and RowKey form the primary key. Timestamp and etag are
    managed by the service and refreshed after successful writes.
    Custom properties are stored in model_extra.

    Keys are optional here so that operations can report a missing key as a
    local precondition failure instead of a model validation error.
    Subclasses may declare typed custom properties; they are used as target
    types for point retrieves.
    """
    model_config = ConfigDict(
        extra="allow",
        arbitrary_types_allowed=True,
        populate_by_name=True,
        validate_assignment=False,
    )

    PartitionKey: Optional[str] = Field(default=None, description="Partition key for the entity")
    RowKey: Optional[str] = Field(default=None, description="Row key for the entity")
    Timestamp: Optional[datetime] = Field(default=None, description="Last modification timestamp")
    etag: Optional[str] = Field(
        default=None,
        description="ETag for optimistic concurrency",
        alias=ETAG_PROPERTY,
    )

    def get_custom_properties(self) -> Dict[str, Any]:
        """Get all custom properties (non-system properties)."""
        declared = {
            name: getattr(self, name)
            for name in type(self).model_fields
            if name not in SYSTEM_PROPERTIES and name != "etag"
        }
        extra = self.model_extra or {}
        declared.update({k: v for k, v in extra.items() if k not in SYSTEM_PROPERTIES})
        return declared

    def write_entity(self) -> Dict[str, Any]:
        """
        Properties to send to the service.

        Returns:
            Dictionary of keys followed by custom properties, without
            Timestamp or etag
        """
        properties: Dict[str, Any] = {}
        if self.PartitionKey is not None:
            properties[PARTITION_KEY] = self.PartitionKey
        if self.RowKey is not None:
            properties[ROW_KEY] = self.RowKey
        properties.update(self.get_custom_properties())
        return properties

    def read_entity(self, properties: Dict[str, Any]) -> None:
        """
        Replace custom property values with those returned by the service.

        Args:
            properties: Parsed custom properties (system keys excluded)
        """
        for name, value in properties.items():
            setattr(self, name, value)

    def update_etag(self, etag: Optional[str]) -> None:
        """Refresh the concurrency token."""
        self.etag = etag

    @property
    def table_name(self) -> Optional[str]:
        """TableName property, set on rows of the table-of-tables."""
        return self.get_custom_properties().get(TABLE_NAME)

    @classmethod
    def from_properties(
        cls,
        partition_key: Optional[str],
        row_key: Optional[str],
        timestamp: Optional[datetime],
        etag: Optional[str],
        properties: Dict[str, Any],
    ) -> "TableEntity":
        """
        Build an entity from parsed service properties.

        Args:
            partition_key: Partition key
            row_key: Row key
            timestamp: Service timestamp
            etag: Entity tag
            properties: Custom properties

        Returns:
            Instance of cls
        """
        return cls(
            PartitionKey=partition_key,
            RowKey=row_key,
            Timestamp=timestamp,
            etag=etag,
            **properties,
        )


@dataclass(frozen=True)
class TableResult:
    """
    Outcome of an executed table operation.

    Attributes:
        status_code: HTTP status code of the final attempt
        result: The caller's entity for writes, the materialized row (or
            resolver output) for retrieves, None when nothing was found
        etag: Entity tag reported by the service, if any
    """
    status_code: int
    result: Any = None
    etag: Optional[str] = None


# resolver(partition_key, row_key, timestamp, properties, etag) -> any
EntityResolver = Callable[
    [Optional[str], Optional[str], Optional[datetime], Dict[str, Any], Optional[str]],
    Any,
]


@dataclass(frozen=True)
class EntityTypeTarget:
    """Retrieve into an instance of a TableEntity subclass."""
    entity_type: Type[TableEntity]


@dataclass(frozen=True)
class ResolverTarget:
    """Retrieve through a caller supplied projection function."""
    resolver: EntityResolver


RetrieveTarget = Union[EntityTypeTarget, ResolverTarget]
