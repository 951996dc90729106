"""
Single-entity table operations.

A TableOperation is an immutable description of one insert, upsert, merge,
replace, delete or point retrieve. Callers build one through the factory
class methods, which enforce each kind's preconditions, and run it with
execute() (or TableClient.execute()).

Example:
    >>> entity = TableEntity(PartitionKey="a", RowKey="1", Price=10)
    >>> result = client.execute("Products", TableOperation.insert(entity))
    >>> result.status_code
    204
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional, Tuple, Type
from urllib.parse import quote

from zuretable.core.execution import OperationContext
from zuretable.table.constants import PARTITION_KEY, ROW_KEY
from zuretable.table.exceptions import PreconditionError
from zuretable.table.models import (
    EntityResolver,
    EntityTypeTarget,
    OperationKind,
    ResolverTarget,
    RetrieveTarget,
    TableEntity,
    TableResult,
)
from zuretable.table.options import TableRequestOptions
from zuretable.table.request_builders import get_builder

if TYPE_CHECKING:
    from zuretable.table.client import TableClient


def _assert_not_none(argument: str, value: object) -> None:
    if value is None:
        raise PreconditionError(argument, f"The argument '{argument}' must not be null")


def _assert_not_null_or_empty(argument: str, value: Optional[str]) -> None:
    if not value:
        raise PreconditionError(argument)


def safe_encode(value: str) -> str:
    """Percent-encode everything outside the unreserved set (A-Z a-z 0-9 - . _ ~)."""
    return quote(value, safe="")


@dataclass(frozen=True, eq=False)
class TableOperation:
    """
    Operation descriptor.

    Attributes:
        kind: Operation kind
        entity: Target entity (None only for retrieves)
        echo_content: For inserts, ask the service to return the stored row
    """

    kind: OperationKind
    entity: Optional[TableEntity] = None
    echo_content: bool = True

    # ========== Factories ==========

    @classmethod
    def insert(cls, entity: TableEntity, echo_content: bool = False) -> "TableOperation":
        """
        Insert a new entity.

        Args:
            entity: Entity to insert
            echo_content: Return the stored row (201) instead of an empty
                acknowledgement (204)
        """
        _assert_not_none("entity", entity)
        return TableOperation(OperationKind.INSERT, entity, echo_content)

    @classmethod
    def insert_or_merge(cls, entity: TableEntity) -> "TableOperation":
        """Merge into the existing row, or insert it if absent."""
        _assert_not_none("entity", entity)
        return TableOperation(OperationKind.INSERT_OR_MERGE, entity)

    @classmethod
    def insert_or_replace(cls, entity: TableEntity) -> "TableOperation":
        """Replace the existing row, or insert it if absent."""
        _assert_not_none("entity", entity)
        return TableOperation(OperationKind.INSERT_OR_REPLACE, entity)

    @classmethod
    def merge(cls, entity: TableEntity) -> "TableOperation":
        """Merge properties into an existing row. Requires the entity's etag."""
        _assert_not_none("entity", entity)
        _assert_not_null_or_empty("entity etag", entity.etag)
        return TableOperation(OperationKind.MERGE, entity)

    @classmethod
    def replace(cls, entity: TableEntity) -> "TableOperation":
        """Replace an existing row. Requires the entity's etag."""
        _assert_not_none("entity", entity)
        _assert_not_null_or_empty("entity etag", entity.etag)
        return TableOperation(OperationKind.REPLACE, entity)

    @classmethod
    def delete(cls, entity: TableEntity) -> "TableOperation":
        """
        Delete an existing row. Requires the entity's etag.

        Use an etag of "*" to delete regardless of the stored version.
        """
        _assert_not_none("entity", entity)
        _assert_not_null_or_empty("entity etag", entity.etag)
        return TableOperation(OperationKind.DELETE, entity)

    @classmethod
    def retrieve(
        cls,
        partition_key: str,
        row_key: str,
        entity_type: Type[TableEntity] = TableEntity
    ) -> "RetrieveOperation":
        """
        Retrieve one row into an instance of entity_type.

        Args:
            partition_key: Partition key
            row_key: Row key
            entity_type: TableEntity subclass to materialize
        """
        if not (isinstance(entity_type, type) and issubclass(entity_type, TableEntity)):
            raise PreconditionError("entity_type", "entity_type must be a TableEntity subclass")
        return RetrieveOperation._create(partition_key, row_key, EntityTypeTarget(entity_type))

    @classmethod
    def retrieve_with_resolver(
        cls,
        partition_key: str,
        row_key: str,
        resolver: EntityResolver
    ) -> "RetrieveOperation":
        """
        Retrieve one row and project it through resolver.

        Args:
            partition_key: Partition key
            row_key: Row key
            resolver: Called as resolver(pk, rk, timestamp, properties, etag)
        """
        if not callable(resolver):
            raise PreconditionError("resolver", "resolver must be callable")
        return RetrieveOperation._create(partition_key, row_key, ResolverTarget(resolver))

    # ========== Identity ==========

    def _identity_keys(self) -> Tuple[Optional[str], Optional[str]]:
        return self.entity.PartitionKey, self.entity.RowKey

    def generate_request_identity(
        self,
        is_table_entry: bool,
        entry_name: Optional[str],
        encode_keys: bool
    ) -> str:
        """
        Identity fragment that addresses the target row.

        Args:
            is_table_entry: Target is a row of the table-of-tables
            entry_name: Table name of that row
            encode_keys: Percent-encode the key values

        Returns:
            "'<name>'" for table entries, "" for inserts, otherwise
            "PartitionKey='<pk>',RowKey='<rk>'"
        """
        if is_table_entry:
            return f"'{entry_name}'"

        if self.kind is OperationKind.INSERT:
            return ""

        pk, rk = self._identity_keys()
        if encode_keys:
            pk, rk = safe_encode(pk), safe_encode(rk)
        return f"{PARTITION_KEY}='{pk}',{ROW_KEY}='{rk}'"

    def generate_request_identity_with_table(self, table_name: str) -> str:
        """Identity qualified by table name, e.g. "Orders(PartitionKey='a',RowKey='1')"."""
        return f"{table_name}({self.generate_request_identity(False, None, False)})"

    # ========== Execution ==========

    def execute(
        self,
        client: "TableClient",
        table_name: str,
        options: Optional[TableRequestOptions] = None,
        context: Optional[OperationContext] = None
    ) -> TableResult:
        """
        Run the operation against table_name.

        Args:
            client: Owning client (endpoint, transport, default options)
            table_name: Target table
            options: Per-request options; unset fields come from the client
            context: Operation context; a new one is created if omitted

        Returns:
            TableResult

        Raises:
            PreconditionError: Missing table name, key or etag
            SerializationError: Entity could not be encoded
            TableServiceError: The service rejected the request
            InvalidOperationError: Unknown operation kind
        """
        if context is None:
            context = OperationContext()
        context.initialize()

        options = TableRequestOptions.apply_defaults(options, client)
        _assert_not_null_or_empty("table_name", table_name)

        builder = get_builder(self.kind)
        spec = builder.build(self, table_name, options)
        return client.engine.run(spec, options.retry_policy, context)


@dataclass(frozen=True, eq=False)
class RetrieveOperation(TableOperation):
    """Point retrieve; addressed by keys rather than by an entity."""

    partition_key: Optional[str] = None
    row_key: Optional[str] = None
    target: Optional[RetrieveTarget] = None

    @classmethod
    def _create(cls, partition_key: str, row_key: str, target: RetrieveTarget) -> "RetrieveOperation":
        _assert_not_none("partition_key", partition_key)
        _assert_not_none("row_key", row_key)
        return cls(
            kind=OperationKind.RETRIEVE,
            partition_key=partition_key,
            row_key=row_key,
            target=target,
        )

    def _identity_keys(self) -> Tuple[Optional[str], Optional[str]]:
        return self.partition_key, self.row_key
