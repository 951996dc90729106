"""
Per-request options for table operations.
"""

from enum import Enum
from typing import TYPE_CHECKING, Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from zuretable.core.retry import ExponentialRetry

if TYPE_CHECKING:
    from zuretable.table.client import TableClient


class TablePayloadFormat(str, Enum):
    """JSON payload flavours supported by the service."""
    JSON_NO_METADATA = "nometadata"
    JSON_MINIMAL_METADATA = "minimalmetadata"
    JSON_FULL_METADATA = "fullmetadata"

    @property
    def accept_header(self) -> str:
        return f"application/json;odata={self.value}"


class TableRequestOptions(BaseModel):
    """
    Options controlling how a single operation is executed.

    Any field left as None is filled from the owning client's defaults by
    apply_defaults().
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    payload_format: Optional[TablePayloadFormat] = None
    retry_policy: Optional[Any] = None
    timeout_seconds: Optional[int] = Field(
        default=None,
        ge=1,
        description="Server-side timeout sent as the 'timeout' query parameter",
    )
    client_timeout_seconds: Optional[float] = Field(
        default=None,
        gt=0,
        description="Socket timeout applied by the transport to each attempt",
    )

    @classmethod
    def apply_defaults(
        cls,
        options: Optional["TableRequestOptions"],
        client: "TableClient"
    ) -> "TableRequestOptions":
        """
        Merge caller options over the client defaults.

        Args:
            options: Caller supplied options (may be None)
            client: Owning client

        Returns:
            A new, fully populated options object
        """
        merged = options.model_copy() if options is not None else cls()
        defaults = client.default_request_options

        if merged.payload_format is None:
            merged.payload_format = defaults.payload_format or TablePayloadFormat.JSON_MINIMAL_METADATA
        if merged.retry_policy is None:
            merged.retry_policy = defaults.retry_policy or ExponentialRetry()
        if merged.timeout_seconds is None:
            merged.timeout_seconds = defaults.timeout_seconds
        if merged.client_timeout_seconds is None:
            merged.client_timeout_seconds = defaults.client_timeout_seconds
        return merged
