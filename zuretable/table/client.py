"""
Table client.

Owns the pieces every operation needs: endpoint resolution, the signer,
the transport, default request options and metrics.
"""

import logging
import time
from typing import TYPE_CHECKING, Callable, Optional

from zuretable.auth.sharedkey import SharedKeyCredentials, SharedKeySigner
from zuretable.core.execution import (
    EndpointResolver,
    ExecutionEngine,
    OperationContext,
    RoundRobinEndpointResolver,
    Signer,
    StaticEndpointResolver,
)
from zuretable.core.metrics import TableClientMetrics, get_metrics
from zuretable.core.transport import RequestsTransport, Transport
from zuretable.table.models import TableResult
from zuretable.table.options import TableRequestOptions

if TYPE_CHECKING:
    from zuretable.core.config_manager import ZureTableConfig
    from zuretable.table.operation import TableOperation

logger = logging.getLogger(__name__)


class TableClient:
    """
    Client for single-entity table operations.

    Example:
        >>> with TableClient("https://acct.table.core.windows.net",
        ...                  credentials=SharedKeyCredentials("acct", key)) as client:
        ...     client.execute("Orders", TableOperation.retrieve("a", "1"))
    """

    def __init__(
        self,
        endpoint: Optional[str] = None,
        secondary_endpoint: Optional[str] = None,
        credentials: Optional[SharedKeyCredentials] = None,
        signer: Optional[Signer] = None,
        transport: Optional[Transport] = None,
        default_request_options: Optional[TableRequestOptions] = None,
        metrics: Optional[TableClientMetrics] = None,
        endpoint_resolver: Optional[EndpointResolver] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Args:
            endpoint: Primary table endpoint
            secondary_endpoint: Read-only secondary endpoint; retried retrieves
                alternate between primary and secondary, writes stay on the primary
            credentials: SharedKey credentials; ignored when signer is given
            signer: Custom request signer
            transport: HTTP transport; a RequestsTransport is created and owned
                by the client when omitted
            default_request_options: Options applied where a request leaves a
                field unset
            metrics: Metrics collector, None to disable metrics
            endpoint_resolver: Custom resolver; overrides the endpoints
            sleep: Sleep function used between attempts
        """
        if endpoint_resolver is None:
            if not endpoint:
                raise ValueError("endpoint or endpoint_resolver is required")
            if secondary_endpoint:
                endpoint_resolver = RoundRobinEndpointResolver(endpoint, secondary_endpoint)
            else:
                endpoint_resolver = StaticEndpointResolver(endpoint)

        if signer is None and credentials is not None:
            signer = SharedKeySigner(credentials)

        self._owns_transport = transport is None
        self.transport = transport if transport is not None else RequestsTransport()
        self.default_request_options = default_request_options or TableRequestOptions()
        self.engine = ExecutionEngine(
            transport=self.transport,
            endpoint_resolver=endpoint_resolver,
            signer=signer,
            metrics=metrics,
            sleep=sleep,
        )

    @classmethod
    def from_config(
        cls,
        config: "ZureTableConfig",
        transport: Optional[Transport] = None
    ) -> "TableClient":
        """
        Build a client from loaded configuration.

        Args:
            config: Validated configuration
            transport: Optional transport override

        Returns:
            TableClient
        """
        account = config.account
        credentials = None
        if account.account_name and account.account_key:
            credentials = SharedKeyCredentials(account.account_name, account.account_key)
        else:
            logger.warning("No account key configured; requests will be sent unsigned")

        return cls(
            endpoint=account.resolved_endpoint(),
            secondary_endpoint=account.secondary_endpoint,
            credentials=credentials,
            transport=transport,
            default_request_options=config.client.to_request_options(config.retry),
            metrics=get_metrics() if config.client.metrics_enabled else None,
        )

    def execute(
        self,
        table_name: str,
        operation: "TableOperation",
        options: Optional[TableRequestOptions] = None,
        context: Optional[OperationContext] = None
    ) -> TableResult:
        """Run operation against table_name. See TableOperation.execute()."""
        return operation.execute(self, table_name, options, context)

    def close(self) -> None:
        if self._owns_transport:
            self.transport.close()

    def __enter__(self) -> "TableClient":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
