"""
zuretable Command-Line Interface

Runs single-entity table operations from the shell. Entities are given as
JSON objects; results are printed as JSON.
"""

import base64
import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional
from uuid import UUID

import click
from pydantic import ValidationError

from zuretable import __version__
from zuretable.core.config_manager import ConfigManager
from zuretable.core.logging_config import setup_logging
from zuretable.table.client import TableClient
from zuretable.table.exceptions import StorageError, TableServiceError
from zuretable.table.models import TableEntity, TableResult
from zuretable.table.operation import TableOperation

logger = logging.getLogger("zuretable.cli")


def _jsonable(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, (bytes, bytearray)):
        return base64.b64encode(bytes(value)).decode("ascii")
    return value


def _result_to_dict(result: TableResult) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"status_code": result.status_code, "etag": result.etag}
    row = result.result
    if isinstance(row, TableEntity):
        entity = {k: _jsonable(v) for k, v in row.write_entity().items()}
        if row.Timestamp is not None:
            entity["Timestamp"] = _jsonable(row.Timestamp)
        entity["odata.etag"] = row.etag
        payload["entity"] = entity
    else:
        payload["entity"] = row
    return payload


def _parse_entity(raw: str, etag: Optional[str] = None) -> TableEntity:
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise click.BadParameter(f"Entity is not valid JSON: {e}", param_hint="ENTITY")
    if not isinstance(data, dict):
        raise click.BadParameter("Entity must be a JSON object", param_hint="ENTITY")
    try:
        entity = TableEntity(**data)
    except ValidationError as e:
        raise click.BadParameter(f"Entity is not a valid table entity: {e}", param_hint="ENTITY")
    if etag is not None:
        entity.etag = etag
    return entity


def _run(ctx: click.Context, table: str, operation: TableOperation) -> None:
    """Execute operation and print the result; remote errors exit with status 1."""
    try:
        with _build_client(ctx) as client:
            result = client.execute(table, operation)
    except TableServiceError as e:
        click.echo(f"[ERROR] {e.status_code} {e.error_code}: {e.message}", err=True)
        sys.exit(1)
    except StorageError as e:
        click.echo(f"[ERROR] {e.message}", err=True)
        sys.exit(1)
    except ValueError as e:
        click.echo(f"[ERROR] {e}", err=True)
        sys.exit(2)
    click.echo(json.dumps(_result_to_dict(result), indent=2))


def _build_client(ctx: click.Context) -> TableClient:
    obj = ctx.obj
    return TableClient.from_config(obj["config"], transport=obj.get("transport"))


@click.group()
@click.version_option(version=__version__, prog_name="zuretable")
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Path to configuration file (YAML or JSON)",
)
@click.option(
    "--endpoint",
    help="Table service endpoint (overrides configuration)",
)
@click.option(
    "--account-name",
    help="Storage account name (overrides configuration)",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False),
    help="Logging level",
)
@click.pass_context
def cli(ctx, config: Optional[Path], endpoint: Optional[str], account_name: Optional[str], log_level: Optional[str]):
    """
    zuretable - single-entity table storage operations

    Insert, upsert, merge, replace, delete and fetch table rows.
    """
    ctx.ensure_object(dict)

    overrides: Dict[str, Any] = {}
    if endpoint:
        overrides.setdefault("account", {})["endpoint"] = endpoint
    if account_name:
        overrides.setdefault("account", {})["account_name"] = account_name
    if log_level:
        overrides.setdefault("logging", {})["level"] = log_level.upper()

    try:
        loaded = ConfigManager().load(str(config) if config else None, overrides)
    except (ValidationError, ValueError) as e:
        click.echo(f"[ERROR] Invalid configuration: {e}", err=True)
        sys.exit(2)

    logging_config = loaded.logging
    setup_logging(
        level=logging_config.level.value,
        format_type=logging_config.format,
        log_file=logging_config.file,
        rotation_size=logging_config.rotation_size,
        rotation_count=logging_config.rotation_count,
        module_levels=logging_config.module_levels,
    )
    ctx.obj["config"] = loaded


@cli.command()
@click.argument("table")
@click.argument("entity")
@click.option("--echo", is_flag=True, help="Ask the service to return the stored row")
@click.pass_context
def insert(ctx, table: str, entity: str, echo: bool):
    """
    Insert a new row.

    Examples:
        zuretable insert Orders '{"PartitionKey": "a", "RowKey": "1", "Qty": 3}'
        zuretable insert Orders '{"PartitionKey": "a", "RowKey": "2"}' --echo
    """
    _run(ctx, table, TableOperation.insert(_parse_entity(entity), echo_content=echo))


@cli.command()
@click.argument("table")
@click.argument("entity")
@click.option(
    "--merge/--replace",
    "merge_mode",
    default=True,
    show_default=True,
    help="Merge into, or replace, an existing row",
)
@click.option("--etag", help="Only update if the stored row has this etag")
@click.pass_context
def upsert(ctx, table: str, entity: str, merge_mode: bool, etag: Optional[str]):
    """
    Insert a row, or update it if it exists.

    Example:
        zuretable upsert Orders '{"PartitionKey": "a", "RowKey": "1", "Qty": 4}' --replace
    """
    row = _parse_entity(entity, etag)
    operation = TableOperation.insert_or_merge(row) if merge_mode else TableOperation.insert_or_replace(row)
    _run(ctx, table, operation)


@cli.command()
@click.argument("table")
@click.argument("entity")
@click.option("--etag", default="*", show_default=True, help="Expected etag; '*' matches any version")
@click.pass_context
def merge(ctx, table: str, entity: str, etag: str):
    """
    Merge properties into an existing row.

    Example:
        zuretable merge Orders '{"PartitionKey": "a", "RowKey": "1", "Qty": 5}'
    """
    _run(ctx, table, TableOperation.merge(_parse_entity(entity, etag)))


@cli.command()
@click.argument("table")
@click.argument("entity")
@click.option("--etag", default="*", show_default=True, help="Expected etag; '*' matches any version")
@click.pass_context
def replace(ctx, table: str, entity: str, etag: str):
    """
    Replace an existing row.

    Example:
        zuretable replace Orders '{"PartitionKey": "a", "RowKey": "1", "Qty": 6}' --etag 'W/"datetime..."'
    """
    _run(ctx, table, TableOperation.replace(_parse_entity(entity, etag)))


@cli.command()
@click.argument("table")
@click.argument("partition_key")
@click.argument("row_key")
@click.option("--etag", default="*", show_default=True, help="Expected etag; '*' matches any version")
@click.pass_context
def delete(ctx, table: str, partition_key: str, row_key: str, etag: str):
    """
    Delete a row.

    Example:
        zuretable delete Orders a 1
    """
    row = TableEntity(PartitionKey=partition_key, RowKey=row_key)
    row.etag = etag
    _run(ctx, table, TableOperation.delete(row))


@cli.command()
@click.argument("table")
@click.argument("partition_key")
@click.argument("row_key")
@click.pass_context
def get(ctx, table: str, partition_key: str, row_key: str):
    """
    Fetch one row by key. Prints an entity of null when the row does not exist.

    Example:
        zuretable get Orders a 1
    """
    _run(ctx, table, TableOperation.retrieve(partition_key, row_key))


def main():
    """Main entry point for the CLI."""
    cli(obj={})


if __name__ == "__main__":
    main()
