"""
dbadecrypt command-line interface

Recovers the source of SQL Server modules created WITH ENCRYPTION.
"""

import json
import sys
from typing import List, Optional, Tuple

import click
from rich.console import Console
from rich.table import Table

from .config_manager import LoggingConfig, create_config_from_env, setup_logging
from .decryptor import (
    DecryptionFailure,
    DecryptionReport,
    decrypt_instances,
    list_encrypted,
)
from .exceptions import DbaDecryptError
from .filters import ObjectFilter
from .known_plaintext import build_template
from .logging_config import configure_logging
from .models import ObjectKind

console = Console()

ENCODING_CHOICES = click.Choice(["ASCII", "UTF8"], case_sensitive=False)


def _configure(ctx: click.Context, servers: List[str], **overrides: Optional[str]):
    config = create_config_from_env(servers, **overrides)
    config.logging.level = ctx.obj["log_level"]
    setup_logging(config.logging)
    config.log_configuration_summary()
    return config


def _render_report(report: DecryptionReport, show_script: bool) -> None:
    table = Table(title="Decrypted objects")
    table.add_column("Server")
    table.add_column("Database")
    table.add_column("Type")
    table.add_column("Object")
    table.add_column("Output file" if not show_script else "Script")

    for result in report.results:
        last = result.script.replace("\x00", "") if show_script else (result.output_file or "-")
        table.add_row(
            result.server,
            result.database,
            result.descriptor.kind.value,
            result.descriptor.full_name,
            last,
        )
    console.print(table)
    _print_failures(report.failures)


def _print_failures(failures: List[DecryptionFailure]) -> None:
    for failure in failures:
        target = ".".join(
            part for part in (failure.server, failure.database, failure.object_name) if part
        )
        console.print(f"[yellow]⚠️  Skipped {target}:[/yellow] {failure.reason}")


@click.group()
@click.option(
    "--log-level",
    default="INFO",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False),
    help="Logging level (DEBUG, INFO, WARNING, ERROR)",
)
@click.pass_context
def cli(ctx: click.Context, log_level: str) -> None:
    """dbadecrypt - recover SQL Server objects created WITH ENCRYPTION."""
    ctx.ensure_object(dict)
    ctx.obj["log_level"] = log_level.upper()
    configure_logging(LoggingConfig(level=log_level).get_log_level())


@cli.command("decrypt")
@click.option(
    "--server", "-s", "servers", multiple=True, required=True, help="SQL Server instance (repeatable)"
)
@click.option(
    "--database", "-d", "databases", multiple=True, help="Database to inspect (repeatable or comma-separated)"
)
@click.option(
    "--object-name", "-o", "object_names", multiple=True, help="Object name or schema.name (repeatable)"
)
@click.option("--encoding", type=ENCODING_CHOICES, default=None, help="Text encoding (default: ASCII)")
@click.option(
    "--export-destination",
    type=click.Path(file_okay=False, writable=True),
    default=None,
    help="Directory to write <server>/<database>/<type>/<schema>.<name>.sql files under",
)
@click.option("--json", "as_json", is_flag=True, help="Print results as JSON")
@click.option("--show-script", is_flag=True, help="Show recovered scripts in the table")
@click.pass_context
def decrypt_command(
    ctx: click.Context,
    servers: Tuple[str, ...],
    databases: Tuple[str, ...],
    object_names: Tuple[str, ...],
    encoding: Optional[str],
    export_destination: Optional[str],
    as_json: bool,
    show_script: bool,
) -> None:
    """Decrypt encrypted procedures, functions, views and triggers."""
    try:
        config = _configure(
            ctx,
            list(servers),
            encoding=encoding,
            export_destination=export_destination,
        )
        object_filter = ObjectFilter.from_cli(list(databases), list(object_names))
    except (ValueError, DbaDecryptError) as e:
        click.echo(f"❌ Invalid configuration: {e}", err=True)
        sys.exit(1)

    report = decrypt_instances(config, object_filter)

    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2))
    else:
        _render_report(report, show_script)
        click.echo(
            f"🎉 Decrypted {len(report.results)} object(s), "
            f"{len(report.failures)} failed, {report.skipped} without definition"
        )

    if not report.results and report.failures:
        sys.exit(1)


@cli.command("list-encrypted")
@click.option(
    "--server", "-s", "servers", multiple=True, required=True, help="SQL Server instance (repeatable)"
)
@click.option(
    "--database", "-d", "databases", multiple=True, help="Database to inspect (repeatable or comma-separated)"
)
@click.option(
    "--object-name", "-o", "object_names", multiple=True, help="Object name or schema.name (repeatable)"
)
@click.pass_context
def list_encrypted_command(
    ctx: click.Context,
    servers: Tuple[str, ...],
    databases: Tuple[str, ...],
    object_names: Tuple[str, ...],
) -> None:
    """List encrypted objects without decrypting them."""
    try:
        config = _configure(ctx, list(servers))
        listing = list_encrypted(
            config, ObjectFilter.from_cli(list(databases), list(object_names))
        )
    except (ValueError, DbaDecryptError) as e:
        click.echo(f"❌ {e}", err=True)
        sys.exit(1)

    table = Table(title="Encrypted objects")
    for column in ("Server", "Database", "Type", "Schema", "Name", "Parent"):
        table.add_column(column)
    for row in listing.rows:
        table.add_row(
            row["server"],
            row["database"],
            row["type"],
            row["schema"],
            row["name"],
            row["parent"] or "",
        )
    console.print(table)
    _print_failures(listing.failures)

    if not listing.rows and listing.failures:
        sys.exit(1)


@cli.command("template")
@click.option("--kind", required=True, help="Object kind or sys.objects type code (e.g. View, P, FN)")
@click.option("--schema", default="dbo", show_default=True, help="Object schema")
@click.option("--name", required=True, help="Object name")
@click.option("--parent", default=None, help="Parent table or view (triggers only)")
@click.option("--length", "secret_length", type=click.IntRange(min=0), required=True, help="Secret length in bytes")
def template_command(
    kind: str, schema: str, name: str, parent: Optional[str], secret_length: int
) -> None:
    """Print the known-plaintext statement for an object."""
    try:
        statement = build_template(
            ObjectKind.parse(kind), schema, name, secret_length, parent=parent
        )
    except DbaDecryptError as e:
        click.echo(f"❌ {e}", err=True)
        sys.exit(1)
    click.echo(statement)


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
