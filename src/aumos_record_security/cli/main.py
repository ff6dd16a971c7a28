"""CLI entry point for aumos-record-security.

Invoked as::

    record-sec [OPTIONS] COMMAND [ARGS]...

or during development::

    python -m aumos_record_security.cli.main

Commands
--------
- validate   Validate a security YAML file and show its compiled rules
- check      Run a permission check against a security YAML file
- filter     Show the filter injected into a query for a user
- mask       Mask a value with a mask format
- version    Show version information

The file-based commands always read permissions from the YAML file
itself, whatever ``storage_type`` it declares.
"""
from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import Any

import click
from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from aumos_record_security.errors import FilterTranslationError, PermissionConfigError

console = Console()
err_console = Console(stderr=True)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _load_config(config_path: str) -> Any:
    """Load a security YAML file, exiting with status 1 on invalid input."""
    from aumos_record_security.plugin.config_loader import ConfigLoader

    try:
        return ConfigLoader().load(Path(config_path))
    except PermissionConfigError as exc:
        err_console.print(f"[red]Invalid security config:[/red] {escape(str(exc))}")
        sys.exit(1)


def _file_loader(config: Any) -> Any:
    from aumos_record_security.permissions.permission_loader import PermissionLoader

    return PermissionLoader(config.model_copy(update={"storage_type": "memory"}))


def _parse_json(raw: str | None, label: str) -> Any:
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        err_console.print(f"[red]Invalid {label} JSON:[/red] {escape(str(exc))}")
        sys.exit(1)


def _user(user_id: str | None, roles: tuple[str, ...]) -> dict[str, object] | None:
    if user_id is None and not roles:
        return None
    return {"id": user_id, "roles": list(roles)}


# ---------------------------------------------------------------------------
# Root command group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(package_name="aumos-record-security")
def cli() -> None:
    """Record Security CLI: validate policies, check permissions, preview filters."""


# ---------------------------------------------------------------------------
# version
# ---------------------------------------------------------------------------


@cli.command(name="version")
def version_command() -> None:
    """Show detailed version information."""
    from aumos_record_security import __version__

    console.print(
        Panel(
            f"[bold]aumos-record-security[/bold]  v[cyan]{__version__}[/cyan]\n"
            "Declarative object, field and row-level security for record stores.",
            title="Version",
            border_style="blue",
        )
    )


# ---------------------------------------------------------------------------
# validate
# ---------------------------------------------------------------------------


@cli.command(name="validate")
@click.argument("config_path", type=click.Path(exists=True))
def validate_command(config_path: str) -> None:
    """Validate a security YAML file and list its compiled rules."""
    from aumos_record_security.permissions.permission_loader import compile_permission_config

    config = _load_config(config_path)

    table = Table(title="Permission Configs", box=box.SIMPLE)
    table.add_column("Object", style="cyan")
    table.add_column("Rules", justify="right")
    table.add_column("Priorities", style="magenta")
    table.add_column("RLS")
    table.add_column("Masked Fields")

    for permission_config in config.permissions:
        rules = compile_permission_config(permission_config)
        rls = permission_config.row_level_security
        table.add_row(
            permission_config.object,
            str(len(rules)),
            ", ".join(f"{r.rule_name}={r.priority}" for r in rules) or "-",
            "[green]on[/green]" if rls is not None and rls.enabled else "off",
            ", ".join(permission_config.field_masking or {}) or "-",
        )

    console.print(table)
    console.print(
        f"  Storage: [cyan]{config.storage_type}[/cyan]  "
        f"Objects: [cyan]{len(config.permissions)}[/cyan]  "
        f"Exempt: [cyan]{', '.join(config.exempt_objects) or '-'}[/cyan]"
    )


# ---------------------------------------------------------------------------
# check
# ---------------------------------------------------------------------------


@cli.command(name="check")
@click.argument("config_path", type=click.Path(exists=True))
@click.option("--object", "-o", "object_name", required=True, help="Object name to check.")
@click.option("--operation", "-p", required=True, help="Operation, e.g. read or create.")
@click.option("--user-id", "-u", default=None, help="Acting user id; omit for anonymous.")
@click.option("--role", "-r", "roles", multiple=True, help="User role (repeatable).")
@click.option("--field", "-f", "field_name", default=None, help="Field for a field-level check.")
@click.option("--record", "record_json", default=None, help="Record data as a JSON object.")
def check_command(
    config_path: str,
    object_name: str,
    operation: str,
    user_id: str | None,
    roles: tuple[str, ...],
    field_name: str | None,
    record_json: str | None,
) -> None:
    """Run a permission check and exit non-zero when denied."""
    from aumos_record_security.permissions.models import SecurityContext
    from aumos_record_security.permissions.permission_guard import PermissionGuard

    config = _load_config(config_path)
    record = _parse_json(record_json, "record")
    guard = PermissionGuard(_file_loader(config), cache_enabled=False)
    context = SecurityContext(
        object_name=object_name,
        operation=operation,
        user=_user(user_id, roles),
        record=record,
        field=field_name,
    )
    result = asyncio.run(guard.check_permission(context))

    status_str = "[green]GRANTED[/green]" if result.granted else "[red]DENIED[/red]"
    console.print(Panel(status_str, title="Permission Check Result", border_style="blue"))
    if result.reason:
        console.print(f"  Reason: {escape(result.reason)}")
    if result.rule:
        console.print(f"  Rule: [bold]{escape(result.rule)}[/bold]")

    sys.exit(0 if result.granted else 1)


# ---------------------------------------------------------------------------
# filter
# ---------------------------------------------------------------------------


@cli.command(name="filter")
@click.argument("config_path", type=click.Path(exists=True))
@click.option("--object", "-o", "object_name", required=True, help="Object name being queried.")
@click.option("--user-id", "-u", default=None, help="Acting user id; omit for anonymous.")
@click.option("--role", "-r", "roles", multiple=True, help="User role (repeatable).")
@click.option("--operation", "-p", default="read", show_default=True, help="Record-rule operation.")
@click.option("--query", "-q", "query_json", default=None, help="Existing query as a JSON object.")
def filter_command(
    config_path: str,
    object_name: str,
    user_id: str | None,
    roles: tuple[str, ...],
    operation: str,
    query_json: str | None,
) -> None:
    """Print the query after row-level security and record rules are applied."""
    from aumos_record_security.permissions.models import SecurityContext
    from aumos_record_security.query.trimmer import QueryTrimmer

    config = _load_config(config_path)
    query = _parse_json(query_json, "query") or {}
    trimmer = QueryTrimmer(_file_loader(config))
    context = SecurityContext(
        object_name=object_name, operation=operation, user=_user(user_id, roles)
    )

    async def _trim() -> None:
        await trimmer.apply_row_level_security(object_name, query, context)
        await trimmer.apply_record_rules(object_name, query, context, operation)

    try:
        asyncio.run(_trim())
    except FilterTranslationError as exc:
        err_console.print(f"[red]Cannot express as a filter:[/red] {escape(str(exc))}")
        sys.exit(1)

    console.print_json(json.dumps(query, default=str))
    if trimmer.is_query_impossible(query):
        err_console.print("[yellow]Query can match no records.[/yellow]")


# ---------------------------------------------------------------------------
# mask
# ---------------------------------------------------------------------------


@cli.command(name="mask")
@click.argument("value")
@click.argument("mask_format")
def mask_command(value: str, mask_format: str) -> None:
    """Mask VALUE with MASK_FORMAT, e.g. '****-****-****-{last4}'."""
    from aumos_record_security.masking.mask_formats import mask_value

    console.print(mask_value(value, mask_format), markup=False, highlight=False)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    cli()
