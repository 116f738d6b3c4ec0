"""CLI entrypoint for salesteam."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any
from uuid import UUID

import click
import yaml
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from . import __version__
from .config import Settings, build_store, load_settings
from .dispatcher import Services, dispatch
from .errors import EventFormatError, PluginExecutionError, SalesTeamError
from .events import context_from_dict
from .records import (
    CORRELATION_FIELDS,
    END_DATE,
    LINE_OF_BUSINESS,
    ROLE,
    SALES_TEAM,
    START_DATE,
    USER,
    Record,
    reference_id,
)
from .store.memory import MemoryRecordStore
from .store.query import ConditionOperator, QueryExpression


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _read_json_documents(path: Path) -> list[Any]:
    """A single JSON object, a JSON array, or JSON Lines."""
    text = path.read_text(encoding="utf-8").strip()
    if not text:
        return []
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        documents = []
        for lineno, line in enumerate(text.splitlines(), start=1):
            if not line.strip():
                continue
            try:
                documents.append(json.loads(line))
            except json.JSONDecodeError as e:
                raise click.ClickException(f"{path}: invalid JSON on line {lineno}: {e.msg}") from e
        return documents
    if isinstance(data, list):
        return data
    return [data]


def _format_value(value: Any) -> str:
    if value is None:
        return ""
    if hasattr(value, "isoformat"):
        return value.isoformat(timespec="seconds")
    return str(value)


def _target_of(row: Record) -> Any:
    for name in CORRELATION_FIELDS:
        if row.has_value(name):
            return row[name]
    return None


@click.group()
@click.version_option(__version__, prog_name="salesteam")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Path to salesteam.yml (defaults to $SALESTEAM_CONFIG or ./salesteam.yml)",
)
@click.option("--verbose", is_flag=True, help="Log at DEBUG level")
@click.pass_context
def cli(ctx: click.Context, config_path: Path | None, verbose: bool) -> None:
    """salesteam - sales team participation ledger.

    Replays GrantAccess/RevokeAccess events into the participation ledger and
    inspects the resulting intervals.
    """
    ctx.ensure_object(dict)
    try:
        settings = load_settings(config_path)
    except SalesTeamError as e:
        raise click.ClickException(e.message) from e

    _configure_logging("DEBUG" if verbose else settings.log_level)
    ctx.obj["settings"] = settings


def _store(ctx: click.Context):
    settings: Settings = ctx.obj["settings"]
    if "store" not in ctx.obj:
        try:
            ctx.obj["store"] = build_store(settings)
        except SalesTeamError as e:
            raise click.ClickException(e.message) from e
    return ctx.obj["store"]


@cli.command("dispatch")
@click.argument("events_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--json", "output_json", is_flag=True, help="Output decisions as JSON")
@click.pass_context
def dispatch_cmd(ctx: click.Context, events_file: Path, output_json: bool) -> None:
    """Replay access events from EVENTS_FILE (JSON or JSON Lines).

    Each event is handled independently; a failed event does not stop the
    replay but makes the command exit with status 1.
    """
    console = Console()
    settings: Settings = ctx.obj["settings"]
    services = Services(store=_store(ctx), settings=settings)

    results: list[dict[str, Any]] = []
    failures = 0
    for document in _read_json_documents(events_file):
        try:
            context = context_from_dict(document)
        except EventFormatError as e:
            failures += 1
            results.append({"message_name": e.details.get("message_name"), **e.to_dict()})
            if not output_json:
                console.print(f"[red]invalid event[/red] {e.message}")
            continue

        try:
            decision = dispatch(context, services)
        except PluginExecutionError as e:
            failures += 1
            results.append({"message_name": context.message_name, **e.to_dict()})
            if not output_json:
                console.print(f"[red]{context.message_name}[/red] {e.message}")
            continue

        if decision is None:
            results.append({"message_name": context.message_name, "outcome": "ignored"})
            if not output_json:
                console.print(f"[dim]{context.message_name or '(none)'} ignored[/dim]")
            continue

        results.append({"message_name": context.message_name, **decision.to_dict()})
        if not output_json:
            line = f"[bold]{context.message_name}[/bold] {decision.outcome.value}"
            if decision.interval_id:
                line += f" {decision.interval_id}"
            if decision.reason:
                line += f" [yellow]({decision.reason})[/yellow]"
            console.print(line)

    if output_json:
        click.echo(json.dumps(results, indent=2))
    if failures:
        ctx.exit(1)


@cli.command()
@click.option("--user", "user_id", type=click.UUID, default=None, help="Only intervals for this user id")
@click.option("--target", "target_id", type=click.UUID, default=None, help="Only intervals for this record id")
@click.option("--open-only", is_flag=True, help="Only intervals without an end date")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
@click.pass_context
def intervals(
    ctx: click.Context,
    user_id: UUID | None,
    target_id: UUID | None,
    open_only: bool,
    output_json: bool,
) -> None:
    """List participation intervals, newest start first."""
    query = QueryExpression(SALES_TEAM)
    if user_id is not None:
        query.add_condition(USER, ConditionOperator.EQUAL, user_id)
    if open_only:
        query.add_condition(END_DATE, ConditionOperator.NULL)
    query.add_order(START_DATE, descending=True)

    try:
        rows = _store(ctx).retrieve_multiple(query)
    except SalesTeamError as e:
        raise click.ClickException(e.message) from e

    if target_id is not None:
        rows = [r for r in rows if reference_id(_target_of(r)) == target_id]

    if output_json:
        click.echo(json.dumps([r.to_dict() for r in rows], indent=2))
        return

    console = Console()
    if not rows:
        console.print("No intervals recorded.")
        return

    table = Table(title=f"Sales team intervals ({len(rows)})")
    table.add_column("Interval")
    table.add_column("User")
    table.add_column("Target")
    table.add_column("Start")
    table.add_column("End")
    table.add_column("Role", justify="right")
    table.add_column("LoB", justify="right")
    for row in rows:
        user = row.get(USER)
        table.add_row(
            str(row.id),
            str(reference_id(user) or ""),
            _format_value(_target_of(row)),
            _format_value(row.get(START_DATE)),
            _format_value(row.get(END_DATE)) or "[green]open[/green]",
            _format_value(row.get(ROLE)),
            _format_value(row.get(LINE_OF_BUSINESS)),
        )
    console.print(table)


@cli.command("load-records")
@click.argument("records_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_context
def load_records(ctx: click.Context, records_file: Path) -> None:
    """Load users and target records into a local store from RECORDS_FILE."""
    store = _store(ctx)
    if not isinstance(store, MemoryRecordStore):
        raise click.ClickException("load-records only works with the ledger or memory store")

    count = 0
    for index, document in enumerate(_read_json_documents(records_file), start=1):
        try:
            record = Record.from_dict(document)
        except (KeyError, ValueError, TypeError, AttributeError) as e:
            raise click.ClickException(f"{records_file}: invalid record #{index}: {e!r}") from e
        try:
            store.seed(record)
        except SalesTeamError as e:
            raise click.ClickException(e.message) from e
        count += 1
    Console().print(f"Loaded {count} records.")


@cli.command("config")
@click.pass_context
def show_config(ctx: click.Context) -> None:
    """Print the effective configuration."""
    settings: Settings = ctx.obj["settings"]
    click.echo(yaml.safe_dump(settings.to_dict(), sort_keys=False).rstrip())


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
