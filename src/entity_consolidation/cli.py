"""CLI for the consolidation engine.

Commands:
    init-db                        - Create tables
    exact                          - List exact (tax id) duplicate groups
    fuzzy [--threshold N]          - List fuzzy (name) duplicate groups
    merge IDS... --survivor ID     - Merge a group into its survivor
    resolve <id>                   - Show the current id for a possibly retired id
    history <id>                   - Show merges an entity took part in
"""

from __future__ import annotations

import asyncio
import logging
from typing import Annotated, NoReturn

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from entity_consolidation.config import settings
from entity_consolidation.db import async_session_factory, engine, init_db
from entity_consolidation.detection.groups import DuplicateGroup
from entity_consolidation.errors import ConsolidationError
from entity_consolidation.services.engine import ConsolidationEngine

app = typer.Typer(
    name="entity-consolidation",
    help="Entity consolidation: find duplicate customer records and merge them",
    no_args_is_help=True,
)
console = Console()


def run_async(coro):
    """Run an async coroutine in sync context."""
    return asyncio.run(coro)


def consolidation_engine() -> ConsolidationEngine:
    return ConsolidationEngine(async_session_factory)


def parse_overrides(values: list[str]) -> dict[str, int]:
    """Parse repeated `field=entity_id` options."""
    overrides: dict[str, int] = {}
    for item in values:
        name, sep, raw_id = item.partition("=")
        if not sep or not name.strip():
            raise typer.BadParameter(f"Expected field=entity_id, got {item!r}")
        try:
            overrides[name.strip()] = int(raw_id)
        except ValueError:
            raise typer.BadParameter(f"Entity id in {item!r} is not an integer") from None
    return overrides


def fail(exc: ConsolidationError) -> NoReturn:
    console.print(f"[red]Error ({exc.code}):[/red] {exc.message}")
    if exc.retryable:
        console.print("[yellow]This error is retryable.[/yellow]")
    raise typer.Exit(1)


def print_groups(groups: list[DuplicateGroup], title: str) -> None:
    if not groups:
        console.print("[yellow]No duplicate groups found.[/yellow]")
        return

    table = Table(title=title)
    table.add_column("#", justify="right")
    table.add_column("Members")
    table.add_column("Score", justify="right")
    table.add_column("Key")
    for index, group in enumerate(groups, start=1):
        table.add_row(
            str(index),
            ", ".join(str(member) for member in group.members),
            str(group.score),
            group.key or "-",
        )
    console.print(table)


@app.callback()
def main(
    verbose: Annotated[
        bool, typer.Option("--verbose", "-v", help="Log at DEBUG level")
    ] = False,
):
    """Configure logging for every command."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else settings.log_level,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


@app.command("init-db")
def init_db_command():
    """Create the registry and audit tables."""
    run_async(init_db(engine))
    console.print("[green]Database initialized.[/green]")


@app.command()
def exact():
    """List groups of active entities sharing a normalized tax id."""
    async def _exact():
        await init_db(engine)
        return await consolidation_engine().find_exact_groups()

    try:
        groups = run_async(_exact())
    except ConsolidationError as e:
        fail(e)
    print_groups(groups, "Exact duplicate groups")


@app.command()
def fuzzy(
    threshold: Annotated[
        int | None,
        typer.Option("--threshold", "-t", help="Similarity threshold (50-100)"),
    ] = None,
):
    """List groups of active entities with similar names."""
    async def _fuzzy():
        await init_db(engine)
        return await consolidation_engine().find_fuzzy_groups(threshold)

    try:
        groups = run_async(_fuzzy())
    except ConsolidationError as e:
        fail(e)
    print_groups(
        groups, f"Fuzzy duplicate groups (threshold {threshold or settings.default_fuzzy_threshold})"
    )


@app.command()
def merge(
    entity_ids: Annotated[list[int], typer.Argument(help="Ids of every group member")],
    survivor: Annotated[int, typer.Option("--survivor", "-s", help="Id that survives")],
    override: Annotated[
        list[str] | None,
        typer.Option("--override", "-o", help="field=entity_id, value taken from that member"),
    ] = None,
    actor: Annotated[str | None, typer.Option("--actor", help="Who requested the merge")] = None,
    reason: Annotated[str | None, typer.Option("--reason", help="Free-text reason")] = None,
):
    """Merge a duplicate group into its survivor."""
    overrides = parse_overrides(override or [])

    async def _merge():
        await init_db(engine)
        return await consolidation_engine().merge(
            entity_ids, survivor, overrides, actor=actor, reason=reason
        )

    try:
        result = run_async(_merge())
    except ConsolidationError as e:
        fail(e)

    retired = sorted(set(entity_ids) - {survivor})
    lines = [
        f"[bold]Survivor:[/bold] {result.entity_id}",
        f"[bold]Retired:[/bold] {', '.join(str(entity_id) for entity_id in retired)}",
        f"[bold]Name:[/bold] {result.display_name}",
        f"[bold]Tax id:[/bold] {result.tax_id or '-'}",
    ]
    for key, value in sorted((result.profile or {}).items()):
        lines.append(f"  • {key}: {value}")
    console.print(Panel("\n".join(lines), title="Merge complete"))


@app.command()
def resolve(
    entity_id: Annotated[int, typer.Argument(help="Entity id, possibly retired")],
):
    """Show the current surviving id for an entity id."""
    async def _resolve():
        await init_db(engine)
        return await consolidation_engine().resolve(entity_id)

    try:
        current_id = run_async(_resolve())
    except ConsolidationError as e:
        fail(e)

    if current_id == entity_id:
        console.print(f"{entity_id} is active")
    else:
        console.print(f"{entity_id} → {current_id}")


@app.command()
def history(
    entity_id: Annotated[int, typer.Argument(help="Entity id")],
    limit: Annotated[int, typer.Option("--limit", "-n", help="Maximum rows")] = 20,
):
    """Show merges an entity took part in, newest first."""
    async def _history():
        await init_db(engine)
        return await consolidation_engine().merge_history(entity_id, limit=limit)

    operations = run_async(_history())
    if not operations:
        console.print(f"[yellow]No merges recorded for {entity_id}.[/yellow]")
        return

    table = Table(title=f"Merges involving {entity_id}")
    table.add_column("Merge")
    table.add_column("Survivor", justify="right")
    table.add_column("Retired")
    table.add_column("Actor")
    table.add_column("When")
    for operation in operations:
        table.add_row(
            str(operation.merge_id)[:8],
            str(operation.survivor_id),
            ", ".join(str(entity_id) for entity_id in operation.retired_ids),
            operation.actor,
            str(operation.created_at),
        )
    console.print(table)


if __name__ == "__main__":
    app()
