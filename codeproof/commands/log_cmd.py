"""Log commands - inspect snapshots, sessions and chain integrity."""

from __future__ import annotations

import json

import click
from rich.console import Console
from rich.table import Table

from ..snapshot.storage import ChainStore
from .record_cmd import format_snapshot_line


def _short_time(timestamp: str) -> str:
    return timestamp[:19].replace("T", " ")


def run_log(
    store: ChainStore,
    *,
    filename: str | None = None,
    session_id: str | None = None,
    last_n: int | None = None,
    output_json: bool = False,
) -> int:
    """
    List snapshots in timestamp order.

    Returns the number of snapshots displayed.
    """
    console = Console()
    snapshots = store.snapshots(filename=filename, session_id=session_id, limit=last_n)

    if output_json:
        click.echo(json.dumps([s.to_dict() for s in snapshots], indent=2))
        return len(snapshots)

    if not snapshots:
        console.print("[dim]No snapshots found.[/dim]")
        return 0

    for snapshot in snapshots:
        console.print(
            f"[dim]{_short_time(snapshot.timestamp)}[/dim] {format_snapshot_line(snapshot)} "
            f"[dim]{snapshot.id}[/dim]",
            highlight=False,
        )
    return len(snapshots)


def run_summary(store: ChainStore) -> int:
    """
    Display counts and chain status.

    Returns the total snapshot count.
    """
    console = Console()
    snapshots = list(store.iter_snapshots())

    if not snapshots:
        console.print("[dim]No snapshots recorded yet.[/dim]")
        return 0

    verification = store.verify_chain()
    by_type: dict[str, int] = {}
    for snapshot in snapshots:
        by_type[snapshot.change_type.value] = by_type.get(snapshot.change_type.value, 0) + 1

    table = Table(title="Recording Summary")
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")

    table.add_row("Total snapshots", str(len(snapshots)))
    table.add_row("Files", str(store.distinct_file_count()))
    table.add_row("Sessions", str(len(store.sessions())))
    table.add_row("", "")
    for change_type, count in sorted(by_type.items()):
        table.add_row(f"  {change_type}", str(count))
    table.add_row("", "")
    table.add_row("First snapshot", _short_time(snapshots[0].timestamp))
    table.add_row("Last snapshot", _short_time(snapshots[-1].timestamp))
    table.add_row(
        "Chain",
        "[green]valid[/green]" if verification.valid else "[red]BROKEN[/red]",
    )

    console.print(table)
    return len(snapshots)


def run_verify(store: ChainStore, *, output_json: bool = False) -> int:
    """
    Recompute the hash chain.

    Returns 0 if the chain is intact, 1 otherwise.
    """
    console = Console()
    result = store.verify_chain()

    if output_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return 0 if result.valid else 1

    if result.valid:
        console.print(f"[green]Chain valid[/green]: {result.checked} snapshots verified.")
        return 0

    console.print("[red]Chain broken.[/red]", highlight=False)
    if result.broken_id is not None:
        console.print(f"  First mismatch: snapshot {result.broken_id} (position {result.broken_at})")
    console.print(f"  Snapshots not verifiable: {result.invalid_count}")
    if result.reason:
        console.print(f"  [dim]{result.reason}[/dim]", highlight=False)
    return 1


def run_sessions(store: ChainStore) -> int:
    """
    Display all recording sessions.

    Returns the session count.
    """
    console = Console()
    sessions = store.sessions()

    if not sessions:
        console.print("[dim]No sessions recorded yet.[/dim]")
        return 0

    table = Table(title="Sessions")
    table.add_column("ID", style="dim")
    table.add_column("Project")
    table.add_column("Started")
    table.add_column("Ended")
    table.add_column("Snapshots", justify="right")
    table.add_column("Files", justify="right")

    for session in sessions:
        table.add_row(
            session.id,
            session.project_name,
            _short_time(session.started_at),
            _short_time(session.ended_at) if session.ended_at else "[yellow]open[/yellow]",
            str(session.total_snapshots) if not session.is_open else "-",
            str(len(session.files_touched)) if not session.is_open else "-",
        )

    console.print(table)
    return len(sessions)
