"""Replay command - rebuild a file from its recorded edits."""

from __future__ import annotations

import json

import click
from rich.console import Console
from rich.table import Table

from ..snapshot.player import ReplayPlayer
from ..snapshot.storage import ChainStore


def run_replay(
    store: ChainStore,
    filename: str,
    *,
    at_ms: int | None = None,
    show_stats: bool = False,
    output_json: bool = False,
) -> int:
    """
    Print a file as reconstructed from replay events, or playback stats.

    Returns 0 on success, 1 if the file has no replay events.
    """
    console = Console()
    player = ReplayPlayer(store.replay_events(filename=filename), filename)

    if len(player) == 0:
        console.print(f"[dim]No replay events for {filename}.[/dim]", highlight=False)
        return 1

    if show_stats:
        stats = player.stats()
        if output_json:
            click.echo(json.dumps(stats.to_dict(), indent=2))
            return 0

        table = Table(title=f"Replay: {filename}")
        table.add_column("Metric", style="bold")
        table.add_column("Value", justify="right")
        table.add_row("Events", str(stats.event_count))
        table.add_row("Duration", f"{stats.duration_ms / 1000:.1f}s")
        table.add_row("Characters inserted", f"{stats.chars_inserted:,}")
        table.add_row("Characters deleted", f"{stats.chars_deleted:,}")
        for label, count in sorted(stats.labels.items()):
            table.add_row(f"  {label}", str(count))
        table.add_row("Final lines", str(stats.final_lines))
        console.print(table)
        return 0

    text = player.final_text() if at_ms is None else player.text_at(at_ms)
    click.echo(text, nl=not text.endswith("\n"))
    return 0
