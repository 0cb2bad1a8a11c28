"""Record command - watch a workspace and build the snapshot chain."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

from rich.console import Console

from ..config import CodeProofConfig
from ..models import Snapshot
from ..snapshot.storage import ChainStore
from ..watcher import run_watch_loop

CHANGE_ICONS = {
    "typing": "~",
    "delete": "-",
    "refactor": "*",
    "paste": "+",
}


def format_snapshot_line(snapshot: Snapshot) -> str:
    icon = CHANGE_ICONS.get(snapshot.change_type.value, "?")
    return (
        f"{icon} {snapshot.filename} [dim]{snapshot.change_type.value}[/dim] "
        f"[green]+{snapshot.lines_added}[/green] [red]-{snapshot.lines_removed}[/red]"
    )


def run_record(
    workspace: Path,
    store: ChainStore,
    config: CodeProofConfig,
    *,
    project_name: str | None = None,
) -> int:
    """
    Record edits in the workspace until interrupted (Ctrl+C).

    Returns the number of snapshots recorded.
    """
    console = Console(stderr=True)

    console.print(f"[bold]Recording[/bold] {workspace}")
    console.print(f"  Snapshot interval: {config.snapshot_interval:g}s")
    console.print(f"  Paste threshold: {config.paste_threshold} chars")
    console.print(f"  Storage: {store.storage_dir}")
    console.print()
    console.print("[dim]Press Ctrl+C to stop recording[/dim]")
    console.print()

    def on_snapshot(snapshot: Snapshot) -> None:
        timestamp = datetime.now().strftime("%H:%M:%S")
        console.print(f"[dim]{timestamp}[/dim] {format_snapshot_line(snapshot)}")

    session = run_watch_loop(
        workspace,
        store,
        config,
        project_name=project_name,
        on_snapshot=on_snapshot,
    )

    console.print()
    if session is None:
        console.print("[bold]Stopped.[/bold]")
        return 0
    console.print(
        f"[bold]Stopped.[/bold] Session {session.id}: {session.total_snapshots} snapshots "
        f"across {len(session.files_touched)} files."
    )
    return session.total_snapshots
