"""Flag commands - analyze the snapshot log and review flags."""

from __future__ import annotations

import json

import click
from rich.console import Console
from rich.table import Table

from ..flags.review import FlagNotFoundError, FlagReview
from ..models import FlagSeverity, FlagWithContext
from ..snapshot.storage import ChainStore

SEVERITY_STYLES = {
    FlagSeverity.HIGH: "bold red",
    FlagSeverity.MEDIUM: "yellow",
    FlagSeverity.LOW: "cyan",
    FlagSeverity.INFO: "dim",
}


def run_flags(
    store: ChainStore,
    *,
    session_id: str | None = None,
    include_dismissed: bool = False,
    clean: bool = False,
    output_json: bool = False,
) -> int:
    """
    Analyze snapshots and display flags with their reviews.

    Returns the number of flags displayed.
    """
    console = Console()
    review = FlagReview(store)

    if clean:
        flags = review.report_flags("clean", session_id)
    elif include_dismissed:
        flags = review.load(session_id)
    else:
        flags = review.report_flags("annotated", session_id)

    if output_json:
        click.echo(json.dumps([f.to_dict() for f in flags], indent=2))
        return len(flags)

    if not flags:
        console.print("[dim]No flags.[/dim]")
        return 0

    table = Table(title="Flags")
    table.add_column("ID", style="dim", no_wrap=True)
    table.add_column("Severity")
    table.add_column("Category")
    table.add_column("File")
    table.add_column("Status")
    table.add_column("Description")

    for item in flags:
        flag = item.flag
        style = SEVERITY_STYLES.get(flag.severity, "")
        table.add_row(
            flag.id,
            f"[{style}]{flag.severity.value}[/{style}]" if style else flag.severity.value,
            flag.category.value,
            flag.filename,
            item.status.value,
            flag.description,
        )

    console.print(table)
    return len(flags)


def _print_review(console: Console, item: FlagWithContext) -> None:
    console.print(f"[bold]{item.id}[/bold] {item.flag.category.value}: {item.status.value}")
    if item.student_context:
        console.print(f"  Context: {item.student_context}", highlight=False)
    else:
        console.print(f"  [dim]Hint: {item.flag.suggested_context}[/dim]", highlight=False)


def run_review(
    store: ChainStore,
    flag_id: str,
    *,
    session_id: str | None = None,
    context: str | None = None,
    acknowledge: bool = False,
    dismiss: bool = False,
) -> int:
    """
    Record a review for one flag.

    Returns 0 on success, 1 if the flag does not exist or the input is invalid.
    """
    console = Console()
    review = FlagReview(store)

    try:
        if context is not None:
            item = review.add_context(flag_id, context, session_id)
        elif dismiss:
            item = review.dismiss(flag_id, session_id)
        elif acknowledge:
            item = review.acknowledge(flag_id, session_id)
        else:
            item = review.get(flag_id, session_id)
    except FlagNotFoundError:
        console.print(f"[red]No flag with id {flag_id}[/red]", highlight=False)
        return 1
    except ValueError as e:
        console.print(f"[red]{e}[/red]", highlight=False)
        return 1

    _print_review(console, item)
    return 0
