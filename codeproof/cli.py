"""CLI entrypoint for codeproof."""

import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler

from . import __version__
from .config import DEFAULT_STORAGE_LOCATION, ConfigError, load_config
from .snapshot.storage import FlagStoreError


def _auto_detect_workspace(start: Path) -> Path:
    """Nearest directory holding .codeproof or .git, walking up from `start`."""
    cur = start.resolve()
    for p in (cur, *cur.parents):
        if (p / DEFAULT_STORAGE_LOCATION).is_dir() or (p / ".git").exists():
            return p
    return cur


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=verbose)],
        force=True,
    )


@click.group()
@click.version_option(__version__, prog_name="codeproof")
@click.option(
    "--workspace",
    "-w",
    type=click.Path(exists=False, file_okay=False, dir_okay=True, path_type=Path),
    default=None,
    help="Workspace root (defaults to the nearest folder with .codeproof or .git)",
)
@click.option("--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, workspace: Path | None, verbose: bool) -> None:
    """codeproof - Tamper-evident record of how code was written.

    Records edits as hash-chained snapshots and derives advisory flags
    about development patterns.
    """
    _configure_logging(verbose)
    ctx.ensure_object(dict)

    if workspace is None:
        workspace = _auto_detect_workspace(Path.cwd())
    if not workspace.exists() or not workspace.is_dir():
        raise click.BadParameter(f"Directory '{workspace}' does not exist.", param_hint="--workspace / -w")

    try:
        config = load_config(workspace)
    except ConfigError as e:
        raise click.ClickException(f"Invalid configuration: {e}") from e

    from .snapshot.storage import ChainStore

    ctx.obj["workspace"] = workspace.resolve()
    ctx.obj["config"] = config
    ctx.obj["store"] = ChainStore.for_workspace(workspace.resolve(), config)


# -----------------------------------------------------------------------------
# Recording
# -----------------------------------------------------------------------------


@cli.command()
@click.option("--project", "project_name", default=None, help="Project name for the session")
@click.pass_context
def record(ctx: click.Context, project_name: str | None) -> None:
    """Watch the workspace and record snapshots until Ctrl+C.

    Examples:

        codeproof record

        codeproof -w ./assignment record --project lab3
    """
    from .commands.record_cmd import run_record

    run_record(ctx.obj["workspace"], ctx.obj["store"], ctx.obj["config"], project_name=project_name)


@cli.command("lsp")
@click.option(
    "--transport",
    type=click.Choice(["stdio", "tcp"]),
    default="stdio",
    show_default=True,
    help="Transport method (stdio for editors, tcp for debugging)",
)
@click.option("--project", "project_name", default=None, help="Project name for the session")
@click.pass_context
def lsp(ctx: click.Context, transport: str, project_name: str | None) -> None:
    """Start the LSP server and record edits from the editor.

    Configure the editor to launch:

        codeproof lsp --transport stdio
    """
    from .lsp import start_server

    start_server(
        ctx.obj["workspace"],
        ctx.obj["store"],
        ctx.obj["config"],
        transport=transport,
        project_name=project_name,
    )


# -----------------------------------------------------------------------------
# Inspection
# -----------------------------------------------------------------------------


@cli.command("log")
@click.option("--file", "filename", default=None, help="Only snapshots of this workspace-relative file")
@click.option("--session", "session_id", default=None, help="Only snapshots from this session")
@click.option("--last", "last_n", type=int, default=None, help="Show only the last N snapshots")
@click.option("--json", "output_json", is_flag=True, help="Output snapshots as JSON")
@click.pass_context
def log_(
    ctx: click.Context,
    filename: str | None,
    session_id: str | None,
    last_n: int | None,
    output_json: bool,
) -> None:
    """List recorded snapshots in timestamp order.

    Examples:

        codeproof log --last 10

        codeproof log --file src/main.py --json
    """
    from .commands.log_cmd import run_log

    run_log(
        ctx.obj["store"],
        filename=filename,
        session_id=session_id,
        last_n=last_n,
        output_json=output_json,
    )


@cli.command()
@click.pass_context
def summary(ctx: click.Context) -> None:
    """Display snapshot, session and chain summary."""
    from .commands.log_cmd import run_summary

    run_summary(ctx.obj["store"])


@cli.command()
@click.option("--json", "output_json", is_flag=True, help="Output the report as JSON")
@click.pass_context
def verify(ctx: click.Context, output_json: bool) -> None:
    """Recompute the hash chain. Exits 1 if it is broken."""
    from .commands.log_cmd import run_verify

    exit_code = run_verify(ctx.obj["store"], output_json=output_json)
    sys.exit(exit_code)


@cli.command()
@click.pass_context
def sessions(ctx: click.Context) -> None:
    """List recording sessions."""
    from .commands.log_cmd import run_sessions

    run_sessions(ctx.obj["store"])


# -----------------------------------------------------------------------------
# Flags
# -----------------------------------------------------------------------------


@cli.command()
@click.option("--session", "session_id", default=None, help="Only analyze this session")
@click.option("--all", "include_dismissed", is_flag=True, help="Include dismissed flags")
@click.option("--clean", is_flag=True, help="Clean report view: evidence only, no flags")
@click.option("--json", "output_json", is_flag=True, help="Output flags as JSON")
@click.pass_context
def flags(
    ctx: click.Context,
    session_id: str | None,
    include_dismissed: bool,
    clean: bool,
    output_json: bool,
) -> None:
    """Analyze snapshots and show flags with their reviews."""
    from .commands.flags_cmd import run_flags

    try:
        run_flags(
            ctx.obj["store"],
            session_id=session_id,
            include_dismissed=include_dismissed,
            clean=clean,
            output_json=output_json,
        )
    except FlagStoreError as e:
        raise click.ClickException(f"Unreadable flag reviews: {e}") from e


@cli.command()
@click.argument("flag_id")
@click.option("--session", "session_id", default=None, help="Session the flag was listed for (flags --session)")
@click.option("--context", "context", default=None, help="Explain the flagged activity")
@click.option("--acknowledge", is_flag=True, help="Mark the flag as seen")
@click.option("--dismiss", is_flag=True, help="Exclude the flag from annotated reports")
@click.pass_context
def review(
    ctx: click.Context,
    flag_id: str,
    session_id: str | None,
    context: str | None,
    acknowledge: bool,
    dismiss: bool,
) -> None:
    """Review a flag: add context, acknowledge or dismiss it.

    Examples:

        codeproof review 3f2a9c1d0b7e4a55 --context "Pasted from the lecture template"

        codeproof review 3f2a9c1d0b7e4a55 --dismiss
    """
    if sum([context is not None, acknowledge, dismiss]) > 1:
        raise click.UsageError("Use only one of --context, --acknowledge, --dismiss.")

    from .commands.flags_cmd import run_review

    try:
        exit_code = run_review(
            ctx.obj["store"],
            flag_id,
            session_id=session_id,
            context=context,
            acknowledge=acknowledge,
            dismiss=dismiss,
        )
    except FlagStoreError as e:
        raise click.ClickException(f"Unreadable flag reviews: {e}") from e
    sys.exit(exit_code)


# -----------------------------------------------------------------------------
# Replay
# -----------------------------------------------------------------------------


@cli.command()
@click.argument("filename")
@click.option("--at", "at_ms", type=int, default=None, help="Reconstruct as of this epoch-ms timestamp")
@click.option("--stats", "show_stats", is_flag=True, help="Show playback statistics instead of text")
@click.option("--json", "output_json", is_flag=True, help="Output statistics as JSON")
@click.pass_context
def replay(
    ctx: click.Context,
    filename: str,
    at_ms: int | None,
    show_stats: bool,
    output_json: bool,
) -> None:
    """Rebuild FILENAME from its recorded edits."""
    from .commands.replay_cmd import run_replay

    exit_code = run_replay(
        ctx.obj["store"],
        filename,
        at_ms=at_ms,
        show_stats=show_stats,
        output_json=output_json,
    )
    sys.exit(exit_code)


def main() -> None:
    """Main entrypoint."""
    cli()


if __name__ == "__main__":
    main()
