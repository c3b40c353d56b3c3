"""Command-line interface for buildarea.

Commands:
- `buildarea reconcile`: Bring a cloned workspace forward to a target change
- `buildarea status`: Report whether a reconciliation marker is present
- `buildarea strategy`: Show the clone strategy for a directive

Example:
    $ buildarea reconcile -w /build/ws --target-stream //mw/Bfoo --target-change 1200 \\
        --source-stream //mw/Bmain --source-change 1100
    $ buildarea status -w /build/ws
"""

from __future__ import annotations

import logging
from pathlib import Path

import typer
from rich.table import Table

from buildarea import __version__
from buildarea.cli_utils import (
    EXIT_CONFIG_ERROR,
    EXIT_ERROR,
    _error,
    _info,
    _setup_logging,
    _success,
    _warning,
    console,
)
from buildarea.core.config import DEFAULT_CONFIG_FILENAME, BuildAreaConfig, load_config
from buildarea.core.exceptions import BuildAreaError, ConfigError
from buildarea.p4.client import P4Client
from buildarea.reconcile.engine import is_reconciliation_in_progress, plan_and_execute_reconciliation
from buildarea.reconcile.marker import ReconciliationMarker
from buildarea.reconcile.models import BranchState, ReconciliationReport
from buildarea.selection import parse_clone_directive

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="buildarea",
    help="Prepare cloned build workspaces by reconciling them against a target branch",
    no_args_is_help=True,
)


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"buildarea {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
) -> None:
    """buildarea command-line interface."""


def _load_cli_config(config: Path | None, workspace: Path) -> BuildAreaConfig:
    """Load an explicit config file, else ``buildarea.yaml`` in the workspace, else defaults."""
    if config is not None:
        return load_config(config)
    default = workspace / DEFAULT_CONFIG_FILENAME
    if default.is_file():
        return load_config(default)
    return load_config()


def _print_report(report: ReconciliationReport) -> None:
    table = Table(title=report.summary())
    table.add_column("Item", style="cyan")
    table.add_column("Count", justify="right")
    execution = report.execution
    table.add_row("Files to sync", str(report.will_sync_count))
    table.add_row("Unchanged", str(report.unchanged_count))
    table.add_row("Changed", str(report.changed_count))
    table.add_row("Deleted", str(report.deleted_count))
    table.add_row("Ledger reset to #0", str(execution.changed_reset))
    table.add_row("Local files removed", str(len(execution.removed_files)))
    table.add_row("Empty dirs removed", str(len(execution.removed_dirs)))
    table.add_row("Ledger advanced", str(execution.unchanged_advanced))
    table.add_row("Deletes applied", str(execution.deletes_applied))
    console.print(table)

    for path in report.failed_removals:
        _warning(f"Failed to remove {path}")


@app.command("reconcile")
def reconcile_command(
    workspace: Path = typer.Option(
        Path("."),
        "--workspace",
        "-w",
        help="Root of the cloned workspace (default: current directory)",
    ),
    target_stream: str = typer.Option(..., "--target-stream", help="Branch the job builds on"),
    target_change: int = typer.Option(..., "--target-change", help="Change level the job builds at"),
    source_stream: str = typer.Option(..., "--source-stream", help="Branch the clone came from"),
    source_change: int = typer.Option(..., "--source-change", help="Change level of the clone's source"),
    fixes_stream: str | None = typer.Option(None, "--fixes-stream", help="Fixes overlay branch"),
    fixes_change: int | None = typer.Option(None, "--fixes-change", help="Change level of the fixes overlay"),
    delete_change: int | None = typer.Option(
        None,
        "--delete-change",
        help="Target change level for delete detection (default: --target-change)",
    ),
    config: Path | None = typer.Option(None, "--config", "-c", help="Path to buildarea.yaml"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Only log warnings and errors"),
) -> None:
    """Bring a cloned workspace forward to the target branch and change level.

    Unchanged files get their ledger entry advanced without a content
    transfer; changed files are reset and removed so the following sync
    fetches them. Any failure aborts with a non-zero exit code.
    """
    _setup_logging(verbose=verbose, quiet=quiet)

    workspace = workspace.resolve()
    if not workspace.is_dir():
        _error(f"Workspace is not a directory: {workspace}")
        raise typer.Exit(code=EXIT_ERROR)

    if (fixes_stream is None) != (fixes_change is None):
        _error("--fixes-stream and --fixes-change must be given together")
        raise typer.Exit(code=EXIT_ERROR)

    try:
        cfg = _load_cli_config(config, workspace)
    except ConfigError as e:
        _error(str(e))
        raise typer.Exit(code=EXIT_CONFIG_ERROR) from None

    try:
        source = BranchState(source_stream, source_change)
        target = BranchState(target_stream, target_change)
        overlay = BranchState(fixes_stream, fixes_change) if fixes_stream and fixes_change is not None else None
    except ValueError as e:
        _error(str(e))
        raise typer.Exit(code=EXIT_ERROR) from None

    client = P4Client(cfg.p4, cwd=workspace)
    try:
        report = plan_and_execute_reconciliation(
            client,
            workspace,
            source,
            target,
            overlay,
            delete_change=delete_change,
            config=cfg,
        )
    except BuildAreaError as e:
        logger.debug("Reconciliation failed", exc_info=True)
        _error(f"Reconciliation of {workspace} from {source} to {target} failed: {e}")
        raise typer.Exit(code=EXIT_ERROR) from None

    _print_report(report)
    if report.failed_removals:
        raise typer.Exit(code=EXIT_ERROR)
    _success("Reconciliation complete")


@app.command("status")
def status_command(
    workspace: Path = typer.Option(
        Path("."),
        "--workspace",
        "-w",
        help="Root of the workspace (default: current directory)",
    ),
    config: Path | None = typer.Option(None, "--config", "-c", help="Path to buildarea.yaml"),
) -> None:
    """Report whether a reconciliation marker is present in the workspace."""
    workspace = workspace.resolve()
    try:
        cfg = _load_cli_config(config, workspace)
    except ConfigError as e:
        _error(str(e))
        raise typer.Exit(code=EXIT_CONFIG_ERROR) from None

    if not is_reconciliation_in_progress(workspace, cfg):
        _info(f"No reconciliation in progress in {workspace}")
        return

    details = ReconciliationMarker(workspace, cfg.marker_file).read()
    _warning(f"Reconciliation in progress (or interrupted) in {workspace}")
    for key, value in details.items():
        console.print(f"  {key}: {value}")


@app.command("strategy")
def strategy_command(
    directive: str = typer.Argument(..., help="Clone directive text, e.g. 'parent incr'"),
    sterile: bool = typer.Option(False, "--sterile", help="Job runs sterile"),
) -> None:
    """Show the clone strategy a directive selects."""
    parsed = parse_clone_directive(directive, sterile=sterile)
    console.print(f"strategy: {parsed.strategy.value}")
    console.print(f"clonefrom: {parsed.clonefrom or '(own cluster)'}")
    console.print(f"args: {', '.join(sorted(parsed.args)) or '(none)'}")


if __name__ == "__main__":
    app()
