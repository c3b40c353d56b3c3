"""Shared helpers for the buildarea CLI: exit codes, console output, logging."""

import logging

from rich.console import Console
from rich.logging import RichHandler

__all__ = [
    "EXIT_SUCCESS",
    "EXIT_ERROR",
    "EXIT_CONFIG_ERROR",
    "console",
    "_setup_logging",
    "_error",
    "_warning",
    "_info",
    "_success",
]

EXIT_SUCCESS = 0
EXIT_ERROR = 1
EXIT_CONFIG_ERROR = 2

console = Console()


def _setup_logging(verbose: bool = False, quiet: bool = False) -> None:
    """Configure root logging with a rich handler.

    Args:
        verbose: Log at DEBUG level.
        quiet: Only log warnings and errors (ignored when verbose).

    """
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.WARNING
    else:
        level = logging.INFO

    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=verbose)],
        force=True,
    )


def _error(message: str) -> None:
    console.print(f"[red]Error:[/red] {message}")


def _warning(message: str) -> None:
    console.print(f"[yellow]Warning:[/yellow] {message}")


def _info(message: str) -> None:
    console.print(f"[blue]{message}[/blue]")


def _success(message: str) -> None:
    console.print(f"[green]{message}[/green]")
