"""Shared Rich console utilities for music-search.

Provides a global Rich console instance and helpers for consistent
output formatting across all CLI commands.
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from typing import Any

from rich.console import Console
from rich.status import Status
from rich.table import Table

# Global console instance (initialized in CLI)
_console: Console | None = None


def get_console() -> Console:
    """Get the global Rich console instance.

    Raises:
        RuntimeError: If console not initialized (should only happen in tests)
    """
    if _console is None:
        raise RuntimeError("Console not initialized. Call set_console() first.")
    return _console


def set_console(console: Console) -> None:
    global _console
    _console = console


@contextmanager
def status(message: str, spinner: str = "dots") -> Iterator[Status]:
    """Create a Rich Status context for showing ongoing operations.

    Example:
        with status("Searching Spotify and Discogs...") as st:
            # Do work
            st.update("Fetching details...")
    """
    with get_console().status(message, spinner=spinner) as st:
        yield st


def print(*args: Any, **kwargs: Any) -> None:
    """Print to the global console."""
    get_console().print(*args, **kwargs)


def print_table(title: str, columns: Sequence[str], rows: Sequence[Sequence[Any]]) -> None:
    """Print a simple table; None cells render as "-"."""
    table = Table(title=title)
    for column in columns:
        table.add_column(column)
    for row in rows:
        table.add_row(*("-" if cell is None else str(cell) for cell in row))
    get_console().print(table)


def print_error(message: str) -> None:
    get_console().print(f"[red]Error: {message}[/red]")


def print_warning(message: str) -> None:
    get_console().print(f"[yellow]Warning: {message}[/yellow]")


def print_success(message: str) -> None:
    get_console().print(f"[green]{message}[/green]")
