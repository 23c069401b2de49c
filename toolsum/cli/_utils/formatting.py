"""Formatting utilities for CLI output using Rich."""

from typing import Any

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

# Reports go to stderr so stdout stays valid JSON
console = Console(stderr=True)


def print_table(
    headers: list[str],
    rows: list[list[str]],
    title: str | None = None,
) -> None:
    """Print a Rich table with headers and rows.

    Args:
        headers: Column headers for the table.
        rows: List of rows, where each row is a list of cell values.
        title: Optional title to display above the table.
    """
    table = Table(title=title)

    for header in headers:
        table.add_column(header)

    for row in rows:
        table.add_row(*row)

    console.print(table)


def print_stats(stats: dict[str, Any], title: str = "Statistics") -> None:
    """Print statistics in a panel, one `key: value` line each."""
    lines = [f"[bold]{key}:[/bold] {value}" for key, value in stats.items()]
    console.print(Panel("\n".join(lines), title=title))


def print_error(msg: str) -> None:
    console.print(f"[bold red]Error:[/bold red] {msg}")


def print_success(msg: str) -> None:
    console.print(f"[bold green]Success:[/bold green] {msg}")


def print_warning(msg: str) -> None:
    console.print(f"[bold yellow]Warning:[/bold yellow] {msg}")


def truncate(text: str, max_len: int = 50) -> str:
    """Truncate text to a maximum length with ellipsis."""
    if len(text) <= max_len:
        return text
    return text[: max_len - 3] + "..."


def format_ratio(ratio: float) -> str:
    """Format a 0-1 ratio as a percentage like "42%"."""
    return f"{ratio * 100:.0f}%"
