"""CLI utilities for formatting output."""

from .formatting import (
    console,
    format_ratio,
    print_error,
    print_stats,
    print_success,
    print_table,
    print_warning,
    truncate,
)

__all__ = [
    "console",
    "print_table",
    "print_stats",
    "print_error",
    "print_success",
    "print_warning",
    "truncate",
    "format_ratio",
]
