"""Summary cache CLI commands."""

from __future__ import annotations

import json
from pathlib import Path

import click

from ..cache import SummaryCache
from ..exceptions import CacheError
from ._utils.formatting import print_error, print_stats, print_success
from .main import main


def cache_path_argument(fn):
    """Shared CACHE_FILE argument for cache commands."""
    return click.argument("cache_file", type=click.Path(dir_okay=False))(fn)


def open_cache(cache_file: str) -> SummaryCache:
    cache = SummaryCache()
    try:
        cache.load(cache_file)
    except CacheError as e:
        print_error(str(e))
        raise SystemExit(1) from e
    return cache


@main.group()
def cache() -> None:
    """Inspect and manage a JSON summary cache file.

    \b
    Examples:
        toolsum cache stats summaries.json
        toolsum cache export summaries.json -o backup.json
        toolsum cache clear summaries.json --yes
    """


@cache.command("stats")
@cache_path_argument
def cache_stats(cache_file: str) -> None:
    """Show statistics for a cache file."""
    stats = open_cache(cache_file).stats()
    print_stats(
        {
            "file": cache_file,
            "entries": stats["size"],
            "sample keys": ", ".join(stats["keys"]) or "-",
        },
        title="Summary Cache",
    )


@cache.command("export")
@cache_path_argument
@click.option("--output", "-o", type=click.Path(), help="Write the mapping here instead of stdout.")
def cache_export(cache_file: str, output: str | None) -> None:
    """Export fingerprint -> summary entries as JSON."""
    data = open_cache(cache_file).export_entries()
    text = json.dumps(data, indent=2, sort_keys=True)
    if output:
        Path(output).write_text(text + "\n", encoding="utf-8")
        print_success(f"Exported {len(data)} entries to {output}")
    else:
        click.echo(text)


@cache.command("clear")
@cache_path_argument
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation.")
def cache_clear(cache_file: str, yes: bool) -> None:
    """Remove every entry from a cache file."""
    cache = open_cache(cache_file)
    count = len(cache)
    if not yes and count and not click.confirm(f"Delete {count} cached summaries?"):
        return
    cache.clear()
    try:
        cache.save(cache_file)
    except CacheError as e:
        print_error(str(e))
        raise SystemExit(1) from e
    print_success(f"Cleared {count} entries from {cache_file}")
