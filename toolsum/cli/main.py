"""Main CLI entry point for toolsum."""

import logging

import click


def get_version() -> str:
    """Get the current version."""
    from toolsum import __version__

    return __version__


@click.group()
@click.version_option(version=get_version(), prog_name="toolsum")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.pass_context
def main(ctx: click.Context, verbose: bool) -> None:
    """toolsum - Tool-call summarization for LLM conversation histories.

    \b
    Examples:
        toolsum optimize chat.json -o out.json    Summarize old tool calls
        toolsum optimize chat.json --cache c.json Reuse summaries across runs
        toolsum cache stats c.json                Show cache statistics
    """
    ctx.ensure_object(dict)
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s:%(name)s:%(message)s",
    )


# Import subcommands - these register themselves with the main group
def _register_commands() -> None:
    """Register all subcommand groups."""
    from . import (
        cache,  # noqa: F401
        optimize,  # noqa: F401
    )


_register_commands()

if __name__ == "__main__":
    main()
