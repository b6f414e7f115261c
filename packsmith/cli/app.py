"""Main Typer application — imports and registers all CLI commands.

Entry point: ``packsmith`` (configured via pyproject.toml scripts).
"""

from __future__ import annotations

import logging

import typer
from rich.logging import RichHandler

from packsmith.cli.commands.build import build_cmd
from packsmith.cli.commands.inspect_builder import inspect_builder_cmd
from packsmith.cli.commands.package import package_cmd
from packsmith.config import PacksmithConfig

app = typer.Typer(
    name="packsmith",
    help="packsmith: build applications with Cloud Native Buildpacks.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)

# Register subcommands
app.command(name="build", help="Build an application image.")(build_cmd)
app.command(name="package-buildpack", help="Create a buildpack package image.")(package_cmd)
app.command(name="inspect-builder", help="Show builder stack, run image and buildpacks.")(
    inspect_builder_cmd
)


@app.callback()
def configure(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Configure logging from PACKSMITH_LOG_LEVEL (or --verbose)."""
    level = "DEBUG" if verbose else PacksmithConfig().log_level.upper()
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
