"""Root Typer app for the monodetect CLI."""

from __future__ import annotations

import logging
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler

app = typer.Typer(
    name="monodetect",
    help="monodetect: find Go monorepo entrypoints affected by git changes.",
    no_args_is_help=True,
)

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


def configure_logging(level: str) -> None:
    """Send log records to stderr so stdout stays machine-readable."""
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


@app.callback()
def main(
    log_level: Annotated[
        str, typer.Option(help="Log level: DEBUG, INFO, WARNING or ERROR.")
    ] = "WARNING",
) -> None:
    """Configure logging for every command."""
    level = log_level.upper()
    if level not in LOG_LEVELS:
        raise typer.BadParameter(
            f"expected one of {', '.join(LOG_LEVELS)}", param_hint="--log-level"
        )
    configure_logging(level)


def _register_commands() -> None:
    """Register all CLI commands."""
    from monodetect.cli.detect_cmd import detect_cmd
    from monodetect.cli.version_cmd import version_cmd

    app.command(name="detect")(detect_cmd)
    app.command(name="version")(version_cmd)


_register_commands()
