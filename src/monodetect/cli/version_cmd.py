"""CLI version command."""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

import typer


def package_version() -> str:
    try:
        return version("monodetect")
    except PackageNotFoundError:
        return "dev"


def version_cmd() -> None:
    """Print version details."""
    typer.echo(f"app: monodetect\nversion: {package_version()}")
