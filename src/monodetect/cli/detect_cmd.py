"""CLI detect command: classify entrypoints as changed between two refs."""

from __future__ import annotations

import asyncio
import contextlib
import signal
import uuid
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from monodetect.errors import DetectError
from monodetect.models import DetectResult

console = Console()
err_console = Console(stderr=True)

OUTPUT_FORMATS = ("json", "table")


async def _run_until_signalled(detector) -> DetectResult:
    """Run the detector, turning SIGINT/SIGTERM into a cooperative cancel."""
    cancel = asyncio.Event()
    loop = asyncio.get_running_loop()
    signals = (signal.SIGINT, signal.SIGTERM)
    for sig in signals:
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, cancel.set)
    try:
        return await detector.run(cancel)
    finally:
        for sig in signals:
            with contextlib.suppress(NotImplementedError):
                loop.remove_signal_handler(sig)


def render_table(result: DetectResult) -> Table:
    table = Table(title=f"Changes at {result.git.ref} ({result.git.hash[:12]})")
    table.add_column("Entrypoint")
    table.add_column("Changed")
    table.add_column("Reasons", style="dim")
    for entry in result.entrypoints:
        changed = "[red]yes[/red]" if entry.changed else "[green]no[/green]"
        table.add_row(entry.path, changed, ", ".join(entry.reasons))
    return table


def detect_cmd(
    entrypoint: Annotated[
        list[str],
        typer.Option("--entrypoint", "-e", help="Entrypoint directory (repeatable)."),
    ],
    path: Annotated[Path, typer.Option(help="Path to the Go module or workspace root.")] = Path(
        "."
    ),
    base_ref: Annotated[str, typer.Option(help="Base git reference.")] = "main",
    compare_ref: Annotated[str, typer.Option(help="Git reference to compare.")] = "HEAD",
    toolchain_invalidates: Annotated[
        bool,
        typer.Option(help="Treat a toolchain directive change as affecting every entrypoint."),
    ] = False,
    max_workers: Annotated[int, typer.Option(help="Concurrent entrypoint walks.")] = 8,
    log_dir: Annotated[
        Path | None, typer.Option(help="Write JSONL run events to this directory.")
    ] = None,
    output_format: Annotated[
        str, typer.Option("--format", help="Output format: json or table.")
    ] = "json",
    fail_on_change: Annotated[
        bool, typer.Option(help="Exit with code 2 when any entrypoint changed.")
    ] = False,
) -> None:
    """Detect which entrypoints changed between two git references."""
    from monodetect.config import Config
    from monodetect.detect import Detector
    from monodetect.logging.logger import RunLogger

    if output_format not in OUTPUT_FORMATS:
        raise typer.BadParameter(
            f"expected one of {', '.join(OUTPUT_FORMATS)}", param_hint="--format"
        )

    config = Config(
        path=path,
        base_ref=base_ref,
        compare_ref=compare_ref,
        entrypoints=entrypoint,
        toolchain_invalidates=toolchain_invalidates,
        max_workers=max_workers,
        log_dir=log_dir,
    )
    config.ensure_dirs()
    run_logger = RunLogger(log_dir, run_id=str(uuid.uuid4())) if log_dir else None

    try:
        detector = Detector.from_config(config, run_logger=run_logger)
        result = asyncio.run(_run_until_signalled(detector))
    except DetectError as e:
        err_console.print(f"[red]Detection failed:[/red] {e}")
        raise typer.Exit(code=1) from e

    if output_format == "table":
        console.print(render_table(result))
    else:
        typer.echo(result.model_dump_json(indent=2))

    if fail_on_change and result.changed:
        raise typer.Exit(code=2)
