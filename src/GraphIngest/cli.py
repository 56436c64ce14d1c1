"""Typer CLI for GraphIngest.

Provides:
- Global options (--config, -v/-vv, --version)
- ``iiif``: one pass of the IIIF Change Discovery pipeline
- ``queue-size``: number of pending queue items
- ``prune``: remove stored resources that are no longer queued
- ``clear``: remove every stored resource
- ``schema``: JSON Schema of the configuration

Example:
    $ graphingest --config graphingest.yaml iiif --batch-size 500
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Optional

import typer
from rich.console import Console
from rich.table import Table

from . import __version__, tasks
from .config import GraphIngestConfig, export_config_schema, load_config
from .datastore import Connection, Queue, Registry
from .errors import GraphIngestError
from .filestore import Filestore
from .logging_config import setup_logging
from .pipeline import run_iiif_pipeline

_console = Console()


class CliContext:
    """State shared by the commands of one invocation."""

    def __init__(self, config: Optional[Path] = None, verbosity: int = 0) -> None:
        self.config = config
        self.verbosity = verbosity
        self.console = _console

    def load(self, overrides: Optional[Dict[str, Any]] = None) -> GraphIngestConfig:
        """Load the configuration and configure logging; exit 2 on invalid settings."""
        try:
            settings = load_config(self.config, cli_overrides=overrides)
        except GraphIngestError as e:
            self.console.print(f"[red]Error loading settings: {e}[/red]")
            raise typer.Exit(2)

        if self.verbosity >= 2:
            settings.logging.level = "DEBUG"
        elif self.verbosity == 1:
            settings.logging.level = "INFO"
        setup_logging(settings.logging)
        return settings


app = typer.Typer(
    name="graphingest",
    help="GraphIngest - incremental ingestion of RDF resources",
    no_args_is_help=True,
)

_context: CliContext | None = None


def get_context() -> CliContext:
    if _context is None:
        raise RuntimeError("CLI context not initialized")
    return _context


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"graphingest {__version__}")
        raise typer.Exit(0)


@app.callback()
def main(
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        envvar="GRAPHINGEST_CONFIG",
        help="Path to config file (YAML or JSON)",
    ),
    verbosity: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Increase verbosity (-v for INFO, -vv for DEBUG)",
    ),
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
) -> None:
    """GraphIngest CLI. Global options go before the subcommand."""
    global _context
    _context = CliContext(config=config, verbosity=verbosity)


@app.command()
def iiif(
    collection_iri: Optional[str] = typer.Option(
        None, "--collection-iri", help="IIIF Change Discovery collection to walk"
    ),
    batch_size: Optional[int] = typer.Option(
        None, "--batch-size", min=1, help="Maximum number of queue items to process"
    ),
    concurrency: Optional[int] = typer.Option(
        None, "--concurrency", min=1, help="Number of concurrent requests"
    ),
    type: Optional[str] = typer.Option(None, "--type", help="Queue partition"),
) -> None:
    """Discover changes and store the changed resources."""
    ctx = get_context()
    settings = ctx.load(
        {
            "discovery": {"collection_iri": collection_iri},
            "storer": {
                "batch_size": batch_size,
                "number_of_concurrent_requests": concurrency,
                "type": type,
            },
        }
    )

    try:
        result = run_iiif_pipeline(settings)
    except GraphIngestError as e:
        ctx.console.print(f"[red]✗ {e}[/red]")
        raise typer.Exit(1)

    table = Table(title="IIIF run")
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    table.add_row("Initial queue size", str(result.initial_queue_size))
    table.add_row("Discovered changes", "yes" if result.discovered else "no")
    if result.stored is not None:
        table.add_row("Stored", str(result.stored.saved))
        table.add_row("Removed", str(result.stored.removed))
        table.add_row("Retried", str(result.stored.retried))
        table.add_row("Abandoned", str(result.stored.abandoned))
    table.add_row("Final queue size", str(result.final_queue_size))
    ctx.console.print(table)


@app.command("queue-size")
def queue_size(type: Optional[str] = typer.Option(None, "--type", help="Queue partition")) -> None:
    """Print the number of pending queue items."""
    ctx = get_context()
    settings = ctx.load()
    with Connection(settings.datastore.path, wal_mode=settings.datastore.wal_mode) as connection:
        size = tasks.get_queue_size(Queue(connection), type)
    typer.echo(str(size))


@app.command()
def prune(type: Optional[str] = typer.Option(None, "--type", help="Registry partition")) -> None:
    """Remove stored resources that are registered but no longer queued."""
    ctx = get_context()
    settings = ctx.load()
    filestore = Filestore(settings.filestore.dir, extension=settings.filestore.extension)
    with Connection(settings.datastore.path, wal_mode=settings.datastore.wal_mode) as connection:
        removed = tasks.remove_obsolete_resources(Registry(connection), filestore, type)
    ctx.console.print(f"[green]✓ Removed {len(removed)} obsolete resources[/green]")


@app.command()
def clear(
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
) -> None:
    """Remove every stored resource."""
    ctx = get_context()
    settings = ctx.load()
    filestore = Filestore(settings.filestore.dir, extension=settings.filestore.extension)
    if not yes:
        typer.confirm(f'Remove all resources in "{filestore.dir}"?', abort=True)
    tasks.remove_all_resources(filestore)
    ctx.console.print(f'[green]✓ Removed all resources in "{filestore.dir}"[/green]')


@app.command()
def schema() -> None:
    """Print the JSON Schema of the configuration."""
    typer.echo(json.dumps(export_config_schema(), indent=2))


__all__ = ["app", "CliContext", "get_context", "main"]
