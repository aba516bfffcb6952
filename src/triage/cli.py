"""CLI interface for ci-triage."""

import logging
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from triage.artifacts import ArtifactClient
from triage.cache import FileCache, ValueCache
from triage.config import cutoff_timestamp, load_test_groups, parse_age, settings
from triage.db import db
from triage.db.index import BuildIndex
from triage.pipelines import DiscoveryPipeline, ExportOutputs, ExportPipeline, cleanup as run_cleanup
from triage.storage import get_object_store

logger = logging.getLogger(__name__)

# Create Typer app
app = typer.Typer(
    name="triage",
    help="Discover CI builds in object storage and export triage data",
)

console = Console()

WORKERS_OPTION = typer.Option(
    settings.num_workers,
    "--workers",
    "-w",
    min=1,
    help="Number of workers to spawn",
)
VERBOSE_OPTION = typer.Option(
    False,
    "--verbose",
    "-v",
    help="Enable verbose logging",
)


def _configure_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True)],
    )


@contextmanager
def _verbose_logging(verbose: bool) -> Iterator[None]:
    if not verbose:
        yield
        return
    root_logger = logging.getLogger()
    previous_level = root_logger.level
    root_logger.setLevel(logging.DEBUG)
    try:
        yield
    finally:
        root_logger.setLevel(previous_level)


def _cutoff(age: str) -> Optional[int]:
    try:
        return cutoff_timestamp(parse_age(age))
    except ValueError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1) from exc


@contextmanager
def _open_index(workers: int) -> Iterator[BuildIndex]:
    db.initialize(max_size=max(workers, 1) + 1)
    try:
        index = BuildIndex(db)
        index.initialize()
        yield index
    finally:
        db.close()


def _artifact_client() -> ArtifactClient:
    return ArtifactClient(get_object_store(), FileCache(settings.cache_dir))


@app.command()
def discover(
    configs: List[Path] = typer.Argument(
        ...,
        help="TestGrid configuration files listing build groups",
        exists=True,
        dir_okay=False,
    ),
    workers: int = WORKERS_OPTION,
    age: str = typer.Option(
        settings.age_limit,
        "--age",
        help="Index only builds that are younger than the threshold (0 disables)",
    ),
    verbose: bool = VERBOSE_OPTION,
):
    """
    Discover new builds from TestGrid configuration.

    Scans the object store locations of every build group and indexes builds
    that are not known yet.
    """
    created_after = _cutoff(age)
    with _verbose_logging(verbose):
        test_groups = load_test_groups(configs)
        console.print(f"\n[bold blue]Discovering builds in {len(test_groups)} group(s)[/bold blue]\n")

        with _open_index(workers) as index:
            pipeline = DiscoveryPipeline(
                index,
                _artifact_client(),
                num_workers=workers,
                created_after=created_after,
            )
            summary = pipeline.run(test_groups)

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Group", style="cyan")
    table.add_column("Listed", justify="right")
    table.add_column("Visited", justify="right")
    table.add_column("New", justify="right", style="green")
    table.add_column("Skipped", justify="right", style="yellow")
    for group in sorted(summary.groups, key=lambda g: g.name):
        table.add_row(
            group.name,
            str(group.listed),
            str(group.visited),
            str(group.discovered),
            str(group.skipped),
        )
    console.print(table)
    console.print(f"\n[dim]Discovered {summary.discovered} build(s) in {summary.elapsed:.1f}s[/dim]\n")


@app.command()
def export(
    builds: Optional[Path] = typer.Option(None, "--builds", help="File to save builds json"),
    tests: Optional[Path] = typer.Option(None, "--tests", help="File to save failures (newline-delimited json)"),
    summary: Optional[Path] = typer.Option(None, "--summary", help="File to save summary json"),
    workers: int = WORKERS_OPTION,
    age: str = typer.Option(
        settings.age_limit,
        "--age",
        help="Export only builds that are younger than the threshold (0 disables)",
    ),
    verbose: bool = VERBOSE_OPTION,
):
    """
    Generate files for triage.

    Writes the build list, the failure stream and the per-test summary.
    """
    created_after = _cutoff(age) or 0
    with _verbose_logging(verbose):
        with _open_index(workers) as index:
            indexed = index.find_builds(created_after)
            console.print(f"\n[bold blue]Exporting {len(indexed)} build(s)[/bold blue]\n")
            pipeline = ExportPipeline(
                index,
                _artifact_client(),
                ValueCache(settings.value_cache_dir),
                num_workers=workers,
            )
            result = pipeline.run(indexed, ExportOutputs(builds=builds, tests=tests, summary=summary))

    console.print(f"  ✓ Exported: [green]{result.exported}[/green]")
    console.print(f"  ⊘ Incomplete: [yellow]{result.incomplete}[/yellow]")
    console.print(f"  ✗ Failures: [red]{result.failures}[/red]")
    console.print(f"\n[dim]Done in {result.elapsed:.1f}s[/dim]\n")


@app.command()
def cleanup(
    age: str = typer.Option(
        settings.age_limit,
        "--age",
        help="Delete only builds that are older than the threshold",
    ),
    verbose: bool = VERBOSE_OPTION,
):
    """
    Delete cached data.

    Removes index rows and cached files of old builds; they can be downloaded again.
    """
    created_after = _cutoff(age)
    if created_after is None:
        console.print("[red]Error: cleanup requires a non-zero --age[/red]")
        raise typer.Exit(1)

    with _verbose_logging(verbose):
        with _open_index(1) as index:
            deleted = run_cleanup(
                index,
                ValueCache(settings.value_cache_dir),
                FileCache(settings.cache_dir),
                created_after,
            )

    console.print(f"\nDeleted [cyan]{deleted}[/cyan] build(s)\n")


@app.command()
def serve(
    data_dir: Path = typer.Option(
        Path("./"),
        "--failure-data",
        help="Path to a directory with triage results",
        exists=True,
        file_okay=False,
    ),
    host: str = typer.Option("127.0.0.1", "--host"),
    port: int = typer.Option(8080, "--port"),
):
    """Start an HTTP server for exported triage data."""
    from triage.server import create_app

    console.print(f"Listening [cyan]http://{host}:{port}[/cyan]...")
    create_app(data_dir).run(host=host, port=port)


@app.command()
def version():
    """Show version information."""
    console.print("[cyan]ci-triage[/cyan] v0.1.0")


def main():
    """Main CLI entry point."""
    _configure_logging()
    try:
        app()
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
        sys.exit(130)
    except Exception as e:
        console.print(f"\n[red]Error: {e}[/red]")
        logger.exception("Unhandled exception")
        sys.exit(1)


if __name__ == "__main__":
    main()
