"""
sitepull CLI.

Usage:
    sitepull download --url https://example.com --key k3y --output ./backups
    sitepull download --url https://example.com --key k3y --concurrency 8 --plain
    sitepull serve --root /var/www/site --database site.db --key k3y
"""

from __future__ import annotations

import logging
from pathlib import Path

import click
from rich.console import Console
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    TextColumn,
    TimeElapsedColumn,
    TransferSpeedColumn,
)

from sitepull.config import configure, get_settings
from sitepull.logging import setup_logging
from sitepull.orchestrator import DownloadReport, run_download
from sitepull.services.download import ProgressAggregator, ProgressSnapshot
from sitepull.services.download._config import MAX_CONCURRENCY

console = Console()
err_console = Console(stderr=True)


class ProgressDisplay:
    """Live rich progress bars fed from aggregator snapshots."""

    def __init__(self, target: Console) -> None:
        self._progress = Progress(
            TextColumn("[bold]{task.description}"),
            BarColumn(),
            DownloadColumn(),
            TransferSpeedColumn(),
            TimeElapsedColumn(),
            console=target,
            transient=False,
        )
        self._db_task = self._progress.add_task("Database", total=None)
        self._files_task = self._progress.add_task("Files", total=None, visible=False)

    def update(self, snapshot: ProgressSnapshot) -> None:
        self._progress.update(
            self._db_task,
            completed=snapshot.db_bytes,
            total=snapshot.db_bytes if snapshot.db_done else None,
        )
        if snapshot.files_total:
            failed = f", {snapshot.files_failed} failed" if snapshot.files_failed else ""
            self._progress.update(
                self._files_task,
                visible=True,
                total=snapshot.bytes_total,
                completed=snapshot.bytes_transferred,
                description=(
                    f"Files {snapshot.files_completed}/{snapshot.files_total}{failed}"
                ),
            )

    def __enter__(self) -> ProgressDisplay:
        self._progress.start()
        return self

    def __exit__(self, *args: object) -> None:
        self._progress.stop()


@click.group()
@click.version_option(package_name="sitepull")
def main() -> None:
    """sitepull: back up a website's files and database over HTTP."""


# =============================================================================
# Download Command
# =============================================================================


@main.command()
@click.option("--url", "-u", required=True, help="Site URL running the sitepull endpoint")
@click.option("--key", "-k", envvar="SITEPULL_KEY", required=True, help="Access key")
@click.option(
    "--output",
    "-o",
    default=".",
    type=click.Path(file_okay=False, path_type=Path),
    help="Directory for the archive",
)
@click.option(
    "--concurrency",
    "-c",
    type=click.IntRange(1, MAX_CONCURRENCY),
    default=None,
    help="Parallel file transfers",
)
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
@click.option("--plain", is_flag=True, help="Plain log output, no live progress")
def download(
    url: str,
    key: str,
    output: Path,
    concurrency: int | None,
    verbose: bool,
    plain: bool,
) -> None:
    """Download files and database into a single archive.

    Examples:

        sitepull download --url https://example.com --key k3y

        sitepull download -u https://example.com -k k3y -o ./backups -c 8
    """
    settings = configure(key=key, concurrency=concurrency)
    level = logging.DEBUG if verbose else settings.log_level
    setup_logging(level, secret=key, rich=not plain)

    progress = ProgressAggregator()
    if plain:
        report = run_download(url, key, output, settings.concurrency, progress=progress)
    else:
        with ProgressDisplay(err_console) as display:
            progress.subscribe(display.update)
            report = run_download(url, key, output, settings.concurrency, progress=progress)

    _print_report(report)
    raise SystemExit(report.exit_code)


def _print_report(report: DownloadReport) -> None:
    if report.ok:
        console.print("[green]Backup complete[/green]")
        console.print(report.summary())
    else:
        err_console.print(f"[red]Backup failed[/red] ({report.state.value}): {report.summary()}")


# =============================================================================
# Serve Command
# =============================================================================


@main.command()
@click.option(
    "--root",
    "-r",
    required=True,
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help="Directory tree to serve",
)
@click.option(
    "--database",
    "-d",
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="SQLite database to export",
)
@click.option("--key", "-k", envvar="SITEPULL_KEY", required=True, help="Access key")
@click.option("--host", default="127.0.0.1", show_default=True)
@click.option("--port", "-p", default=8080, show_default=True, type=int)
@click.option(
    "--work-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory for dumps and job state",
)
def serve(
    root: Path,
    database: Path,
    key: str,
    host: str,
    port: int,
    work_dir: Path | None,
) -> None:
    """Run the sitepull endpoint for a local tree and SQLite database."""
    from sitepull.server import create_app
    from sitepull.services.export import SQLiteSource

    setup_logging(get_settings().log_level, secret=key)
    source = SQLiteSource(database)
    app = create_app(root, source, key, work_dir=work_dir)
    console.print(f"Serving [cyan]{root}[/cyan] on http://{host}:{port}/sitepull")
    try:
        app.run(host=host, port=port)
    finally:
        source.close()


if __name__ == "__main__":
    main()
