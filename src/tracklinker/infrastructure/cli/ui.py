"""UI helpers for CLI interaction.

Keeps Rich presentation (tables, error display) out of the command bodies.
"""

from collections.abc import Callable
import functools
from typing import ParamSpec, TypeVar

from rich.console import Console
from rich.table import Table
import typer

from tracklinker.config import get_logger
from tracklinker.domain.entities import (
    ExecuteResult,
    MappingResult,
    PlaylistCore,
    RunRecord,
)
from tracklinker.domain.errors import classify_error
from tracklinker.domain.quota import QuotaEstimate

console = Console()
logger = get_logger(__name__)

P = ParamSpec("P")
R = TypeVar("R")


def command_error_handler(func: Callable[P, R]) -> Callable[P, R]:
    """Standardize error handling for CLI commands.

    Errors are logged with traceback, shown to the user with their taxonomy
    kind, and converted to exit code 1.
    """

    @functools.wraps(func)
    def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        operation = func.__name__.replace("_", " ")

        with logger.contextualize(operation=operation):
            try:
                logger.debug(f"Executing {operation}")
                return func(*args, **kwargs)

            except (typer.Exit, typer.Abort):
                raise

            except Exception as e:
                logger.exception(f"Error during {operation}")
                info = classify_error(e)
                console.print(
                    f"\n[bold red]✗ {operation} failed[/bold red] [dim]({info.kind})[/dim]: {info.message}"
                )
                raise typer.Exit(code=1) from e

    return wrapper


def playlists_table(playlists: list[PlaylistCore]) -> Table:
    table = Table(title="Source playlists")
    table.add_column("ID", style="dim")
    table.add_column("Name", style="cyan")
    table.add_column("Tracks", justify="right")
    table.add_column("Owner")
    for playlist in playlists:
        table.add_row(playlist.id, playlist.name, str(playlist.track_count), playlist.owner_name or "")
    return table


def mapping_table(mapping: MappingResult) -> Table:
    stats = mapping.stats
    table = Table(title=f"Matches: {stats.auto}/{stats.total} resolved, {stats.manual} need review")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Track", style="cyan")
    table.add_column("Target")
    table.add_column("Score", justify="right")
    table.add_column("Via")
    table.add_column("Note", style="yellow")
    for index, item in enumerate(mapping.matches, start=1):
        table.add_row(
            str(index),
            f"{item.track.artist_line} - {item.track.title}",
            item.target_id or "[red]none[/red]",
            f"{item.score:.2f}",
            str(item.via) + (" (cached)" if item.cached else ""),
            item.reason or item.error or "",
        )
    return table


def review_table(mapping: MappingResult, limit: int = 3) -> Table:
    """Unresolved tracks with their best candidates, for `tracklinker match`."""
    table = Table(title="Needs review: tracklinker match TRACK_ID URL_OR_ID")
    table.add_column("Track id", style="dim")
    table.add_column("Track", style="cyan")
    table.add_column("Candidates")
    for item in mapping.unresolved:
        candidates = ", ".join(f"{c.id} ({c.score:.2f})" for c in (item.candidates or [])[:limit])
        table.add_row(
            item.track.id,
            f"{item.track.artist_line} - {item.track.title}",
            candidates or "[dim]none[/dim]",
        )
    return table


def execute_summary(result: ExecuteResult) -> Table:
    table = Table(title=f"Playlist {result.playlist_id}", show_header=False)
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Inserted", f"[green]{result.inserted}[/green]")
    table.add_row("Skipped", str(result.skipped))
    table.add_row("Failed", f"[red]{len(result.failures)}[/red]" if result.failures else "0")
    table.add_row("Pending review", str(len(result.pending_manual)))
    table.add_row("Run", str(result.run_id))
    if result.canceled:
        table.add_row("Status", "[yellow]canceled[/yellow]")
    return table


def runs_table(runs: list[RunRecord]) -> Table:
    table = Table(title="Recent transfer runs")
    table.add_column("Run", justify="right")
    table.add_column("Started")
    table.add_column("Source")
    table.add_column("Target")
    table.add_column("Status")
    table.add_column("Added", justify="right")
    table.add_column("Skipped", justify="right")
    table.add_column("Failed", justify="right")
    for run in runs:
        table.add_row(
            str(run.id),
            run.started_at.strftime("%Y-%m-%d %H:%M"),
            run.source_playlist_id,
            run.target_playlist_id or "",
            str(run.status),
            str(run.added),
            str(run.skipped),
            str(run.failed),
        )
    return table


def quota_table(estimate: QuotaEstimate, planned: int | None = None) -> Table:
    table = Table(title="YouTube write quota", show_header=False)
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Remaining units", str(estimate.remaining_units))
    table.add_row("Max inserts", str(estimate.max_inserts))
    if planned is not None:
        table.add_row("Planned tracks", str(planned))
        table.add_row("Fits", "[green]yes[/green]" if planned <= estimate.max_inserts else "[red]no[/red]")
    table.add_row("Exhausted", "[red]yes[/red]" if estimate.will_exceed else "no")
    return table
