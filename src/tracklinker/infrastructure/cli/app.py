"""TrackLinker CLI - Main application entry point and commands."""

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager, suppress
from importlib.metadata import version
import signal
from typing import Annotated

from attrs import define
from rich.console import Console
import typer

from tracklinker.application.services import TransferService, create_transfer_service
from tracklinker.application.use_cases import ExecuteOptions, ManualMatchUseCase
from tracklinker.config import get_logger, settings, setup_loguru_logger
from tracklinker.domain.entities import PlaylistCore
from tracklinker.domain.quota import QuotaState, estimate_insert_capacity
from tracklinker.domain.repositories import (
    CatalogProvider,
    MatchCacheProtocol,
    ProgressSink,
    RunLogProtocol,
)
from tracklinker.infrastructure.cli.progress_provider import RichTransferProgress
from tracklinker.infrastructure.cli.ui import (
    command_error_handler,
    execute_summary,
    mapping_table,
    playlists_table,
    quota_table,
    review_table,
    runs_table,
)
from tracklinker.infrastructure.connectors import (
    OdesliLinkResolver,
    SpotifyCatalogAdapter,
    YouTubeCatalogAdapter,
)
from tracklinker.infrastructure.persistence.database.db_connection import (
    create_db_engine,
    create_session_factory,
    init_db,
)
from tracklinker.infrastructure.persistence.repositories import (
    InMemoryMatchCache,
    InMemoryRunLog,
    MatchCacheRepository,
    RunLogRepository,
)

VERSION = version("tracklinker")

console = Console(width=100)
logger = get_logger(__name__)

app = typer.Typer(
    help=f"🎵 TrackLinker v{VERSION} - Move playlists from Spotify to YouTube",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
    pretty_exceptions_enable=True,
    pretty_exceptions_short=True,
    pretty_exceptions_show_locals=False,
)


@define(slots=True)
class Components:
    source: CatalogProvider
    target: YouTubeCatalogAdapter
    match_cache: MatchCacheProtocol
    run_log: RunLogProtocol
    link_resolver: OdesliLinkResolver

    def transfer_service(self, on_progress: ProgressSink | None = None) -> TransferService:
        return create_transfer_service(
            source=self.source,
            target=self.target,
            match_cache=self.match_cache,
            run_log=self.run_log,
            link_resolver=self.link_resolver,
            on_progress=on_progress,
        )


@asynccontextmanager
async def open_components(in_memory: bool = False) -> AsyncGenerator[Components]:
    """Wire adapters and repositories from settings, closing them afterwards."""
    credentials = settings.credentials
    source = SpotifyCatalogAdapter(token_supplier=lambda: credentials.spotify_access_token)
    target = YouTubeCatalogAdapter(token_supplier=lambda: credentials.youtube_access_token)
    link_resolver = OdesliLinkResolver(api_key=credentials.odesli_api_key or None)

    engine = None
    if in_memory:
        match_cache: MatchCacheProtocol = InMemoryMatchCache()
        run_log: RunLogProtocol = InMemoryRunLog()
    else:
        engine = create_db_engine()
        await init_db(engine)
        session_factory = create_session_factory(engine)
        match_cache = MatchCacheRepository(session_factory)
        run_log = RunLogRepository(session_factory)

    try:
        yield Components(
            source=source,
            target=target,
            match_cache=match_cache,
            run_log=run_log,
            link_resolver=link_resolver,
        )
    finally:
        await target.close()
        await link_resolver.close()
        if engine is not None:
            await engine.dispose()


def _install_cancel_handler(cancel_event: asyncio.Event) -> None:
    """First Ctrl-C stops the run after the current track or chunk."""
    loop = asyncio.get_running_loop()
    # Signal handlers are unavailable on some platforms
    with suppress(NotImplementedError):
        loop.add_signal_handler(signal.SIGINT, cancel_event.set)


async def _find_playlist(source: CatalogProvider, playlist_id: str) -> PlaylistCore:
    for playlist in await source.list_playlists():
        if playlist.id == playlist_id:
            return playlist
    logger.debug(f"Playlist {playlist_id} not among user playlists, using id as name")
    return PlaylistCore(id=playlist_id, name=playlist_id)


@app.command(name="playlists", rich_help_panel="🎵 Transfer")
@command_error_handler
def playlists_command() -> None:
    """List playlists in the source catalog."""

    async def run() -> None:
        async with open_components(in_memory=True) as components:
            playlists = await components.source.list_playlists()
        console.print(playlists_table(playlists))

    asyncio.run(run())


@app.command(name="transfer", rich_help_panel="🎵 Transfer")
@command_error_handler
def transfer_command(
    playlist_id: Annotated[str, typer.Argument(help="Source playlist id")],
    name: Annotated[
        str | None, typer.Option("--name", "-n", help="Target playlist name")
    ] = None,
    dry_run: Annotated[
        bool, typer.Option("--dry-run", help="Map tracks but do not write to the target")
    ] = False,
    chunk_size: Annotated[
        int | None, typer.Option("--chunk-size", min=1, help="Items per insert batch")
    ] = None,
    daily_quota: Annotated[
        int | None, typer.Option("--daily-quota", min=0, help="Target daily quota units")
    ] = None,
    resume_from: Annotated[
        str | None,
        typer.Option("--resume-from", help="Skip matches up to and including this track id"),
    ] = None,
) -> None:
    """Transfer a source playlist to a new target playlist."""

    async def run() -> None:
        cancel_event = asyncio.Event()
        _install_cancel_handler(cancel_event)

        async with open_components() as components:
            playlist = await _find_playlist(components.source, playlist_id)

            with RichTransferProgress(console) as progress:
                service = components.transfer_service(on_progress=progress)
                verified = await service.verify(playlist, name, cancel_event)
                console.print(mapping_table(verified.mapping))
                if verified.mapping.unresolved:
                    console.print(review_table(verified.mapping))

                if verified.mapping.canceled:
                    console.print("[yellow]Mapping canceled; nothing was written.[/yellow]")
                    return
                if dry_run:
                    console.print("[dim]Dry run: target playlist not created.[/dim]")
                    return

                options = ExecuteOptions(
                    daily_quota=(
                        daily_quota if daily_quota is not None else settings.quota.daily_limit
                    ),
                    used_today=settings.quota.used_today,
                    chunk_size=chunk_size or settings.transfer.chunk_size,
                    resume_from_track_id=resume_from,
                    playlist_name=verified.plan.target_playlist_name,
                )
                result = await service.execute(
                    verified.plan, verified.mapping, options, cancel_event
                )

        console.print(execute_summary(result))

    asyncio.run(run())


@app.command(name="match", rich_help_panel="🎵 Transfer")
@command_error_handler
def match_command(
    track_id: Annotated[str, typer.Argument(help="Source track id")],
    target: Annotated[str, typer.Argument(help="YouTube URL or video id")],
    score: Annotated[
        float, typer.Option("--score", min=0.0, max=1.0, help="Confidence to record")
    ] = 1.0,
) -> None:
    """Record your own match for a track; later transfers reuse it."""

    async def run() -> None:
        async with open_components() as components:
            use_case = ManualMatchUseCase(
                source_provider=components.source.provider_id,
                target_provider=components.target.provider_id,
                match_cache=components.match_cache,
            )
            record = await use_case.record_target(track_id, target, score)
        console.print(
            f"[green]✓[/green] {record.source_track_id} → [bold]{record.target_id}[/bold] "
            f"[dim](score {record.score:.2f})[/dim]"
        )

    asyncio.run(run())


@app.command(name="runs", rich_help_panel="📊 History")
@command_error_handler
def runs_command(
    limit: Annotated[int, typer.Option("--limit", "-l", min=1, help="Number of runs")] = 20,
) -> None:
    """Show recent transfer runs."""

    async def run() -> None:
        async with open_components() as components:
            runs = await components.run_log.recent_runs(limit)
        if not runs:
            console.print("[dim]No transfer runs recorded yet.[/dim]")
            return
        console.print(runs_table(runs))

    asyncio.run(run())


@app.command(name="quota", rich_help_panel="📊 History")
@command_error_handler
def quota_command(
    daily_quota: Annotated[
        int | None, typer.Option("--daily-quota", min=0, help="Daily quota units")
    ] = None,
    used_today: Annotated[
        int | None, typer.Option("--used-today", min=0, help="Units already spent today")
    ] = None,
    tracks: Annotated[
        int | None, typer.Option("--tracks", min=0, help="Tracks you plan to insert")
    ] = None,
) -> None:
    """Estimate how many tracks fit in today's YouTube quota."""
    estimate = estimate_insert_capacity(
        QuotaState(
            daily_limit=daily_quota if daily_quota is not None else settings.quota.daily_limit,
            used_today=used_today if used_today is not None else settings.quota.used_today,
        ),
        include_playlist_creation=True,
    )
    console.print(quota_table(estimate, tracks))


@app.command(name="version", rich_help_panel="⚙️ System")
def version_command() -> None:
    """Show version information."""
    console.print(f"[bold bright_blue]🎵 TrackLinker[/bold bright_blue] [dim]v{VERSION}[/dim]")


@app.callback()
def init_cli(
    ctx: typer.Context,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable verbose output"),
    ] = False,
) -> None:
    """Initialize TrackLinker CLI."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose

    setup_loguru_logger(verbose)
    settings.data_dir.mkdir(parents=True, exist_ok=True)


def main() -> int:
    """Application entry point."""
    try:
        return app() or 0
    except Exception:
        logger.exception("Unhandled exception")
        return 1
