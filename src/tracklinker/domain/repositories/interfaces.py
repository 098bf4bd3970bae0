"""Domain ports for catalogs, persistence and progress reporting.

These interfaces define the contracts the transfer engine depends on without
depending on infrastructure implementations. Any object with matching
methods satisfies them; nothing needs to inherit from these classes.
"""

from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Protocol

from attrs import define

if TYPE_CHECKING:
    from tracklinker.domain.entities import (
        MatchRecord,
        PlaylistCore,
        ProviderSearchResult,
        RunRecord,
        RunSummary,
        SearchHints,
        TrackCore,
        TransferProgress,
    )


@define(frozen=True, slots=True)
class AuthContext:
    """Result of an authentication check against a catalog."""

    provider_id: str
    authenticated: bool
    user_id: str | None = None
    display_name: str | None = None


@define(frozen=True, slots=True)
class LinkResolution:
    """Outcome of a cross-catalog link lookup.

    ``target_id`` is None when the service knows the track but has no
    target-catalog link for it.
    """

    target_id: str | None
    url: str | None = None
    via: str = "odesli"
    raw: dict | None = None


class CatalogProvider(Protocol):
    """A streaming catalog acting as transfer source or target."""

    provider_id: str

    def auth(self, interactive: bool = False) -> Awaitable["AuthContext"]:
        """Verify credentials are usable."""
        ...

    def list_playlists(self) -> Awaitable[list["PlaylistCore"]]:
        """List the current user's playlists."""
        ...

    def list_tracks(self, playlist_id: str) -> Awaitable[list["TrackCore"]]:
        """List every track of a playlist, in playlist order.

        Implementations handle pagination themselves.
        """
        ...

    def search(
        self, query: str, hints: "SearchHints | None" = None
    ) -> Awaitable[list["ProviderSearchResult"]]:
        """Search the catalog and return scored candidates."""
        ...

    def create_playlist(
        self, name: str, description: str | None = None
    ) -> Awaitable["PlaylistCore"]:
        """Create an empty playlist; the returned `.id` addresses it in add_tracks."""
        ...

    def add_tracks(self, playlist_id: str, track_ids: list[str]) -> Awaitable[None]:
        """Append items to a playlist in the given order."""
        ...


class MatchCacheProtocol(Protocol):
    """Persistent store of match decisions keyed by source track."""

    def get(
        self, source_provider: str, source_track_id: str
    ) -> Awaitable["MatchRecord | None"]:
        """Get the decision for a source track, if one exists."""
        ...

    def put(self, record: "MatchRecord") -> Awaitable[None]:
        """Insert or overwrite the decision for ``record.key``."""
        ...


class RunLogProtocol(Protocol):
    """Append-only log of transfer runs."""

    def start_run(self, source_playlist_id: str) -> Awaitable[int]:
        """Create a running record with zero counts and return its id."""
        ...

    def finalize_run(self, run_id: int, summary: "RunSummary") -> Awaitable[None]:
        """Write final counts and status for a run."""
        ...

    def recent_runs(self, limit: int = 20) -> Awaitable[list["RunRecord"]]:
        """Most recent runs first."""
        ...


class LinkResolverProtocol(Protocol):
    """Maps a source-catalog URL to a target-catalog item id."""

    def resolve(self, source_url: str) -> Awaitable[LinkResolution]: ...


# Receives progress events; may be synchronous or return an awaitable
ProgressSink = Callable[["TransferProgress"], Awaitable[None] | None]
