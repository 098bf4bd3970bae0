"""Spotify catalog adapter (source role) built on spotipy.

spotipy is synchronous, so every call runs through ``asyncio.to_thread``.
The adapter never performs OAuth itself: a token supplier returns an
already-acquired access token and a fresh client is built around it.

Spotify is read-only here; playlist writes raise ProviderWriteError.
"""

import asyncio
from collections.abc import Callable
import inspect
from typing import Any

import spotipy

from tracklinker.config import get_logger, resilient_operation
from tracklinker.domain.entities import PlaylistCore, ProviderSearchResult, SearchHints, TrackCore
from tracklinker.domain.errors import (
    AuthError,
    ProviderWriteError,
    RateLimitError,
    TrackLinkerError,
    TransientError,
    UnknownError,
)
from tracklinker.domain.matching import CandidateInput, evaluate_candidate, rank_candidates
from tracklinker.domain.repositories import AuthContext

from .base_connector import TokenSupplier

logger = get_logger(__name__).bind(service="spotify")

PAGE_SIZE = 50


def convert_spotify_track(track: dict[str, Any]) -> TrackCore:
    """Convert a Spotify track object to a TrackCore."""
    album = track.get("album") or {}
    release_date = album.get("release_date") or ""
    year = int(release_date[:4]) if release_date[:4].isdigit() else None

    return TrackCore(
        id=track.get("id") or track.get("uri") or "",
        title=track.get("name") or "Unknown",
        artists=[artist.get("name") or "Unknown" for artist in track.get("artists") or []]
        or ["Unknown"],
        isrc=(track.get("external_ids") or {}).get("isrc"),
        album=album.get("name"),
        duration_ms=track.get("duration_ms"),
        explicit=track.get("explicit"),
        year=year,
        url=(track.get("external_urls") or {}).get("spotify"),
    )


def convert_spotify_playlist(playlist: dict[str, Any]) -> PlaylistCore:
    return PlaylistCore(
        id=playlist["id"],
        name=playlist.get("name") or "Untitled",
        description=playlist.get("description") or None,
        track_count=(playlist.get("tracks") or {}).get("total", 0),
        owner_name=(playlist.get("owner") or {}).get("display_name"),
        snapshot_id=playlist.get("snapshot_id"),
    )


def translate_spotify_error(error: spotipy.SpotifyException) -> TrackLinkerError:
    status = error.http_status
    message = f"Spotify responded with {status}: {error.msg}"
    if status == 429:
        retry_after = (error.headers or {}).get("Retry-After")
        return RateLimitError(message, retry_after=float(retry_after) if retry_after else None)
    if status in (401, 403):
        return AuthError(message)
    if status is not None and status >= 500:
        return TransientError(message)
    return UnknownError(message)


class SpotifyCatalogAdapter:
    """Spotify as a transfer source."""

    provider_id = "spotify"

    def __init__(
        self,
        token_supplier: TokenSupplier,
        client_factory: Callable[[str], spotipy.Spotify] | None = None,
        market: str | None = None,
    ) -> None:
        self._token_supplier = token_supplier
        self._client_factory = client_factory or (
            lambda token: spotipy.Spotify(auth=token, requests_timeout=15, retries=0)
        )
        self.market = market

    async def _client(self) -> spotipy.Spotify:
        token = self._token_supplier()
        if inspect.isawaitable(token):
            token = await token
        if not token:
            raise AuthError("No access token available for spotify")
        return self._client_factory(token)

    async def _call(self, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        try:
            return await asyncio.to_thread(func, *args, **kwargs)
        except spotipy.SpotifyException as e:
            raise translate_spotify_error(e) from e

    async def _paginate(self, client: spotipy.Spotify, page: dict[str, Any] | None) -> list[dict[str, Any]]:
        items: list[dict[str, Any]] = []
        while page:
            items.extend(page.get("items") or [])
            if not page.get("next"):
                break
            page = await self._call(client.next, page)
        return items

    async def auth(self, interactive: bool = False) -> AuthContext:
        client = await self._client()
        user = await self._call(client.current_user)
        return AuthContext(
            provider_id=self.provider_id,
            authenticated=True,
            user_id=user.get("id"),
            display_name=user.get("display_name"),
        )

    @resilient_operation("spotify_list_playlists")
    async def list_playlists(self) -> list[PlaylistCore]:
        client = await self._client()
        first = await self._call(client.current_user_playlists, limit=PAGE_SIZE)
        return [convert_spotify_playlist(item) for item in await self._paginate(client, first) if item]

    @resilient_operation("spotify_list_tracks")
    async def list_tracks(self, playlist_id: str) -> list[TrackCore]:
        client = await self._client()
        first = await self._call(
            client.playlist_items,
            playlist_id,
            limit=PAGE_SIZE,
            market=self.market,
            additional_types=("track",),
        )
        items = await self._paginate(client, first)

        tracks = [
            convert_spotify_track(item["track"])
            for item in items
            if item.get("track") and not item.get("is_local")
        ]
        logger.info(f"Fetched {len(tracks)} tracks", playlist_id=playlist_id)
        return tracks

    async def search(self, query: str, hints: SearchHints | None = None) -> list[ProviderSearchResult]:
        hints = hints or SearchHints()
        client = await self._client()
        response = await self._call(client.search, q=query, type="track", limit=5, market=self.market)

        results: list[ProviderSearchResult] = []
        for raw in (response.get("tracks") or {}).get("items") or []:
            track = convert_spotify_track(raw)
            evaluation = evaluate_candidate(
                CandidateInput(
                    title=track.title,
                    channel_title=track.artist_line,
                    duration_ms=track.duration_ms,
                    isrc=track.isrc,
                    target_duration_ms=hints.duration_ms,
                    target_isrc=hints.isrc,
                )
            )
            results.append(
                ProviderSearchResult(
                    id=track.id,
                    score=evaluation.score,
                    title=track.title,
                    channel_title=track.artist_line,
                    duration_ms=track.duration_ms,
                    url=track.url,
                    isrc=track.isrc,
                    matched_by=evaluation.matched_by,
                    reasons=evaluation.reasons,
                    official=evaluation.official,
                )
            )
        return rank_candidates(results)

    async def create_playlist(self, name: str, description: str | None = None) -> PlaylistCore:
        raise ProviderWriteError("Spotify is only supported as a transfer source")

    async def add_tracks(self, playlist_id: str, track_ids: list[str]) -> None:
        raise ProviderWriteError("Spotify is only supported as a transfer source")
