"""YouTube Data API v3 catalog adapter (target role).

Wraps the REST endpoints the transfer needs: search + video details for
candidate scoring, playlist creation and item insertion. Access tokens are
acquired elsewhere and handed in through a token supplier.

Quota costs per call are listed in ``tracklinker.domain.quota``.
"""

from collections.abc import Mapping
import re
from typing import Any

import httpx

from tracklinker.config import get_logger, resilient_operation, settings
from tracklinker.config.settings import MatchingConfig
from tracklinker.domain.entities import PlaylistCore, ProviderSearchResult, SearchHints, TrackCore
from tracklinker.domain.errors import AuthError, ProviderWriteError, TrackLinkerError
from tracklinker.domain.matching import CandidateInput, evaluate_candidate, rank_candidates, watch_url
from tracklinker.domain.repositories import AuthContext

from .base_connector import HttpConnector, TokenSupplier

logger = get_logger(__name__).bind(service="youtube")

API_ROOT = "https://www.googleapis.com/youtube/v3"

_DURATION_PATTERN = re.compile(
    r"^P(?:(?P<days>\d+)D)?(?:T(?:(?P<hours>\d+)H)?(?:(?P<minutes>\d+)M)?(?:(?P<seconds>\d+)S)?)?$"
)


def parse_iso8601_duration(value: str | None) -> int | None:
    """Convert an ISO-8601 video duration (e.g. ``PT3M33S``) to milliseconds."""
    if not value:
        return None
    match = _DURATION_PATTERN.match(value)
    if not match:
        return None
    parts = {key: int(number) if number else 0 for key, number in match.groupdict().items()}
    seconds = ((parts["days"] * 24 + parts["hours"]) * 60 + parts["minutes"]) * 60 + parts["seconds"]
    return seconds * 1000


def scoring_overrides(matching: MatchingConfig) -> dict[str, Any]:
    return {
        "neutral_score": matching.neutral_score,
        "min_score": matching.min_score,
        "duration_floor_ms": matching.duration_floor_ms,
    }


class YouTubeCatalogAdapter(HttpConnector):
    """YouTube as a transfer target."""

    provider_id = "youtube"
    service = "youtube"
    base_url = API_ROOT

    def __init__(
        self,
        token_supplier: TokenSupplier,
        max_results: int = 5,
        scoring_config: Mapping[str, Any] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(token_supplier=token_supplier, transport=transport)
        self.max_results = max_results
        self.scoring_config = (
            scoring_config if scoring_config is not None else scoring_overrides(settings.matching)
        )

    async def _get(self, path: str, params: dict[str, Any]) -> dict[str, Any]:
        return await self._request("GET", path, params=params, headers=await self._auth_headers())

    async def _post(self, path: str, params: dict[str, Any], body: dict[str, Any]) -> dict[str, Any]:
        return await self._request(
            "POST", path, params=params, json=body, headers=await self._auth_headers()
        )

    async def auth(self, interactive: bool = False) -> AuthContext:
        payload = await self._get("/channels", {"part": "snippet", "mine": "true"})
        items = payload.get("items") or []
        if not items:
            raise AuthError("YouTube account has no channel")
        channel = items[0]
        return AuthContext(
            provider_id=self.provider_id,
            authenticated=True,
            user_id=channel.get("id"),
            display_name=(channel.get("snippet") or {}).get("title"),
        )

    async def list_playlists(self) -> list[PlaylistCore]:
        playlists: list[PlaylistCore] = []
        page_token: str | None = None
        while True:
            params: dict[str, Any] = {
                "part": "snippet,contentDetails",
                "mine": "true",
                "maxResults": 50,
            }
            if page_token:
                params["pageToken"] = page_token
            payload = await self._get("/playlists", params)

            for item in payload.get("items") or []:
                snippet = item.get("snippet") or {}
                playlists.append(
                    PlaylistCore(
                        id=item["id"],
                        name=snippet.get("title") or "Untitled",
                        description=snippet.get("description") or None,
                        track_count=(item.get("contentDetails") or {}).get("itemCount", 0),
                        owner_name=snippet.get("channelTitle"),
                    )
                )

            page_token = payload.get("nextPageToken")
            if not page_token:
                return playlists

    async def list_tracks(self, playlist_id: str) -> list[TrackCore]:
        tracks: list[TrackCore] = []
        page_token: str | None = None
        while True:
            params: dict[str, Any] = {
                "part": "snippet,contentDetails",
                "playlistId": playlist_id,
                "maxResults": 50,
            }
            if page_token:
                params["pageToken"] = page_token
            payload = await self._get("/playlistItems", params)

            for item in payload.get("items") or []:
                video_id = (item.get("contentDetails") or {}).get("videoId")
                if not video_id:
                    continue
                snippet = item.get("snippet") or {}
                owner = snippet.get("videoOwnerChannelTitle") or snippet.get("channelTitle")
                tracks.append(
                    TrackCore(
                        id=video_id,
                        title=snippet.get("title") or "Unknown title",
                        artists=[owner or "Unknown"],
                        url=watch_url(video_id),
                    )
                )

            page_token = payload.get("nextPageToken")
            if not page_token:
                return tracks

    @resilient_operation("youtube_search")
    async def search(self, query: str, hints: SearchHints | None = None) -> list[ProviderSearchResult]:
        """search.list for ids, then videos.list for durations; results are scored and ranked."""
        hints = hints or SearchHints()
        search = await self._get(
            "/search",
            {"part": "snippet", "type": "video", "maxResults": self.max_results, "q": query},
        )

        snippets: dict[str, dict[str, Any]] = {}
        for item in search.get("items") or []:
            video_id = (item.get("id") or {}).get("videoId")
            if video_id:
                snippets[video_id] = item.get("snippet") or {}
        if not snippets:
            return []

        details = await self._get(
            "/videos",
            {"part": "contentDetails,snippet", "id": ",".join(snippets)},
        )

        candidates: list[ProviderSearchResult] = []
        for item in details.get("items") or []:
            video_id = item["id"]
            search_snippet = snippets.get(video_id, {})
            snippet = item.get("snippet") or {}
            title = snippet.get("title") or search_snippet.get("title") or "Untitled video"
            channel_title = snippet.get("channelTitle") or search_snippet.get("channelTitle")
            channel_id = search_snippet.get("channelId") or snippet.get("channelId")
            duration_ms = parse_iso8601_duration((item.get("contentDetails") or {}).get("duration"))

            evaluation = evaluate_candidate(
                CandidateInput(
                    title=title,
                    channel_title=channel_title,
                    channel_id=channel_id,
                    duration_ms=duration_ms,
                    target_duration_ms=hints.duration_ms,
                    target_isrc=hints.isrc,
                    preferred_channel_ids=list(hints.preferred_channel_ids),
                ),
                self.scoring_config,
            )
            candidates.append(
                ProviderSearchResult(
                    id=video_id,
                    score=evaluation.score,
                    title=title,
                    channel_id=channel_id,
                    channel_title=channel_title,
                    duration_ms=duration_ms,
                    url=watch_url(video_id),
                    matched_by=evaluation.matched_by,
                    duration_delta_ms=(
                        duration_ms - hints.duration_ms
                        if duration_ms is not None and hints.duration_ms is not None
                        else None
                    ),
                    reasons=evaluation.reasons,
                    official=evaluation.official,
                )
            )

        logger.debug(f"Scored {len(candidates)} candidates", query=query)
        return rank_candidates(candidates)

    async def create_playlist(self, name: str, description: str | None = None) -> PlaylistCore:
        body = {
            "snippet": {"title": name, "description": description or ""},
            "status": {"privacyStatus": "private"},
        }
        try:
            payload = await self._post("/playlists", {"part": "snippet,status"}, body)
        except AuthError:
            raise
        except TrackLinkerError as e:
            raise ProviderWriteError(f"Failed to create playlist '{name}': {e}") from e

        logger.info("Created playlist", playlist_id=payload["id"], name=name)
        return PlaylistCore(id=payload["id"], name=name, description=description)

    async def add_tracks(self, playlist_id: str, track_ids: list[str]) -> None:
        """Insert videos one playlistItems.insert call at a time, stopping at the first failure."""
        for video_id in track_ids:
            body = {
                "snippet": {
                    "playlistId": playlist_id,
                    "resourceId": {"kind": "youtube#video", "videoId": video_id},
                }
            }
            try:
                await self._post("/playlistItems", {"part": "snippet"}, body)
            except TrackLinkerError as e:
                raise ProviderWriteError(f"Failed to insert {video_id}: {e}") from e
