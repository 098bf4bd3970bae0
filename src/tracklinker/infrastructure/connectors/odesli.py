"""song.link (Odesli) cross-catalog link resolver.

Given a source-catalog track URL, asks the Odesli API for the equivalent
links on other platforms and extracts a YouTube video id, preferring
YouTube Music over plain YouTube.

The public API allows 10 requests/minute without a key and 60 with one;
callers enforce that budget with a SlidingWindowRateLimiter.
"""

from typing import Any

import httpx

from tracklinker.config import get_logger, settings
from tracklinker.config.settings import LinkResolutionConfig
from tracklinker.domain.matching import extract_video_id
from tracklinker.domain.repositories import LinkResolution

from .base_connector import HttpConnector

logger = get_logger(__name__).bind(service="odesli")

# Platform keys in preference order
_PLATFORMS = ("youtubeMusic", "youtube")


def pick_youtube_link(payload: dict[str, Any]) -> tuple[str | None, str | None]:
    """Return (url, platform) of the preferred YouTube link in an Odesli payload."""
    links = payload.get("linksByPlatform") or {}

    for field in ("url", "nativeAppUriDesktop"):
        for platform in _PLATFORMS:
            value = (links.get(platform) or {}).get(field)
            if value:
                return value, platform
    return None, None


class OdesliLinkResolver(HttpConnector):
    """Resolves source track URLs to YouTube video ids."""

    service = "odesli"

    def __init__(
        self,
        api_key: str | None = None,
        config: LinkResolutionConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config or settings.link_resolution
        super().__init__(
            token_supplier=(lambda: api_key) if api_key else None,
            timeout=self.config.timeout,
            transport=transport,
        )

    async def resolve(self, source_url: str) -> LinkResolution:
        params = {"url": source_url}
        if self.config.user_country:
            params["userCountry"] = self.config.user_country

        payload = await self._request(
            "GET",
            self.config.base_url,
            params=params,
            headers=await self._auth_headers(required=False),
        )

        url, platform = pick_youtube_link(payload)
        video_id = extract_video_id(url)
        logger.debug(
            "Resolved link",
            source_url=source_url,
            platform=platform,
            video_id=video_id,
        )
        return LinkResolution(
            target_id=video_id,
            url=url if video_id else None,
            via=platform or "odesli",
            raw=payload,
        )
