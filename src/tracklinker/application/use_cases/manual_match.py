"""Manual match decisions.

When automatic resolution leaves a track unresolved (or picks the wrong
item), the user either pastes a target URL / id or confirms one of the
ranked search candidates. Both are persisted with ``decided_by=user`` so
later runs reuse them from the cache.
"""

from attrs import define

from tracklinker.config import get_logger
from tracklinker.domain.entities import (
    DecidedBy,
    MatchRecord,
    MatchTag,
    MatchVia,
    ProviderSearchResult,
    TrackMapping,
)
from tracklinker.domain.errors import MappingError
from tracklinker.domain.matching import extract_video_id, is_video_id, watch_url
from tracklinker.domain.repositories import MatchCacheProtocol

logger = get_logger(__name__).bind(service="manual_match")


def parse_manual_target(value: str) -> str:
    """Turn user input (video URL or bare 11-char id) into a video id.

    Raises:
        MappingError: The input is neither a recognizable URL nor an id.
    """
    candidate = (value or "").strip()
    if is_video_id(candidate):
        return candidate

    video_id = extract_video_id(candidate)
    if video_id is None:
        raise MappingError(f"Not a YouTube video URL or id: {value!r}")
    return video_id


@define(slots=True)
class ManualMatchUseCase:
    source_provider: str
    target_provider: str
    match_cache: MatchCacheProtocol

    async def _persist(
        self, source_track_id: str, target_id: str, score: float, reason: str | None = None
    ) -> MatchRecord:
        record = MatchRecord(
            source_provider=self.source_provider,
            source_track_id=source_track_id,
            target_provider=self.target_provider,
            target_id=target_id,
            score=score,
            decided_by=DecidedBy.USER,
            via=MatchVia.MANUAL,
            metadata={"previous_reason": reason} if reason else {},
        )
        await self.match_cache.put(record)
        logger.info("Recorded manual match", track_id=source_track_id, target_id=target_id)
        return record

    async def record_target(
        self, source_track_id: str, target: str, score: float = 1.0
    ) -> MatchRecord:
        """Persist a pasted URL or id for a source track known only by its id.

        The next mapping pass picks the decision up from the cache.
        """
        try:
            target_id = parse_manual_target(target)
        except MappingError as e:
            raise MappingError(str(e), track_id=source_track_id) from e
        return await self._persist(source_track_id, target_id, score)

    async def record_manual_match(
        self, mapping: TrackMapping, target: str, score: float = 1.0
    ) -> TrackMapping:
        """Persist a pasted URL or id and return the updated mapping."""
        try:
            target_id = parse_manual_target(target)
        except MappingError as e:
            raise MappingError(str(e), track_id=mapping.track.id) from e

        await self._persist(mapping.track.id, target_id, score, mapping.reason)
        return mapping.with_decision(
            target_id=target_id,
            score=score,
            via=MatchVia.MANUAL,
            decided_by=DecidedBy.USER,
            selected_candidate=ProviderSearchResult(
                id=target_id,
                score=score,
                url=watch_url(target_id),
                matched_by=MatchTag.MANUAL,
            ),
        )

    async def confirm_candidate(
        self, mapping: TrackMapping, candidate: ProviderSearchResult
    ) -> TrackMapping:
        """Persist one of the ranked candidates as the user's choice."""
        await self._persist(mapping.track.id, candidate.id, candidate.score, mapping.reason)
        return mapping.with_decision(
            target_id=candidate.id,
            score=candidate.score,
            via=MatchVia.MANUAL,
            decided_by=DecidedBy.USER,
            selected_candidate=candidate,
        )
