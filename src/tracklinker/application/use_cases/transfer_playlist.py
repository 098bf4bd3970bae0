"""Transfer playlist use case: prepare, map and execute.

Composes the match cache, cross-catalog link resolution, scored target
search and quota budgeting into a three-phase pipeline:

1. ``prepare`` loads the source tracks into an immutable TransferPlan.
2. ``map_tracks`` resolves every track to a target item, strictly in order.
3. ``execute`` creates the target playlist and inserts resolved items in
   sequential chunks, recording the run.

The orchestrator tracks its lifecycle through the pure transfer state
machine and reports through an injected progress sink.
"""

import asyncio

from attrs import define

from tracklinker.application.utilities.progress import ProgressEmitter
from tracklinker.application.utilities.rate_limiter import SlidingWindowRateLimiter
from tracklinker.application.utilities.retry import RetryPolicy
from tracklinker.config import get_logger
from tracklinker.domain.entities import (
    UNRESOLVED_VIA,
    DecidedBy,
    ExecuteResult,
    MappingResult,
    MatchRecord,
    MatchTag,
    MatchVia,
    PlaylistCore,
    ProviderSearchResult,
    RunError,
    RunStatus,
    RunSummary,
    SearchHints,
    TrackCore,
    TrackMapping,
    TransferPlan,
    TransferStage,
)
from tracklinker.domain.matching import (
    DEFAULT_ACCEPTANCE_POLICY,
    AcceptancePolicy,
    build_search_query,
    low_confidence_reason,
    rank_candidates,
    should_auto_accept,
    watch_url,
)
from tracklinker.domain.quota import (
    YOUTUBE_DEFAULT_DAILY_QUOTA,
    QuotaState,
    estimate_insert_capacity,
)
from tracklinker.domain.repositories import (
    CatalogProvider,
    LinkResolution,
    LinkResolverProtocol,
    MatchCacheProtocol,
    ProgressSink,
    RunLogProtocol,
)
from tracklinker.domain.transfer_state import TransferEventType, TransferStateMachine

from .manual_match import ManualMatchUseCase

logger = get_logger(__name__).bind(service="orchestrator")

NO_RESULTS_REASON = "Search returned no results"


@define(frozen=True, slots=True)
class ExecuteOptions:
    """Knobs for the insert phase.

    Attributes:
        daily_quota: Target catalog daily unit budget
        used_today: Units already spent today
        reserved_units: Units held back for other work, added to used_today
        chunk_size: Items per insertion call
        resume_from_track_id: Skip resolved matches up to and including this track
        playlist_name: Overrides the plan's target playlist name
        playlist_description: Description for the created playlist
    """

    daily_quota: int = YOUTUBE_DEFAULT_DAILY_QUOTA
    used_today: int = 0
    reserved_units: int | None = None
    chunk_size: int = 20
    resume_from_track_id: str | None = None
    playlist_name: str | None = None
    playlist_description: str | None = None


def source_track_url(provider_id: str, track: TrackCore) -> str | None:
    """Public URL of a source track, used for cross-catalog link lookups."""
    if track.url:
        return track.url
    if provider_id == "spotify":
        return f"https://open.spotify.com/track/{track.id}"
    return None


class TransferOrchestrator:
    """Drives one playlist transfer from source to target catalog.

    All collaborators are injected; the orchestrator holds no global
    database or network handles.
    """

    def __init__(
        self,
        source: CatalogProvider,
        target: CatalogProvider,
        match_cache: MatchCacheProtocol,
        run_log: RunLogProtocol,
        link_resolver: LinkResolverProtocol | None = None,
        limiter: SlidingWindowRateLimiter | None = None,
        retry_policy: RetryPolicy | None = None,
        acceptance_policy: AcceptancePolicy = DEFAULT_ACCEPTANCE_POLICY,
        on_progress: ProgressSink | None = None,
        preferred_channel_ids: list[str] | None = None,
    ) -> None:
        self.source = source
        self.target = target
        self.match_cache = match_cache
        self.run_log = run_log
        self.link_resolver = link_resolver
        self.limiter = limiter or SlidingWindowRateLimiter(max_calls=10, window_seconds=60)
        self.retry_policy = retry_policy or RetryPolicy()
        self.acceptance_policy = acceptance_policy
        self.preferred_channel_ids = list(preferred_channel_ids or [])
        self.progress = ProgressEmitter(on_progress)
        self.state = TransferStateMachine()
        self.manual = ManualMatchUseCase(
            source_provider=source.provider_id,
            target_provider=target.provider_id,
            match_cache=match_cache,
        )

    @property
    def stage(self) -> TransferStage:
        return self.state.stage

    async def _fail(self, error: Exception, processed: int = 0, total: int = 0) -> None:
        self.state.dispatch(TransferEventType.FAIL)
        await self.progress.emit(
            TransferStage.ERROR,
            processed,
            total,
            message="Transfer failed",
            last_error=str(error) or type(error).__name__,
        )

    # ------------------------------------------------------------------
    # Phase 1: prepare
    # ------------------------------------------------------------------

    async def prepare(
        self, playlist: PlaylistCore, target_name: str | None = None
    ) -> TransferPlan:
        """Load the source tracks and fix what this run will transfer."""
        if self.state.stage != TransferStage.IDLE and not self.state.is_terminal:
            self.state.dispatch(TransferEventType.RESET)
        self.state.dispatch(TransferEventType.START)

        await self.progress.emit(
            TransferStage.PREPARING, 0, 0, message=f"Loading tracks for {playlist.name}"
        )

        try:
            tracks = await self.source.list_tracks(playlist.id)
        except Exception as e:
            logger.error(f"Failed to load tracks for playlist {playlist.id}: {e}")
            await self._fail(e)
            raise

        logger.info(
            f"Prepared transfer of {len(tracks)} tracks",
            playlist_id=playlist.id,
            playlist_name=playlist.name,
        )
        return TransferPlan(
            source_playlist=playlist,
            target_playlist_name=target_name or playlist.name,
            tracks=list(tracks),
        )

    # ------------------------------------------------------------------
    # Phase 2: map
    # ------------------------------------------------------------------

    def _enter_mapping(self) -> None:
        match self.state.stage:
            case TransferStage.PREPARING:
                self.state.dispatch(TransferEventType.PREPARED)
            case TransferStage.AWAITING_USER:
                self.state.dispatch(TransferEventType.REMAP)
            case TransferStage.MAPPING:
                pass
            case _:
                self.state.dispatch(TransferEventType.RESET)
                self.state.dispatch(TransferEventType.START)
                self.state.dispatch(TransferEventType.PREPARED)

    async def map_tracks(
        self,
        plan: TransferPlan,
        cancel_event: asyncio.Event | None = None,
    ) -> MappingResult:
        """Resolve every plan track to a target item, in source order.

        Tracks are processed one at a time. Catalog search errors propagate;
        cache and link-resolution failures only degrade resolution quality.
        When ``cancel_event`` is set no further tracks are started and the
        mappings gathered so far are returned with ``canceled=True``.
        """
        self._enter_mapping()
        total = plan.total
        mappings: list[TrackMapping] = []

        await self.progress.emit(
            TransferStage.MAPPING,
            0,
            total,
            message="Resolving matches with cache and link resolution",
        )

        for index, track in enumerate(plan.tracks):
            if cancel_event is not None and cancel_event.is_set():
                logger.info(f"Mapping canceled after {index} of {total} tracks")
                self.state.dispatch(TransferEventType.CANCEL)
                await self.progress.emit(
                    TransferStage.CANCELED, index, total, message="Mapping canceled"
                )
                return MappingResult(matches=mappings, canceled=True)

            try:
                mapping = await self._resolve_track(plan.source_playlist.id, track)
            except Exception as e:
                logger.error(f"Search failed for track {track.id}: {e}")
                await self._fail(e, index, total)
                raise

            mappings.append(mapping)
            await self.progress.emit(
                TransferStage.MAPPING,
                index + 1,
                total,
                message=(
                    f"Found match for {track.title}"
                    if mapping.target_id
                    else f"Track requires manual review: {track.title}"
                ),
                last_error=mapping.error,
            )

        result = MappingResult(matches=mappings)
        unresolved = len(result.unresolved)
        self.state.dispatch(TransferEventType.MAPPED, unresolved=unresolved)
        if unresolved:
            await self.progress.emit(
                TransferStage.AWAITING_USER,
                total,
                total,
                message=f"{unresolved} tracks require manual review",
            )

        stats = result.stats
        logger.info(
            "Mapping complete",
            total=stats.total,
            auto=stats.auto,
            manual=stats.manual,
        )
        return result

    async def _resolve_track(self, playlist_id: str, track: TrackCore) -> TrackMapping:
        cached = await self._load_cached_match(track)
        if cached is not None and cached.target_id:
            return TrackMapping(
                track=track,
                target_id=cached.target_id,
                score=cached.score,
                via=cached.via,
                decided_by=cached.decided_by,
                cached=True,
            )

        target_id: str | None = None
        via = MatchVia.MANUAL
        score = 0.0
        reason: str | None = None
        candidates: list[ProviderSearchResult] | None = None
        selected: ProviderSearchResult | None = None

        resolution = await self._try_link_resolution(track)
        if resolution is not None and resolution.target_id:
            target_id = resolution.target_id
            via = MatchVia.ODESLI
            score = 1.0
            selected = ProviderSearchResult(
                id=target_id,
                score=1.0,
                url=resolution.url or watch_url(target_id),
                matched_by=MatchTag.ODESLI,
            )

        if target_id is None:
            hints = SearchHints(
                duration_ms=track.duration_ms,
                isrc=track.isrc,
                preferred_channel_ids=self.preferred_channel_ids,
            )
            query = build_search_query(track)
            results = await self.retry_policy.run(
                lambda: self.target.search(query, hints), name="catalog_search"
            )

            if results:
                candidates = rank_candidates(results)
                best = candidates[0]
                score = best.score
                if should_auto_accept(best, track, self.acceptance_policy):
                    target_id = best.id
                    via = MatchVia.PROVIDER_SEARCH
                    selected = best
                else:
                    reason = low_confidence_reason(best)
            else:
                reason = NO_RESULTS_REASON

        if target_id:
            await self._save_match(
                MatchRecord(
                    source_provider=self.source.provider_id,
                    source_track_id=track.id,
                    target_provider=self.target.provider_id,
                    target_id=target_id,
                    score=score,
                    decided_by=DecidedBy.AUTO,
                    via=via,
                    metadata={"playlist_id": playlist_id},
                )
            )

        return TrackMapping(
            track=track,
            target_id=target_id,
            score=score,
            via=via if target_id else UNRESOLVED_VIA,
            decided_by=DecidedBy.AUTO,
            reason=reason,
            candidates=candidates,
            selected_candidate=selected,
        )

    async def _load_cached_match(self, track: TrackCore) -> MatchRecord | None:
        try:
            return await self.match_cache.get(self.source.provider_id, track.id)
        except Exception as e:
            logger.warning(f"Match cache read failed for {track.id}: {e}")
            return None

    async def _save_match(self, record: MatchRecord) -> None:
        try:
            await self.match_cache.put(record)
        except Exception as e:
            logger.warning(f"Match cache write failed for {record.key}: {e}")

    async def _try_link_resolution(self, track: TrackCore) -> LinkResolution | None:
        if self.link_resolver is None:
            return None

        url = source_track_url(self.source.provider_id, track)
        if url is None:
            return None

        resolver = self.link_resolver
        try:
            return await self.retry_policy.run(
                lambda: self.limiter(lambda: resolver.resolve(url)),
                name="link_resolution",
            )
        except Exception as e:
            logger.warning(f"Link resolution failed for {track.id}: {e}")
            return None

    # ------------------------------------------------------------------
    # Phase 3: execute
    # ------------------------------------------------------------------

    def _select_insertions(
        self,
        mapping: MappingResult,
        options: ExecuteOptions,
        max_inserts: int,
    ) -> list[TrackMapping]:
        resolved = [item for item in mapping.matches if item.is_resolved]

        if options.resume_from_track_id:
            position = next(
                (
                    index
                    for index, item in enumerate(resolved)
                    if item.track.id == options.resume_from_track_id
                ),
                None,
            )
            if position is None:
                logger.warning(
                    f"Resume track {options.resume_from_track_id} not among resolved matches"
                )
            else:
                resolved = resolved[position + 1:]

        return resolved[:max_inserts]

    async def execute(
        self,
        plan: TransferPlan,
        mapping: MappingResult,
        options: ExecuteOptions | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> ExecuteResult:
        """Create the target playlist and insert resolved matches in chunks.

        Insertion never exceeds the quota estimate computed with one playlist
        creation reserved. A failing chunk marks only its own items as failed.
        Playlist creation failure is fatal: the run is finalized as ``error``
        and the exception propagates.
        """
        options = options or ExecuteOptions()
        chunk_size = max(1, options.chunk_size)

        estimate = estimate_insert_capacity(
            QuotaState(
                daily_limit=options.daily_quota,
                used_today=options.used_today + (options.reserved_units or 0),
            ),
            include_playlist_creation=True,
        )
        allowed = 0 if estimate.will_exceed else estimate.max_inserts
        selected = self._select_insertions(mapping, options, allowed)
        total = len(selected)
        playlist_name = options.playlist_name or plan.target_playlist_name

        logger.info(
            f"Executing transfer of {total} tracks",
            remaining_units=estimate.remaining_units,
            max_inserts=estimate.max_inserts,
            chunk_size=chunk_size,
        )

        self.state.dispatch(TransferEventType.EXECUTE)
        run_id = await self.run_log.start_run(plan.source_playlist.id)

        await self.progress.emit(
            TransferStage.CREATING_PLAYLIST, 0, total, message=f"Creating playlist {playlist_name}"
        )
        try:
            playlist = await self.target.create_playlist(
                playlist_name, options.playlist_description
            )
        except Exception as e:
            logger.error(f"Playlist creation failed: {e}")
            await self.run_log.finalize_run(
                run_id,
                RunSummary(
                    added=0,
                    skipped=plan.total,
                    failed=0,
                    errors=[RunError(track_id="", message=str(e) or type(e).__name__)],
                    status=RunStatus.ERROR,
                ),
            )
            await self._fail(e, 0, total)
            raise

        self.state.dispatch(TransferEventType.PLAYLIST_CREATED)
        await self.progress.emit(
            TransferStage.INSERTING, 0, total, message=f"Created playlist {playlist.id}"
        )

        inserted = 0
        failures: list[TrackMapping] = []
        canceled = False

        for start in range(0, total, chunk_size):
            if cancel_event is not None and cancel_event.is_set():
                canceled = True
                break

            chunk = selected[start:start + chunk_size]
            ids = [item.target_id for item in chunk if item.target_id]
            chunk_error: str | None = None
            try:
                await self.target.add_tracks(playlist.id, ids)
                inserted += len(ids)
            except Exception as e:
                chunk_error = str(e) or type(e).__name__
                logger.warning(
                    f"Chunk insertion failed: {chunk_error}",
                    chunk_start=start,
                    chunk_size=len(chunk),
                )
                failures.extend(item.with_error(chunk_error) for item in chunk)

            processed = min(start + len(chunk), total)
            await self.progress.emit(
                TransferStage.INSERTING,
                processed,
                total,
                message=f"Inserted {processed} / {total}",
                last_error=chunk_error,
            )

        skipped = plan.total - inserted
        status = RunStatus.CANCELED if canceled else RunStatus.COMPLETE
        await self.run_log.finalize_run(
            run_id,
            RunSummary(
                added=inserted,
                skipped=skipped,
                failed=len(failures),
                errors=[
                    RunError(track_id=item.track.id, message=item.error or "Unknown error")
                    for item in failures
                ],
                status=status,
                target_playlist_id=playlist.id,
            ),
        )

        if canceled:
            self.state.dispatch(TransferEventType.CANCEL)
            await self.progress.emit(
                TransferStage.CANCELED, inserted, total, message=f"Transfer canceled (run {run_id})"
            )
        else:
            self.state.dispatch(TransferEventType.INSERTED)
            await self.progress.emit(
                TransferStage.COMPLETE, inserted, total, message=f"Transfer completed (run {run_id})"
            )

        logger.info(
            "Transfer finished",
            run_id=run_id,
            inserted=inserted,
            skipped=skipped,
            failed=len(failures),
            status=str(status),
        )
        return ExecuteResult(
            playlist_id=playlist.id,
            inserted=inserted,
            skipped=skipped,
            failures=failures,
            pending_manual=mapping.unresolved,
            run_id=run_id,
            canceled=canceled,
        )

    # ------------------------------------------------------------------
    # Manual decisions
    # ------------------------------------------------------------------

    async def record_manual_match(
        self, mapping: TrackMapping, target: str, score: float = 1.0
    ) -> TrackMapping:
        """Persist a user-chosen target (URL or bare id) for a track."""
        return await self.manual.record_manual_match(mapping, target, score)

    async def confirm_candidate(
        self, mapping: TrackMapping, candidate: ProviderSearchResult
    ) -> TrackMapping:
        """Persist a search candidate the user accepted."""
        return await self.manual.confirm_candidate(mapping, candidate)
