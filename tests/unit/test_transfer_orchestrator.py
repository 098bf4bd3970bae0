"""Tests for the transfer orchestrator: prepare, map and execute."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from tracklinker.application.use_cases import ExecuteOptions
from tracklinker.application.use_cases.transfer_playlist import (
    NO_RESULTS_REASON,
    source_track_url,
)
from tracklinker.domain.entities import (
    UNRESOLVED_VIA,
    DecidedBy,
    MappingResult,
    MatchRecord,
    MatchStats,
    MatchTag,
    MatchVia,
    PlaylistCore,
    ProviderSearchResult,
    RunError,
    RunStatus,
    TrackCore,
    TrackMapping,
    TransferPlan,
    TransferStage,
)
from tracklinker.domain.errors import (
    AuthError,
    ProviderWriteError,
    QuotaExhaustedError,
    TransientError,
    UnknownError,
)

from tests.fixtures.catalogs import (
    FakeLinkResolver,
    FakeSourceCatalog,
    FakeTargetCatalog,
    make_track,
)
from tests.fixtures.models import resolved_mapping


def scenario_target():
    """Target where Airbag matches by ISRC, Paranoid Android by duration, the third not at all."""
    return FakeTargetCatalog(
        results={
            "Radiohead - Airbag": [
                ProviderSearchResult(id="vidisrc0001", score=1.0, reasons=["ISRC match"]),
                ProviderSearchResult(id="vidother001", score=0.4),
            ],
            "Radiohead - Paranoid Android": [
                ProviderSearchResult(id="viddur00002", score=0.9, duration_delta_ms=500),
            ],
        }
    )


class TestSourceTrackUrl:
    """Test cases for link-resolution URLs."""

    def test_prefers_track_url(self):
        track = TrackCore(id="x", title="t", url="https://open.spotify.com/track/x?si=1")
        assert source_track_url("spotify", track) == "https://open.spotify.com/track/x?si=1"

    def test_builds_spotify_url(self):
        assert (
            source_track_url("spotify", TrackCore(id="abc", title="t"))
            == "https://open.spotify.com/track/abc"
        )

    def test_unknown_provider_without_url(self):
        assert source_track_url("deezer", TrackCore(id="abc", title="t")) is None


class TestPrepare:
    """Test cases for the prepare phase."""

    async def test_loads_tracks_in_order(self, make_orchestrator, playlist, tracks, recorder):
        """Test that prepare captures every source track and defaults the name."""
        orchestrator = make_orchestrator()

        plan = await orchestrator.prepare(playlist)

        assert [t.id for t in plan.tracks] == ["sp1", "sp2", "sp3"]
        assert plan.target_playlist_name == "OK Computer"
        assert plan.total == 3
        assert orchestrator.stage == TransferStage.PREPARING
        assert recorder.events[0].stage == TransferStage.PREPARING

    async def test_custom_target_name(self, make_orchestrator, playlist):
        """Test that an explicit target name wins."""
        plan = await make_orchestrator().prepare(playlist, "Mix for YouTube")
        assert plan.target_playlist_name == "Mix for YouTube"

    async def test_source_failure_enters_error(self, make_orchestrator, playlist, recorder):
        """Test that a listing failure propagates and marks the run failed."""
        orchestrator = make_orchestrator(
            source=FakeSourceCatalog(list_error=TransientError("spotify down"))
        )

        with pytest.raises(TransientError):
            await orchestrator.prepare(playlist)

        assert orchestrator.stage == TransferStage.ERROR
        assert recorder.events[-1].last_error == "spotify down"


class TestMapTracks:
    """Test cases for the mapping phase."""

    async def test_three_track_scenario(self, make_orchestrator, playlist, match_cache, recorder):
        """Test ISRC and duration auto-accepts plus one track without results."""
        target = scenario_target()
        orchestrator = make_orchestrator(target=target)

        result = await orchestrator.map_tracks(await orchestrator.prepare(playlist))

        assert [m.target_id for m in result.matches] == ["vidisrc0001", "viddur00002", None]
        assert result.stats == MatchStats(total=3, auto=2, manual=1)
        unresolved = result.unresolved
        assert [m.track.id for m in unresolved] == ["sp3"]
        assert unresolved[0].reason == NO_RESULTS_REASON
        assert "no results" in unresolved[0].reason
        assert unresolved[0].via == UNRESOLVED_VIA
        assert orchestrator.stage == TransferStage.AWAITING_USER
        assert recorder.events[-1].stage == TransferStage.AWAITING_USER
        assert recorder.events[-1].message == "1 tracks require manual review"

    async def test_search_query_and_hints(self, make_orchestrator, playlist):
        """Test that search uses 'artists - title' and passes source hints."""
        target = scenario_target()
        orchestrator = make_orchestrator(target=target, preferred_channel_ids=["UCradio"])

        await orchestrator.map_tracks(await orchestrator.prepare(playlist))

        query, hints = target.search_calls[0]
        assert query == "Radiohead - Airbag"
        assert hints.duration_ms == 284_000
        assert hints.isrc == "GBAYE9700001"
        assert hints.preferred_channel_ids == ["UCradio"]

    async def test_progress_after_each_track(self, make_orchestrator, playlist, recorder):
        """Test per-track progress messages."""
        orchestrator = make_orchestrator(target=scenario_target())

        await orchestrator.map_tracks(await orchestrator.prepare(playlist))

        mapping_events = [e for e in recorder.events if e.stage == TransferStage.MAPPING]
        assert [e.processed for e in mapping_events] == [0, 1, 2, 3]
        assert mapping_events[1].message == "Found match for Airbag"
        assert (
            mapping_events[3].message
            == "Track requires manual review: Subterranean Homesick Alien"
        )

    async def test_cache_then_link_resolution_then_search(
        self, make_orchestrator, playlist, tracks, match_cache
    ):
        """Test the resolution order across the three sources."""
        await match_cache.put(
            MatchRecord(
                source_provider="spotify",
                source_track_id="sp1",
                target_provider="youtube",
                target_id="vidcached01",
                score=0.91,
                via=MatchVia.PROVIDER_SEARCH,
            )
        )
        resolver = FakeLinkResolver({tracks[1].url: "vidodesli02"})
        target = FakeTargetCatalog(
            results={
                "Radiohead - Subterranean Homesick Alien": [
                    ProviderSearchResult(id="vidsearch03", score=0.92)
                ]
            }
        )
        orchestrator = make_orchestrator(target=target, link_resolver=resolver)

        result = await orchestrator.map_tracks(await orchestrator.prepare(playlist))

        assert [m.target_id for m in result.matches] == [
            "vidcached01",
            "vidodesli02",
            "vidsearch03",
        ]
        assert [m.via for m in result.matches] == [
            MatchVia.PROVIDER_SEARCH,
            MatchVia.ODESLI,
            MatchVia.PROVIDER_SEARCH,
        ]
        assert [m.cached for m in result.matches] == [True, False, False]
        assert result.matches[0].score == 0.91

        odesli = result.matches[1]
        assert odesli.score == 1.0
        assert odesli.selected_candidate.matched_by == MatchTag.ODESLI
        assert odesli.selected_candidate.url == "https://www.youtube.com/watch?v=vidodesli02"

        assert resolver.calls == [tracks[1].url, tracks[2].url]
        assert [query for query, _ in target.search_calls] == [
            "Radiohead - Subterranean Homesick Alien"
        ]
        assert orchestrator.stage == TransferStage.MAPPING

    async def test_successful_resolutions_are_cached(
        self, make_orchestrator, playlist, match_cache
    ):
        """Test that auto decisions are persisted and misses are not."""
        orchestrator = make_orchestrator(target=scenario_target())

        await orchestrator.map_tracks(await orchestrator.prepare(playlist))

        assert set(match_cache.records) == {"spotify:sp1", "spotify:sp2"}
        record = match_cache.records["spotify:sp2"]
        assert record.target_id == "viddur00002"
        assert record.target_provider == "youtube"
        assert record.decided_by == DecidedBy.AUTO
        assert record.via == MatchVia.PROVIDER_SEARCH
        assert record.metadata == {"playlist_id": "pl-source"}

    async def test_second_resolution_comes_from_cache(self, make_orchestrator, playlist):
        """Test that resolving the same tracks twice reuses the first decision."""
        target = scenario_target()
        orchestrator = make_orchestrator(target=target)
        plan = await orchestrator.prepare(playlist)

        first = await orchestrator.map_tracks(plan)
        searches = len(target.search_calls)
        second = await orchestrator.map_tracks(plan)

        for before, after in zip(first.matches[:2], second.matches[:2], strict=True):
            assert after.cached
            assert after.target_id == before.target_id
            assert after.score == before.score
        # Only the unresolved track is searched again
        assert len(target.search_calls) == searches + 1

    async def test_empty_cached_target_is_a_miss(
        self, make_orchestrator, playlist, match_cache
    ):
        """Test that a record without a target id does not short-circuit."""
        await match_cache.put(
            MatchRecord(source_provider="spotify", source_track_id="sp1", target_provider="youtube")
        )
        orchestrator = make_orchestrator(target=scenario_target())

        result = await orchestrator.map_tracks(await orchestrator.prepare(playlist))

        assert not result.matches[0].cached
        assert result.matches[0].target_id == "vidisrc0001"

    async def test_low_confidence_needs_review(self, make_orchestrator, playlist):
        """Test that weak candidates are kept for review with an explanation."""
        target = FakeTargetCatalog(
            results={"Radiohead - Paranoid Android": [ProviderSearchResult(id="weak0000001", score=0.3)]}
        )
        orchestrator = make_orchestrator(target=target)

        result = await orchestrator.map_tracks(await orchestrator.prepare(playlist))

        weak = result.matches[1]
        assert weak.target_id is None
        assert weak.score == 0.3
        assert weak.reason == "Low search confidence (score 0.30)"
        assert [c.id for c in weak.candidates] == ["weak0000001"]

    async def test_link_resolution_failure_falls_back_to_search(
        self, make_orchestrator, playlist, tracks
    ):
        """Test that link service outages only degrade resolution."""
        resolver = FakeLinkResolver(error=TransientError("odesli down"))
        orchestrator = make_orchestrator(target=scenario_target(), link_resolver=resolver)

        result = await orchestrator.map_tracks(await orchestrator.prepare(playlist))

        assert result.stats.auto == 2
        # Two attempts per track under the fast retry policy
        assert resolver.calls.count(tracks[0].url) == 2
        assert len(resolver.calls) == 6

    async def test_non_transient_link_failure_not_retried(
        self, make_orchestrator, playlist
    ):
        """Test that non-transient link errors are swallowed without retries."""
        resolver = FakeLinkResolver(error=UnknownError("bad payload"))
        orchestrator = make_orchestrator(target=scenario_target(), link_resolver=resolver)

        await orchestrator.map_tracks(await orchestrator.prepare(playlist))

        assert len(resolver.calls) == 3

    async def test_transient_search_failure_is_retried(self, make_orchestrator, playlist, tracks):
        """Test that search is retried on transient failures."""
        target = FakeTargetCatalog()
        target.search = AsyncMock(
            side_effect=[TransientError("blip"), [ProviderSearchResult(id="vid00000001", score=0.95)]]
        )
        orchestrator = make_orchestrator(target=target)
        plan = TransferPlan(source_playlist=playlist, target_playlist_name="x", tracks=tracks[:1])

        result = await orchestrator.map_tracks(plan)

        assert result.matches[0].target_id == "vid00000001"
        assert target.search.await_count == 2

    async def test_exhausted_quota_stops_search(self, make_orchestrator, playlist):
        """Test that a spent daily budget is not searched again."""
        target = FakeTargetCatalog(search_error=QuotaExhaustedError("daily quota exhausted"))
        orchestrator = make_orchestrator(target=target)

        with pytest.raises(QuotaExhaustedError):
            await orchestrator.map_tracks(await orchestrator.prepare(playlist))

        assert len(target.search_calls) == 1
        assert orchestrator.stage == TransferStage.ERROR

    async def test_search_error_propagates(self, make_orchestrator, playlist, recorder):
        """Test that search failures abort mapping and enter the error stage."""
        target = FakeTargetCatalog(search_error=AuthError("token expired"))
        orchestrator = make_orchestrator(target=target)

        with pytest.raises(AuthError):
            await orchestrator.map_tracks(await orchestrator.prepare(playlist))

        assert len(target.search_calls) == 1
        assert orchestrator.stage == TransferStage.ERROR
        assert recorder.events[-1].stage == TransferStage.ERROR
        assert recorder.events[-1].last_error == "token expired"

    async def test_cache_failures_degrade_gracefully(self, make_orchestrator, playlist):
        """Test that cache read and write failures never fail mapping."""
        broken_cache = AsyncMock()
        broken_cache.get.side_effect = RuntimeError("database is locked")
        broken_cache.put.side_effect = RuntimeError("database is locked")
        orchestrator = make_orchestrator(target=scenario_target(), match_cache=broken_cache)

        result = await orchestrator.map_tracks(await orchestrator.prepare(playlist))

        assert result.stats.auto == 2
        assert broken_cache.put.await_count == 2

    async def test_cancel_before_start(self, make_orchestrator, playlist, recorder):
        """Test that a pre-set cancel event stops mapping immediately."""
        target = scenario_target()
        orchestrator = make_orchestrator(target=target)
        cancel = asyncio.Event()
        cancel.set()

        result = await orchestrator.map_tracks(await orchestrator.prepare(playlist), cancel)

        assert result.canceled
        assert result.matches == []
        assert target.search_calls == []
        assert orchestrator.stage == TransferStage.CANCELED
        assert recorder.events[-1].stage == TransferStage.CANCELED

    async def test_cancel_between_tracks(self, make_orchestrator, playlist):
        """Test that cancellation keeps mappings gathered so far."""
        cancel = asyncio.Event()

        def sink(progress):
            if progress.stage == TransferStage.MAPPING and progress.processed == 1:
                cancel.set()

        orchestrator = make_orchestrator(target=scenario_target(), on_progress=sink)

        result = await orchestrator.map_tracks(await orchestrator.prepare(playlist), cancel)

        assert result.canceled
        assert [m.track.id for m in result.matches] == ["sp1"]


class TestExecute:
    """Test cases for the insert phase."""

    async def test_inserts_in_order_and_chunks(self, make_orchestrator, plan, tracks, run_log, recorder):
        """Test sequential chunked insertion and run finalization."""
        target = FakeTargetCatalog()
        orchestrator = make_orchestrator(target=target)

        result = await orchestrator.execute(
            plan, resolved_mapping(tracks), ExecuteOptions(chunk_size=2)
        )

        assert target.add_calls == [["vid00000001", "vid00000002"], ["vid00000003"]]
        assert target.created[0].name == "OK Computer • YouTube"
        assert result.playlist_id == "PL1"
        assert result.inserted == 3
        assert result.skipped == 0
        assert result.failures == []
        assert not result.canceled

        run = run_log.runs[result.run_id]
        assert run.status == RunStatus.COMPLETE
        assert run.added == 3
        assert run.target_playlist_id == "PL1"
        assert run.finished_at is not None

        assert orchestrator.stage == TransferStage.COMPLETE
        assert recorder.stages == [
            TransferStage.CREATING_PLAYLIST,
            TransferStage.INSERTING,
            TransferStage.INSERTING,
            TransferStage.INSERTING,
            TransferStage.COMPLETE,
        ]

    async def test_playlist_name_override(self, make_orchestrator, plan, tracks):
        """Test that options can rename the target playlist."""
        target = FakeTargetCatalog()
        orchestrator = make_orchestrator(target=target)

        await orchestrator.execute(
            plan,
            resolved_mapping(tracks),
            ExecuteOptions(playlist_name="Renamed", playlist_description="via tracklinker"),
        )

        assert target.created[0].name == "Renamed"
        assert target.created[0].description == "via tracklinker"

    async def test_failed_chunk_is_isolated(self, make_orchestrator, plan, tracks, run_log, recorder):
        """Test that a failing chunk marks only its items and later chunks still run."""
        target = FakeTargetCatalog(failing_ids={"vid00000001"})
        orchestrator = make_orchestrator(target=target)

        result = await orchestrator.execute(
            plan, resolved_mapping(tracks), ExecuteOptions(chunk_size=2)
        )

        assert len(target.add_calls) == 2
        assert result.inserted == 1
        assert [f.track.id for f in result.failures] == ["sp1", "sp2"]
        assert all(f.error == "Failed to insert vid00000001" for f in result.failures)
        assert result.skipped == 2

        run = run_log.runs[result.run_id]
        assert run.status == RunStatus.COMPLETE
        assert run.failed == 2
        assert run.errors == [
            RunError(track_id="sp1", message="Failed to insert vid00000001"),
            RunError(track_id="sp2", message="Failed to insert vid00000001"),
        ]

        errors = [e.last_error for e in recorder.events if e.stage == TransferStage.INSERTING]
        assert errors == [None, "Failed to insert vid00000001", None]

    async def test_quota_caps_insertions(self, make_orchestrator, playlist):
        """Test that a 150-unit budget inserts only the first two of five matches."""
        tracks = [make_track(f"sp{i}", f"Song {i}") for i in range(1, 6)]
        plan = TransferPlan(source_playlist=playlist, target_playlist_name="x", tracks=tracks)
        target = FakeTargetCatalog()
        orchestrator = make_orchestrator(target=target)

        result = await orchestrator.execute(
            plan, resolved_mapping(tracks), ExecuteOptions(daily_quota=150)
        )

        assert target.inserted["PL1"] == ["vid00000001", "vid00000002"]
        assert result.inserted == 2
        assert result.skipped == 3

    async def test_reserved_units_reduce_capacity(self, make_orchestrator, plan, tracks):
        """Test that reserved units count as already spent."""
        target = FakeTargetCatalog()
        orchestrator = make_orchestrator(target=target)

        result = await orchestrator.execute(
            plan,
            resolved_mapping(tracks),
            ExecuteOptions(daily_quota=10_000, used_today=9_800, reserved_units=50),
        )

        assert result.inserted == 2

    async def test_exhausted_quota_inserts_nothing(self, make_orchestrator, plan, tracks):
        """Test that no insert is attempted once the budget is gone."""
        target = FakeTargetCatalog()
        orchestrator = make_orchestrator(target=target)

        result = await orchestrator.execute(
            plan, resolved_mapping(tracks), ExecuteOptions(daily_quota=50)
        )

        assert target.add_calls == []
        assert result.inserted == 0
        assert result.skipped == 3

    async def test_resume_skips_through_track(self, make_orchestrator, plan, tracks):
        """Test that resuming skips matches up to and including the given track."""
        target = FakeTargetCatalog()
        orchestrator = make_orchestrator(target=target)

        result = await orchestrator.execute(
            plan, resolved_mapping(tracks), ExecuteOptions(resume_from_track_id="sp1")
        )

        assert target.inserted["PL1"] == ["vid00000002", "vid00000003"]
        assert result.skipped == 1

    async def test_unknown_resume_track_skips_nothing(self, make_orchestrator, plan, tracks):
        """Test that an unknown resume id inserts every match."""
        target = FakeTargetCatalog()
        orchestrator = make_orchestrator(target=target)

        result = await orchestrator.execute(
            plan, resolved_mapping(tracks), ExecuteOptions(resume_from_track_id="nope")
        )

        assert result.inserted == 3

    async def test_unresolved_tracks_are_skipped(self, make_orchestrator, plan, tracks):
        """Test that only resolved, error-free matches are inserted."""
        mapping = MappingResult(
            matches=[
                TrackMapping(track=tracks[0], target_id="vid00000001"),
                TrackMapping(track=tracks[1]),
                TrackMapping(track=tracks[2], target_id="vid00000003", error="earlier failure"),
            ]
        )
        target = FakeTargetCatalog()
        orchestrator = make_orchestrator(target=target)

        result = await orchestrator.execute(plan, mapping)

        assert target.inserted["PL1"] == ["vid00000001"]
        assert [m.track.id for m in result.pending_manual] == ["sp2"]
        assert result.skipped == 2

    async def test_cancel_stops_before_next_chunk(
        self, make_orchestrator, plan, tracks, run_log
    ):
        """Test that cancellation finishes the current chunk and stops."""
        cancel = asyncio.Event()
        events = []

        def sink(progress):
            events.append(progress)
            if progress.stage == TransferStage.INSERTING and progress.processed == 1:
                cancel.set()

        target = FakeTargetCatalog()
        orchestrator = make_orchestrator(target=target, on_progress=sink)

        result = await orchestrator.execute(
            plan, resolved_mapping(tracks), ExecuteOptions(chunk_size=1), cancel
        )

        assert result.canceled
        assert result.inserted == 1
        assert target.add_calls == [["vid00000001"]]
        assert run_log.runs[result.run_id].status == RunStatus.CANCELED
        assert orchestrator.stage == TransferStage.CANCELED
        assert events[-1].stage == TransferStage.CANCELED

    async def test_playlist_creation_failure_finalizes_run(
        self, make_orchestrator, plan, tracks, run_log
    ):
        """Test that creation failure is fatal and recorded as an error run."""
        target = FakeTargetCatalog(create_error=ProviderWriteError("quota exceeded"))
        orchestrator = make_orchestrator(target=target)

        with pytest.raises(ProviderWriteError):
            await orchestrator.execute(plan, resolved_mapping(tracks))

        run = next(iter(run_log.runs.values()))
        assert run.status == RunStatus.ERROR
        assert run.skipped == 3
        assert run.errors == [RunError(track_id="", message="quota exceeded")]
        assert orchestrator.stage == TransferStage.ERROR

    async def test_execute_after_review(self, make_orchestrator, playlist):
        """Test that a run awaiting review can still execute its resolved matches."""
        target = scenario_target()
        orchestrator = make_orchestrator(target=target)
        plan = await orchestrator.prepare(playlist)
        mapping = await orchestrator.map_tracks(plan)
        assert orchestrator.stage == TransferStage.AWAITING_USER

        result = await orchestrator.execute(plan, mapping)

        assert target.inserted["PL1"] == ["vidisrc0001", "viddur00002"]
        assert [m.track.id for m in result.pending_manual] == ["sp3"]
        assert orchestrator.stage == TransferStage.COMPLETE

    async def test_restart_after_completion(self, make_orchestrator, playlist):
        """Test that a finished orchestrator can run another transfer."""
        orchestrator = make_orchestrator(target=scenario_target())
        plan = await orchestrator.prepare(playlist)
        await orchestrator.execute(plan, await orchestrator.map_tracks(plan))

        again = await orchestrator.prepare(PlaylistCore(id="pl-source", name="Again"))

        assert again.target_playlist_name == "Again"
        assert orchestrator.stage == TransferStage.PREPARING
