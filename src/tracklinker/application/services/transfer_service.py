"""Transfer service: the two-step verify / execute flow used by the CLI.

Wires a TransferOrchestrator from settings and converts every failure into
the TrackLinkerError taxonomy, so callers can report errors uniformly.
"""

import asyncio

from attrs import define

from tracklinker.application.use_cases.transfer_playlist import (
    ExecuteOptions,
    TransferOrchestrator,
)
from tracklinker.application.utilities.rate_limiter import link_resolution_limiter
from tracklinker.application.utilities.retry import RetryPolicy
from tracklinker.config import Settings, get_logger, settings
from tracklinker.domain.entities import (
    ExecuteResult,
    MappingResult,
    MatchStats,
    PlaylistCore,
    TransferPlan,
)
from tracklinker.domain.errors import TrackLinkerError, as_tracklinker_error, classify_error
from tracklinker.domain.matching import AcceptancePolicy
from tracklinker.domain.repositories import (
    CatalogProvider,
    LinkResolverProtocol,
    MatchCacheProtocol,
    ProgressSink,
    RunLogProtocol,
)

logger = get_logger(__name__).bind(service="transfer_service")


@define(frozen=True, slots=True)
class VerifyResult:
    plan: TransferPlan
    mapping: MappingResult
    stats: MatchStats


def acceptance_policy_from_settings(config: Settings = settings) -> AcceptancePolicy:
    matching = config.matching
    return AcceptancePolicy(
        min_score=matching.auto_accept_score,
        official_min_score=matching.official_min_score,
        duration_delta_ms=matching.duration_delta_ms,
        duration_min_score=matching.duration_min_score,
        isrc_min_score=matching.isrc_min_score,
    )


class TransferService:
    """Verify (prepare + map) then execute a playlist transfer."""

    def __init__(self, orchestrator: TransferOrchestrator, config: Settings = settings) -> None:
        self.orchestrator = orchestrator
        self.config = config

    def _default_target_name(self, playlist: PlaylistCore) -> str:
        return f"{playlist.name}{self.config.transfer.target_name_suffix}"

    async def verify(
        self,
        playlist: PlaylistCore,
        target_name: str | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> VerifyResult:
        try:
            plan = await self.orchestrator.prepare(
                playlist, target_name or self._default_target_name(playlist)
            )
            mapping = await self.orchestrator.map_tracks(plan, cancel_event)
        except Exception as e:
            info = classify_error(e)
            logger.error(f"Verification failed ({info.kind}): {info.message}")
            if isinstance(e, TrackLinkerError):
                raise
            raise as_tracklinker_error(e) from e

        return VerifyResult(plan=plan, mapping=mapping, stats=mapping.stats)

    async def execute(
        self,
        plan: TransferPlan,
        mapping: MappingResult,
        options: ExecuteOptions | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> ExecuteResult:
        options = options or ExecuteOptions(
            daily_quota=self.config.quota.daily_limit,
            used_today=self.config.quota.used_today,
            chunk_size=self.config.transfer.chunk_size,
            playlist_name=plan.target_playlist_name,
        )
        try:
            return await self.orchestrator.execute(plan, mapping, options, cancel_event)
        except Exception as e:
            info = classify_error(e)
            logger.error(f"Transfer failed ({info.kind}): {info.message}")
            if isinstance(e, TrackLinkerError):
                raise
            raise as_tracklinker_error(e) from e


def create_transfer_service(
    source: CatalogProvider,
    target: CatalogProvider,
    match_cache: MatchCacheProtocol,
    run_log: RunLogProtocol,
    link_resolver: LinkResolverProtocol | None = None,
    on_progress: ProgressSink | None = None,
    config: Settings = settings,
) -> TransferService:
    """Build a TransferService with limiter, retry and thresholds from settings."""
    has_key = bool(config.credentials.odesli_api_key)
    orchestrator = TransferOrchestrator(
        source=source,
        target=target,
        match_cache=match_cache,
        run_log=run_log,
        link_resolver=link_resolver if config.link_resolution.enabled else None,
        limiter=link_resolution_limiter(has_key, config.link_resolution),
        retry_policy=RetryPolicy.from_settings(config.retry),
        acceptance_policy=acceptance_policy_from_settings(config),
        on_progress=on_progress,
        preferred_channel_ids=config.matching.preferred_channel_ids,
    )
    return TransferService(orchestrator, config)
