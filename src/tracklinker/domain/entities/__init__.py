"""Core domain entities for playlist transfer."""

from .operations import (
    UNRESOLVED_VIA,
    DecidedBy,
    ExecuteResult,
    MappingResult,
    MatchRecord,
    MatchStats,
    MatchVia,
    RunError,
    RunRecord,
    RunStatus,
    RunSummary,
    TrackMapping,
    TransferProgress,
    TransferStage,
    compute_match_stats,
    create_match_key,
)
from .playlist import PlaylistCore, TransferPlan
from .track import MatchTag, ProviderSearchResult, SearchHints, TrackCore

__all__ = [
    "UNRESOLVED_VIA",
    # Track entities
    "MatchTag",
    "ProviderSearchResult",
    "SearchHints",
    "TrackCore",
    # Playlist entities
    "PlaylistCore",
    "TransferPlan",
    # Operation entities
    "DecidedBy",
    "ExecuteResult",
    "MappingResult",
    "MatchRecord",
    "MatchStats",
    "MatchVia",
    "RunError",
    "RunRecord",
    "RunStatus",
    "RunSummary",
    "TrackMapping",
    "TransferProgress",
    "TransferStage",
    "compute_match_stats",
    "create_match_key",
]
