"""Candidate scoring and acceptance for cross-catalog track matching."""

from .algorithms import (
    DEFAULT_ACCEPTANCE_POLICY,
    SCORING_CONFIG,
    build_search_query,
    compute_duration_score,
    describe_duration_delta,
    evaluate_candidate,
    is_official_channel,
    isrc_matches,
    low_confidence_reason,
    rank_candidates,
    should_auto_accept,
)
from .identifiers import extract_video_id, is_video_id, watch_url
from .types import AcceptancePolicy, CandidateEvaluation, CandidateInput

__all__ = [
    "DEFAULT_ACCEPTANCE_POLICY",
    "SCORING_CONFIG",
    "AcceptancePolicy",
    "CandidateEvaluation",
    "CandidateInput",
    "build_search_query",
    "compute_duration_score",
    "describe_duration_delta",
    "evaluate_candidate",
    "extract_video_id",
    "is_official_channel",
    "is_video_id",
    "isrc_matches",
    "low_confidence_reason",
    "rank_candidates",
    "should_auto_accept",
    "watch_url",
]
