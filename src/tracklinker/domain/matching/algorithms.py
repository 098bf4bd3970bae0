"""Pure algorithms for candidate scoring and auto-acceptance.

These functions contain no external dependencies and implement the heuristics
that turn raw target-catalog search metadata into a ranked, explainable
confidence score in [0, 1].
"""

from collections.abc import Mapping
import re
from typing import Any

from tracklinker.domain.entities import (
    MatchTag,
    ProviderSearchResult,
    TrackCore,
)

from .types import AcceptancePolicy, CandidateEvaluation, CandidateInput

# Scoring configuration
SCORING_CONFIG: dict[str, Any] = {
    # Baseline when either duration is unknown
    "neutral_score": 0.4,
    # Duration tolerance: max(floor, source * ratio)
    "duration_floor_ms": 5000,
    "duration_tolerance_ratio": 0.05,
    "duration_min_score": 0.1,
    # Boosts
    "official_boost": 0.18,
    "preferred_boost": 0.12,
    # Penalties
    "live_penalty": 0.18,
    "cover_penalty": 0.14,
    "remix_penalty": 0.10,
    "lyrics_penalty": 0.05,
    # Final bounds; the floor keeps weak candidates rankable
    "min_score": 0.05,
    "max_score": 1.0,
}

DEFAULT_ACCEPTANCE_POLICY = AcceptancePolicy()

_OFFICIAL_SUFFIXES = (" - topic",)
_OFFICIAL_PHRASES = (
    "official artist channel",
    "official video",
    "provided to youtube",
)

# (pattern, config key, reason)
_TITLE_PENALTIES: list[tuple[re.Pattern[str], str, str]] = [
    (re.compile(r"\blive\b", re.IGNORECASE), "live_penalty", "Live performance hint"),
    (re.compile(r"\bcover\b", re.IGNORECASE), "cover_penalty", "Cover version hint"),
    (re.compile(r"\bremix", re.IGNORECASE), "remix_penalty", "Remix detected"),
    (re.compile(r"\blyrics?\b", re.IGNORECASE), "lyrics_penalty", "Lyrics video hint"),
]


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def _config(overrides: Mapping[str, Any] | None) -> Mapping[str, Any]:
    if not overrides:
        return SCORING_CONFIG
    return {**SCORING_CONFIG, **overrides}


def compute_duration_score(
    duration_ms: int | None,
    target_duration_ms: int | None,
    config: Mapping[str, Any] | None = None,
) -> float:
    """Score how close a candidate's duration is to the source track's."""
    cfg = _config(config)
    if not duration_ms or not target_duration_ms:
        return cfg["neutral_score"]

    delta = abs(duration_ms - target_duration_ms)
    tolerance = max(
        cfg["duration_floor_ms"],
        target_duration_ms * cfg["duration_tolerance_ratio"],
    )
    ratio = max(0.0, 1 - delta / tolerance)
    return _clamp(ratio, cfg["duration_min_score"], 1.0)


def is_official_channel(channel_title: str | None) -> bool:
    """Whether a channel name indicates a canonical or official upload."""
    normalized = (channel_title or "").lower().strip()
    if not normalized:
        return False
    if normalized.endswith(_OFFICIAL_SUFFIXES):
        return True
    return any(phrase in normalized for phrase in _OFFICIAL_PHRASES)


def isrc_matches(candidate_isrc: str | None, source_isrc: str | None) -> bool:
    if not candidate_isrc or not source_isrc:
        return False
    return candidate_isrc.strip().upper() == source_isrc.strip().upper()


def describe_duration_delta(delta_ms: int) -> str:
    """Human-readable duration difference, e.g. 'Δ +1.5s vs track'."""
    direction = "+" if delta_ms > 0 else "−" if delta_ms < 0 else ""
    return f"Δ {direction}{abs(delta_ms) / 1000:.1f}s vs track"


def evaluate_candidate(
    candidate: CandidateInput,
    config: Mapping[str, Any] | None = None,
) -> CandidateEvaluation:
    """Compute an explainable confidence score for one search candidate.

    Order of application:
    1. Exact ISRC match short-circuits with a score of 1.0.
    2. Duration-based baseline.
    3. Additive boosts for official and preferred channels.
    4. Subtractive penalties for live, cover, remix and lyric uploads.
    5. Final clamp to [min_score, max_score].
    """
    cfg = _config(config)

    if isrc_matches(candidate.isrc, candidate.target_isrc):
        return CandidateEvaluation(
            score=1.0,
            matched_by=MatchTag.STRING,
            reasons=["ISRC match"],
            official=is_official_channel(candidate.channel_title),
        )

    reasons: list[str] = []
    matched_by = MatchTag.DURATION
    score = compute_duration_score(
        candidate.duration_ms, candidate.target_duration_ms, cfg
    )

    if candidate.duration_ms is not None and candidate.target_duration_ms is not None:
        reasons.append(
            describe_duration_delta(candidate.duration_ms - candidate.target_duration_ms)
        )

    official = is_official_channel(candidate.channel_title)
    if official:
        score = _clamp(score + cfg["official_boost"])
        matched_by = MatchTag.OFFICIAL
        reasons.append("Official / Topic channel")

    if candidate.channel_id and candidate.channel_id in candidate.preferred_channel_ids:
        score = _clamp(score + cfg["preferred_boost"])
        matched_by = MatchTag.PREFERRED
        reasons.append("Preferred channel")

    for pattern, penalty_key, reason in _TITLE_PENALTIES:
        if pattern.search(candidate.title or ""):
            score = _clamp(score - cfg[penalty_key])
            reasons.append(reason)

    score = _clamp(score, cfg["min_score"], cfg["max_score"])

    return CandidateEvaluation(
        score=score,
        matched_by=matched_by,
        reasons=reasons,
        official=official,
    )


def rank_candidates(results: list[ProviderSearchResult]) -> list[ProviderSearchResult]:
    """Order candidates by score, highest first.

    Python's sort is stable, so ties keep the catalog's search order.
    """
    return sorted(results, key=lambda result: result.score, reverse=True)


def should_auto_accept(
    candidate: ProviderSearchResult,
    track: TrackCore,
    policy: AcceptancePolicy = DEFAULT_ACCEPTANCE_POLICY,
) -> bool:
    """Decide whether a candidate can be accepted without human review."""
    score = candidate.score

    if score >= policy.min_score:
        return True

    if any("isrc" in reason.lower() for reason in candidate.reasons):
        return True

    if candidate.official and score >= policy.official_min_score:
        return True

    if (
        candidate.duration_delta_ms is not None
        and abs(candidate.duration_delta_ms) <= policy.duration_delta_ms
        and score >= policy.duration_min_score
    ):
        return True

    return bool(track.isrc) and score >= policy.isrc_min_score


def low_confidence_reason(candidate: ProviderSearchResult) -> str:
    return f"Low search confidence (score {candidate.score:.2f})"


def build_search_query(track: TrackCore) -> str:
    """Build the target-catalog query: 'Artist A, Artist B - Title'."""
    return f"{track.artist_line} - {track.title}"
