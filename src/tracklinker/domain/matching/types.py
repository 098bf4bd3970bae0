"""Pure domain types for candidate evaluation and acceptance."""

from attrs import define, field

from tracklinker.domain.entities import MatchTag


@define(frozen=True, slots=True)
class CandidateInput:
    """Raw search metadata for one candidate plus the source attributes it is judged against."""

    title: str
    channel_title: str | None = None
    channel_id: str | None = None
    duration_ms: int | None = None
    isrc: str | None = None
    target_duration_ms: int | None = None
    target_isrc: str | None = None
    preferred_channel_ids: list[str] = field(factory=list)


@define(frozen=True, slots=True)
class CandidateEvaluation:
    """Explainable confidence score for one candidate."""

    score: float
    matched_by: MatchTag
    reasons: list[str] = field(factory=list)
    official: bool = False


@define(frozen=True, slots=True)
class AcceptancePolicy:
    """Thresholds for accepting a candidate without human review.

    A candidate is accepted when ANY rule holds:
    - score >= min_score
    - a reason mentions an ISRC match
    - the candidate is official and score >= official_min_score
    - |duration delta| <= duration_delta_ms and score >= duration_min_score
    - the source track has an ISRC and score >= isrc_min_score
    """

    min_score: float = 0.85
    official_min_score: float = 0.6
    duration_delta_ms: int = 2000
    duration_min_score: float = 0.7
    isrc_min_score: float = 0.65
