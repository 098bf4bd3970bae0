"""Track-related domain entities.

Pure track representations and related value objects with zero external dependencies.
"""

from enum import StrEnum

import attrs
from attrs import define, field, validators


class MatchTag(StrEnum):
    """Heuristic that produced a candidate match."""

    ODESLI = "odesli"
    DURATION = "duration"
    STRING = "string"
    MANUAL = "manual"
    OFFICIAL = "official"
    PREFERRED = "preferred"


def _score_in_range(instance, attribute, value: float) -> None:
    if not 0.0 <= value <= 1.0:
        raise ValueError(f"{attribute.name} must be within [0, 1], got {value}")


@define(frozen=True, slots=True)
class TrackCore:
    """Immutable track as fetched from a catalog.

    Identifies a source track or a candidate; never mutated after fetch.
    """

    id: str = field(validator=validators.instance_of(str))
    title: str = field(validator=validators.instance_of(str))
    artists: list[str] = field(factory=list)
    isrc: str | None = field(default=None)
    album: str | None = field(default=None)
    duration_ms: int | None = field(default=None)
    explicit: bool | None = field(default=None)
    year: int | None = field(default=None)
    url: str | None = field(default=None)

    @property
    def artist_line(self) -> str:
        """Artists joined the way search queries expect them."""
        return ", ".join(self.artists)


@define(frozen=True, slots=True)
class SearchHints:
    """Known source attributes passed along with a catalog search."""

    duration_ms: int | None = None
    isrc: str | None = None
    preferred_channel_ids: list[str] = field(factory=list)


@define(frozen=True, slots=True)
class ProviderSearchResult:
    """Candidate target-catalog item with an explainable confidence score."""

    id: str
    score: float = field(validator=_score_in_range)
    title: str | None = None
    channel_id: str | None = None
    channel_title: str | None = None
    duration_ms: int | None = None
    url: str | None = None
    isrc: str | None = None
    matched_by: MatchTag | None = None
    duration_delta_ms: int | None = None
    reasons: list[str] = field(factory=list)
    official: bool = False

    def with_score(self, score: float) -> "ProviderSearchResult":
        """Create a copy carrying a different score."""
        return attrs.evolve(self, score=score)
