"""Operation-related domain entities.

Match decisions, per-run mappings, run records and progress updates.
"""

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

import attrs
from attrs import define, field

from .track import ProviderSearchResult, TrackCore


class MatchVia(StrEnum):
    """How a persisted match decision was reached."""

    ODESLI = "odesli"
    PROVIDER_SEARCH = "provider_search"
    MANUAL = "manual"


class DecidedBy(StrEnum):
    AUTO = "auto"
    USER = "user"


class TransferStage(StrEnum):
    """Lifecycle stages of a transfer run."""

    IDLE = "idle"
    PREPARING = "preparing"
    MAPPING = "mapping"
    AWAITING_USER = "awaiting-user"
    CREATING_PLAYLIST = "creating-playlist"
    INSERTING = "inserting"
    COMPLETE = "complete"
    CANCELED = "canceled"
    ERROR = "error"


class RunStatus(StrEnum):
    RUNNING = "running"
    COMPLETE = "complete"
    CANCELED = "canceled"
    ERROR = "error"


UNRESOLVED_VIA = "unknown"


def create_match_key(source_provider: str, source_track_id: str) -> str:
    """Composite key identifying a match decision."""
    return f"{source_provider}:{source_track_id}"


@define(frozen=True, slots=True)
class MatchRecord:
    """Persisted match decision for one source track.

    At most one record exists per (source_provider, source_track_id); later
    writes overwrite earlier ones. An empty target_id means "no match yet".
    """

    source_provider: str
    source_track_id: str
    target_provider: str
    target_id: str = ""
    score: float = 0.0
    decided_by: DecidedBy = DecidedBy.AUTO
    via: MatchVia = MatchVia.MANUAL
    updated_at: datetime = field(factory=lambda: datetime.now(UTC))
    metadata: dict[str, Any] = field(factory=dict)

    @property
    def key(self) -> str:
        return create_match_key(self.source_provider, self.source_track_id)

    @property
    def has_target(self) -> bool:
        return bool(self.target_id)


@define(frozen=True, slots=True)
class TrackMapping:
    """Resolved state of one source track during a single run.

    Not persisted directly; a MatchRecord is derived from it when a decision
    is made.
    """

    track: TrackCore
    target_id: str | None = None
    score: float = 0.0
    via: MatchVia | str = UNRESOLVED_VIA
    decided_by: DecidedBy = DecidedBy.AUTO
    reason: str | None = None
    candidates: list[ProviderSearchResult] | None = None
    selected_candidate: ProviderSearchResult | None = None
    cached: bool = False
    error: str | None = None

    @property
    def is_resolved(self) -> bool:
        """True when the mapping can be inserted into the target playlist."""
        return bool(self.target_id) and not self.error

    def with_error(self, message: str) -> "TrackMapping":
        return attrs.evolve(self, error=message)

    def with_decision(
        self,
        target_id: str,
        score: float,
        via: MatchVia,
        decided_by: DecidedBy,
        selected_candidate: ProviderSearchResult | None = None,
    ) -> "TrackMapping":
        """Create a copy carrying a new decision, clearing reason and error."""
        return attrs.evolve(
            self,
            target_id=target_id,
            score=score,
            via=via,
            decided_by=decided_by,
            selected_candidate=selected_candidate or self.selected_candidate,
            reason=None,
            error=None,
        )


@define(frozen=True, slots=True)
class MatchStats:
    total: int = 0
    auto: int = 0
    manual: int = 0


def compute_match_stats(mappings: list[TrackMapping]) -> MatchStats:
    """Count mappings that already have a target versus those needing review."""
    total = len(mappings)
    auto = sum(1 for mapping in mappings if mapping.target_id)
    return MatchStats(total=total, auto=auto, manual=total - auto)


@define(frozen=True, slots=True)
class MappingResult:
    """Outcome of the mapping phase, in source-listing order."""

    matches: list[TrackMapping] = field(factory=list)
    canceled: bool = False

    @property
    def unresolved(self) -> list[TrackMapping]:
        return [mapping for mapping in self.matches if not mapping.target_id]

    @property
    def stats(self) -> MatchStats:
        return compute_match_stats(self.matches)

    def replace(self, mapping: TrackMapping) -> "MappingResult":
        """Swap in an updated mapping for the same source track."""
        return attrs.evolve(
            self,
            matches=[
                mapping if existing.track.id == mapping.track.id else existing
                for existing in self.matches
            ],
        )


@define(frozen=True, slots=True)
class RunError:
    track_id: str
    message: str


@define(frozen=True, slots=True)
class RunRecord:
    """One persisted transfer attempt."""

    source_playlist_id: str
    started_at: datetime = field(factory=lambda: datetime.now(UTC))
    finished_at: datetime | None = None
    target_playlist_id: str | None = None
    added: int = 0
    skipped: int = 0
    failed: int = 0
    errors: list[RunError] = field(factory=list)
    status: RunStatus = RunStatus.RUNNING
    id: int | None = None


@define(frozen=True, slots=True)
class RunSummary:
    """Final counts written to a run record."""

    added: int
    skipped: int
    failed: int
    errors: list[RunError] = field(factory=list)
    status: RunStatus = RunStatus.COMPLETE
    target_playlist_id: str | None = None


@define(frozen=True, slots=True)
class TransferProgress:
    """Progress event emitted to the injected sink."""

    stage: TransferStage
    processed: int
    total: int
    message: str | None = None
    last_error: str | None = None


@define(frozen=True, slots=True)
class ExecuteResult:
    """Outcome of the insert phase."""

    playlist_id: str
    inserted: int
    skipped: int
    failures: list[TrackMapping] = field(factory=list)
    pending_manual: list[TrackMapping] = field(factory=list)
    run_id: int | None = None
    canceled: bool = False
