"""Playlist-related domain entities."""

from attrs import define, field, validators

from .track import TrackCore


@define(frozen=True, slots=True)
class PlaylistCore:
    """A playlist in either catalog."""

    id: str
    name: str = field(validator=validators.instance_of(str))
    track_count: int = 0
    description: str | None = None
    owner_name: str | None = None
    # Catalog-side revision marker used for change detection
    snapshot_id: str | None = None


@define(frozen=True, slots=True)
class TransferPlan:
    """What a single run will transfer.

    Created once by the prepare phase and never modified afterwards.
    """

    source_playlist: PlaylistCore
    target_playlist_name: str
    tracks: list[TrackCore] = field(factory=list)

    @property
    def total(self) -> int:
        return len(self.tracks)
