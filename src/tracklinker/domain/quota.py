"""Write-quota arithmetic for the target catalog.

YouTube Data API v3 charges a fixed number of units per call against a daily
budget. These pure functions answer how many playlist insertions a run can
still afford.
"""

from attrs import define


@define(frozen=True, slots=True)
class QuotaCosts:
    """Unit cost per API operation."""

    search_list: int = 100
    playlist_insert: int = 50
    playlist_item_insert: int = 50
    videos_list: int = 1


YOUTUBE_DEFAULT_DAILY_QUOTA = 10_000
YOUTUBE_COSTS = QuotaCosts()


@define(frozen=True, slots=True)
class QuotaState:
    daily_limit: int
    used_today: int = 0
    reserved_units: int | None = None


@define(frozen=True, slots=True)
class QuotaEstimate:
    remaining_units: int
    max_inserts: int
    will_exceed: bool


def estimate_insert_capacity(
    state: QuotaState,
    include_playlist_creation: bool = False,
    costs: QuotaCosts = YOUTUBE_COSTS,
) -> QuotaEstimate:
    """Compute how many item insertions fit in the remaining daily budget.

    When ``include_playlist_creation`` is set, the cost of one playlist
    creation is reserved instead of ``state.reserved_units``.

    Never returns negative values.

    Example:
        >>> estimate_insert_capacity(QuotaState(daily_limit=150), True)
        QuotaEstimate(remaining_units=100, max_inserts=2, will_exceed=False)
    """
    reserved = (
        costs.playlist_insert
        if include_playlist_creation
        else (state.reserved_units or 0)
    )
    remaining = max(0, state.daily_limit - state.used_today - reserved)
    max_inserts = remaining // costs.playlist_item_insert

    return QuotaEstimate(
        remaining_units=remaining,
        max_inserts=max_inserts,
        will_exceed=max_inserts <= 0,
    )
