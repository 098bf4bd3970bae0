"""Tests for write-quota arithmetic."""

import pytest

from tracklinker.domain.quota import (
    YOUTUBE_COSTS,
    YOUTUBE_DEFAULT_DAILY_QUOTA,
    QuotaCosts,
    QuotaState,
    estimate_insert_capacity,
)


class TestEstimateInsertCapacity:
    """Test cases for insert capacity estimation."""

    def test_playlist_creation_reserved(self):
        """Test that a 150-unit budget leaves room for two inserts after creation."""
        estimate = estimate_insert_capacity(
            QuotaState(daily_limit=150, used_today=0), include_playlist_creation=True
        )

        assert estimate.remaining_units == 100
        assert estimate.max_inserts == 2
        assert not estimate.will_exceed

    def test_default_daily_quota(self):
        """Test capacity of a fresh default YouTube budget."""
        estimate = estimate_insert_capacity(
            QuotaState(daily_limit=YOUTUBE_DEFAULT_DAILY_QUOTA), include_playlist_creation=True
        )
        assert estimate.max_inserts == 199

    @pytest.mark.parametrize(
        ("daily_limit", "used_today", "reserved_units"),
        [(100, 60, 40), (100, 100, 0), (100, 0, 100), (100, 150, 20)],
    )
    def test_exhausted_budget(self, daily_limit, used_today, reserved_units):
        """Test that used plus reserved at or above the limit allows nothing."""
        estimate = estimate_insert_capacity(
            QuotaState(daily_limit, used_today, reserved_units)
        )

        assert estimate.max_inserts == 0
        assert estimate.will_exceed

    def test_never_negative(self):
        """Test that overspending clamps remaining units at zero."""
        estimate = estimate_insert_capacity(
            QuotaState(daily_limit=100, used_today=20_000), include_playlist_creation=True
        )
        assert estimate.remaining_units == 0
        assert estimate.max_inserts == 0

    def test_monotonic_in_used_units(self):
        """Test that spending more never increases capacity."""
        previous = None
        for used in range(0, 12_000, 250):
            current = estimate_insert_capacity(
                QuotaState(daily_limit=10_000, used_today=used), include_playlist_creation=True
            ).max_inserts
            if previous is not None:
                assert current <= previous
            previous = current

    def test_creation_cost_replaces_reserved_units(self):
        """Test that reserved_units is ignored when playlist creation is reserved."""
        estimate = estimate_insert_capacity(
            QuotaState(daily_limit=150, reserved_units=100), include_playlist_creation=True
        )
        assert estimate.remaining_units == 100

    def test_custom_costs(self):
        """Test that alternative cost tables are honored."""
        estimate = estimate_insert_capacity(
            QuotaState(daily_limit=150),
            include_playlist_creation=True,
            costs=QuotaCosts(playlist_item_insert=10),
        )
        assert estimate.max_inserts == 10

    def test_youtube_costs(self):
        """Test the published YouTube Data API unit costs."""
        assert YOUTUBE_COSTS.search_list == 100
        assert YOUTUBE_COSTS.playlist_insert == 50
        assert YOUTUBE_COSTS.playlist_item_insert == 50
        assert YOUTUBE_COSTS.videos_list == 1
