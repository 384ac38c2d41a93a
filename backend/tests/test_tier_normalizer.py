"""
Tests for repairing distance tiers into normal form and for reporting
what is wrong with a tier list.
"""
import pytest

from models import DistanceTier, VehiclePricingConfig
from pricing_engine import (
    DEFAULT_DISTANCE_TIERS,
    calculate_distance_price,
    find_tier_problems,
    normalize_tiers,
)


def tier(from_miles, to_miles, price_per_mile, description=None):
    return DistanceTier(
        from_miles=from_miles,
        to_miles=to_miles,
        price_per_mile=price_per_mile,
        description=description,
    )


def bounds(tiers):
    return [(t.from_miles, t.to_miles, t.price_per_mile) for t in tiers]


# =============================================================================
# normalize_tiers
# =============================================================================

class TestNormalizeTiers:
    """Sorting, gap closing and opening the last tier."""

    def test_normal_tiers_are_unchanged(self):
        normalized, repairs = normalize_tiers(DEFAULT_DISTANCE_TIERS)
        assert normalized == DEFAULT_DISTANCE_TIERS
        assert repairs == []

    def test_empty_list(self):
        assert normalize_tiers([]) == ([], [])

    def test_sorts_closes_gap_and_opens_last_tier(self):
        normalized, repairs = normalize_tiers([tier(20, 40, 3.0), tier(0, 10, 5.0)])

        assert bounds(normalized) == [(0, 20, 5.0), (20, 0, 3.0)]
        assert repairs[0] == "sorted tiers by fromMiles"
        assert any("set toMiles of tier 0-10 to 20" in r for r in repairs)
        assert any("opened last tier 20-40" in r for r in repairs)

    def test_opened_last_tier_gets_description(self):
        normalized, _ = normalize_tiers([tier(0, 10, 5.0)])
        assert normalized[-1].is_unbounded
        assert normalized[-1].description == "Extended distance"

    def test_opened_last_tier_keeps_existing_description(self):
        normalized, _ = normalize_tiers([tier(0, 10, 5.0, "Long haul")])
        assert normalized[-1].description == "Long haul"

    def test_overlap_is_trimmed_to_next_tier(self):
        normalized, _ = normalize_tiers([tier(0, 15, 4.0), tier(10, 0, 3.0)])
        assert bounds(normalized) == [(0, 10, 4.0), (10, 0, 3.0)]

    def test_open_ended_tier_before_last_is_closed(self):
        normalized, _ = normalize_tiers([tier(0, 0, 4.0), tier(10, 0, 3.0)])
        assert bounds(normalized) == [(0, 10, 4.0), (10, 0, 3.0)]

    def test_tier_starting_with_next_is_dropped(self):
        """A tier that would have zero length after repair is removed."""
        normalized, repairs = normalize_tiers([tier(0, 10, 4.0), tier(0, 20, 3.0), tier(20, 0, 2.0)])
        assert bounds(normalized) == [(0, 20, 3.0), (20, 0, 2.0)]
        assert any(r.startswith("dropped tier 0-10") for r in repairs)

    def test_input_is_not_modified(self):
        tiers = [tier(20, 40, 3.0), tier(0, 10, 5.0)]
        normalize_tiers(tiers)
        assert bounds(tiers) == [(20, 40, 3.0), (0, 10, 5.0)]

    def test_normalizing_twice_changes_nothing(self):
        once, _ = normalize_tiers([tier(25, 30, 3.0), tier(0, 10, 5.0), tier(10, 20, 4.0)])
        twice, repairs = normalize_tiers(once)
        assert twice == once
        assert repairs == []

    @pytest.mark.parametrize("tiers", [
        [tier(20, 40, 3.0), tier(0, 10, 5.0)],
        [tier(0, 15, 4.0), tier(10, 20, 3.0), tier(40, 60, 2.0)],
        [tier(0, 10, 4.0)],
    ])
    def test_normalized_tiers_have_no_problems(self, tiers):
        normalized, _ = normalize_tiers(tiers)
        assert find_tier_problems(normalized) == []

    def test_normalized_tiers_never_use_fallback(self):
        normalized, _ = normalize_tiers([tier(0, 10, 5.0), tier(20, 30, 3.0)])
        config = VehiclePricingConfig(base_price=55, distance_tiers=normalized)
        result = calculate_distance_price(500, config)
        assert result.fallback_miles == 0
        assert result.notes == []


# =============================================================================
# find_tier_problems
# =============================================================================

class TestFindTierProblems:
    """Reporting departures from normal form without changing anything."""

    def test_default_schedule_is_normal(self):
        assert find_tier_problems(DEFAULT_DISTANCE_TIERS) == []

    def test_no_tiers(self):
        assert find_tier_problems([]) == ["no distance tiers configured"]

    def test_reports_unsorted_gap_and_bounded_last_tier(self):
        problems = find_tier_problems([tier(20, 40, 3.0), tier(0, 10, 5.0)])
        assert "tiers are not sorted by fromMiles" in problems
        assert "gap between 10 and 20 miles" in problems
        assert any("last tier 20-40 is not open-ended" in p for p in problems)

    def test_reports_overlap(self):
        problems = find_tier_problems([tier(0, 15, 4.0), tier(10, 0, 3.0)])
        assert problems == ["tiers 0-15 and 10-∞ overlap"]

    def test_reports_open_ended_tier_before_last(self):
        problems = find_tier_problems([tier(0, 0, 4.0), tier(10, 0, 3.0)])
        assert problems == ["tier 0-∞ is open-ended but tier 10-∞ follows it"]

    def test_reports_degenerate_tier(self):
        problems = find_tier_problems([tier(0, 10, 4.0), tier(15, 12, 3.0), tier(10, 0, 2.0)])
        assert "tier 15-12 ends before it starts" in problems
