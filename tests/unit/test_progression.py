"""
Unit tests for the rank table and leveling engine.
"""

from types import SimpleNamespace

import pytest

from idleguild.modules.progression import (
    RANKS,
    apply_level_ups,
    compute_level_ups,
    cumulative_xp_required,
    next_rank,
    rank_for_level,
    xp_for_level,
    xp_progress,
)


@pytest.mark.unit
class TestRankTable:
    """Rank lookup by guild level."""

    @pytest.mark.parametrize(
        "level,expected",
        [(1, "Bronze"), (4, "Bronze"), (5, "Iron"), (19, "Steel"), (50, "Platinum"), (100, "Mythril"), (250, "Mythril")],
    )
    def test_rank_for_level(self, level, expected):
        assert rank_for_level(level).name == expected

    def test_levels_below_first_threshold_map_to_bronze(self):
        assert rank_for_level(0).name == "Bronze"

    def test_table_is_strictly_ascending(self):
        levels = [rank.level for rank in RANKS]
        multipliers = [rank.multiplier for rank in RANKS]
        assert levels == sorted(levels) and len(set(levels)) == len(levels)
        assert multipliers == sorted(multipliers)

    def test_next_rank(self):
        assert next_rank(1).name == "Iron"
        assert next_rank(99).name == "Mythril"
        assert next_rank(100) is None


@pytest.mark.unit
class TestXpCurve:
    """Exponential XP requirements."""

    def test_first_level_costs_nothing(self):
        assert xp_for_level(1) == 0
        assert cumulative_xp_required(1) == 0

    def test_known_thresholds(self):
        assert [xp_for_level(level) for level in (2, 3, 4, 5)] == [67, 91, 123, 166]
        assert cumulative_xp_required(3) == 158
        assert cumulative_xp_required(5) == 447

    def test_curve_is_increasing(self):
        for level in range(2, 120):
            assert xp_for_level(level + 1) > xp_for_level(level)

    def test_high_levels_do_not_recurse(self):
        assert cumulative_xp_required(600) > cumulative_xp_required(599)


@pytest.mark.unit
class TestLevelUps:
    """Level-up detection."""

    def test_exact_threshold_levels_up(self):
        result = compute_level_ups(1, 158)
        assert result.new_level == 3
        assert result.levels_gained == 2

    def test_one_short_of_threshold(self):
        assert compute_level_ups(1, 157).new_level == 2

    def test_no_xp_no_change(self):
        result = compute_level_ups(1, 0)
        assert not result.leveled_up
        assert not result.rank_changed

    def test_rank_change_detected(self):
        result = compute_level_ups(4, cumulative_xp_required(5))
        assert result.rank_changed
        assert result.old_rank.name == "Bronze"
        assert result.new_rank.name == "Iron"

    def test_max_level_ceiling(self):
        assert compute_level_ups(1, 10**9, max_level=10).new_level == 10

    def test_idempotent(self):
        first = compute_level_ups(1, 1000)
        second = compute_level_ups(first.new_level, 1000)
        assert second.levels_gained == 0

    def test_apply_level_ups_writes_level_back(self):
        guild = SimpleNamespace(level=1, xp=447)
        result = apply_level_ups(guild)
        assert guild.level == 5
        assert result.new_level == 5


@pytest.mark.unit
def test_xp_progress_within_level():
    progress = xp_progress(2, 100)
    assert progress.xp_into_level == 33
    assert progress.xp_needed == 91
    assert progress.percent == 36.3
