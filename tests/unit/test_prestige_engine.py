"""
Unit tests for prestige eligibility, rewards and starting values.
"""

from types import SimpleNamespace

import pytest

from idleguild.database.models.enums import PrestigeEffect
from idleguild.modules.prestige.engine import (
    check_eligibility,
    compute_gold_keep,
    compute_prestige_points,
    compute_starting_values,
    required_level,
)


def perk(effect, value=0):
    return SimpleNamespace(effect_type=effect.value, effect_value=value)


@pytest.mark.unit
class TestEligibility:
    @pytest.mark.parametrize("prestige_level,expected", [(0, 50), (1, 60), (2, 70), (3, 75), (10, 75)])
    def test_required_level(self, prestige_level, expected):
        assert required_level(prestige_level) == expected

    def test_first_prestige_at_fifty(self):
        eligibility = check_eligibility(50, 0)
        assert eligibility.eligible
        assert eligibility.required_level == 50
        assert compute_prestige_points(50).total_points == 1

    def test_below_requirement(self):
        assert not check_eligibility(59, 1).eligible

    def test_requirement_overrides(self):
        assert check_eligibility(20, 0, min_level=20).eligible


@pytest.mark.unit
class TestRewards:
    @pytest.mark.parametrize("level,points", [(50, 1), (59, 1), (60, 2), (75, 3), (80, 4), (200, 4)])
    def test_points(self, level, points):
        assert compute_prestige_points(level).total_points == points

    def test_bonus_never_negative(self):
        assert compute_prestige_points(10).bonus_points == 0


@pytest.mark.unit
class TestStartingValues:
    def test_defaults(self):
        start = compute_starting_values([])
        assert (start.gold, start.adventurers, start.capacity, start.gold_keep_percent) == (25, 5, 10, 0.0)

    def test_table_lookups_are_cumulative(self):
        start = compute_starting_values(
            [
                (perk(PrestigeEffect.STARTING_GOLD), 2),
                (perk(PrestigeEffect.STARTING_ADVENTURERS), 3),
                (perk(PrestigeEffect.STARTING_CAPACITY), 1),
            ]
        )
        assert start.gold == 25 + 100 + 250
        assert start.adventurers == 5 + 2 + 2 + 3
        assert start.capacity == 10 + 5

    def test_gold_keep(self):
        start = compute_starting_values([(perk(PrestigeEffect.GOLD_KEEP_PERCENT, 0.05), 3)])
        assert start.gold_keep_percent == pytest.approx(0.15)
        assert compute_gold_keep(1000, start.gold_keep_percent) == 150

    def test_gold_keep_capped_at_everything(self):
        start = compute_starting_values([(perk(PrestigeEffect.GOLD_KEEP_PERCENT, 0.6), 2)])
        assert start.gold_keep_percent == 1.0
