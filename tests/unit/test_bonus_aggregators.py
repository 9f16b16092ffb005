"""
Unit tests for the upgrade and prestige bonus aggregators.

Definitions are plain namespaces: the aggregators only read
`effect_type`, `effect_value` and `name`.
"""

import logging
from types import SimpleNamespace

import pytest

from idleguild.database.models.enums import PrestigeEffect, UpgradeEffect
from idleguild.modules.economy.bonuses import UpgradeBonuses, aggregate_upgrade_bonuses, effective_capacity
from idleguild.modules.prestige.bonuses import aggregate_prestige_bonuses, cumulative_idle_hours


def definition(effect, value, name="Test Upgrade"):
    effect_type = effect.value if hasattr(effect, "value") else effect
    return SimpleNamespace(effect_type=effect_type, effect_value=value, name=name)


@pytest.mark.unit
class TestUpgradeBonuses:
    def test_no_upgrades_is_neutral(self):
        assert aggregate_upgrade_bonuses([]) == UpgradeBonuses()

    def test_gold_multiplier_is_linear_in_level(self):
        bonuses = aggregate_upgrade_bonuses([(definition(UpgradeEffect.GOLD_MULTIPLIER, 0.15), 2)])
        assert bonuses.gold_multiplier == pytest.approx(1.30)
        assert bonuses.xp_multiplier == 1.0

    def test_all_multiplier_hits_gold_and_xp(self):
        bonuses = aggregate_upgrade_bonuses([(definition(UpgradeEffect.ALL_MULTIPLIER, 0.12), 1)])
        assert bonuses.gold_multiplier == pytest.approx(1.12)
        assert bonuses.xp_multiplier == pytest.approx(1.12)

    def test_capacity_and_gold_side_effect(self):
        bonuses = aggregate_upgrade_bonuses([(definition(UpgradeEffect.CAPACITY_AND_GOLD, 12), 2)])
        assert bonuses.capacity_bonus == 24
        assert bonuses.gold_multiplier == pytest.approx(1.16)

    def test_base_gold_and_xp_gives_half_xp(self):
        bonuses = aggregate_upgrade_bonuses([(definition(UpgradeEffect.BASE_GOLD_AND_XP, 150), 1)])
        assert bonuses.flat_gold_per_hour == 150
        assert bonuses.flat_xp_per_hour == 75

    def test_effects_add_across_upgrades(self):
        bonuses = aggregate_upgrade_bonuses(
            [
                (definition(UpgradeEffect.ADVENTURER_CAPACITY, 3), 2),
                (definition(UpgradeEffect.ADVENTURER_PER_HOUR, 1), 3),
                (definition(UpgradeEffect.BASE_GOLD_PER_HOUR, 30), 1),
            ]
        )
        assert bonuses.capacity_bonus == 6
        assert bonuses.recruitment_per_hour == 3
        assert bonuses.flat_gold_per_hour == 30

    def test_order_does_not_matter(self):
        owned = [
            (definition(UpgradeEffect.GOLD_MULTIPLIER, 0.2), 3),
            (definition(UpgradeEffect.CAPACITY_AND_GOLD, 12), 1),
            (definition(UpgradeEffect.XP_MULTIPLIER, 0.25), 2),
        ]
        assert aggregate_upgrade_bonuses(owned) == aggregate_upgrade_bonuses(list(reversed(owned)))

    def test_zero_level_is_ignored(self):
        assert aggregate_upgrade_bonuses([(definition(UpgradeEffect.GOLD_MULTIPLIER, 0.5), 0)]) == UpgradeBonuses()

    def test_unknown_effect_logged_and_skipped(self, caplog):
        with caplog.at_level(logging.WARNING):
            bonuses = aggregate_upgrade_bonuses([(definition("teleportation", 9), 1)])
        assert bonuses == UpgradeBonuses()
        assert "Unknown upgrade effect type skipped" in caplog.text

    def test_effective_capacity_floors(self):
        assert effective_capacity(10, UpgradeBonuses(capacity_bonus=2.7)) == 12


@pytest.mark.unit
class TestPrestigeBonuses:
    def test_base_compounding(self):
        bonuses = aggregate_prestige_bonuses(2)
        assert bonuses.gold_multiplier == pytest.approx(1.05**2)
        assert bonuses.xp_multiplier == pytest.approx(1.05**2)
        assert bonuses.recruitment_multiplier == pytest.approx(1.08**2)

    def test_prestige_zero_is_neutral(self):
        bonuses = aggregate_prestige_bonuses(0)
        assert bonuses.gold_multiplier == 1.0
        assert bonuses.idle_cap_bonus_hours == 0

    def test_permanent_multiplier_compounds_per_level(self):
        owned = [(definition(PrestigeEffect.PERMANENT_GOLD_MULTIPLIER, 0.08), 2)]
        bonuses = aggregate_prestige_bonuses(1, owned)
        assert bonuses.gold_multiplier == pytest.approx(1.05 * 1.08**2)

    def test_per_prestige_effect_scales_with_prestige_level(self):
        owned = [(definition(PrestigeEffect.GOLD_PER_PRESTIGE, 0.02), 1)]
        bonuses = aggregate_prestige_bonuses(3, owned)
        assert bonuses.gold_multiplier == pytest.approx(1.05**3 * 1.06)

    @pytest.mark.parametrize("level,hours", [(0, 0), (1, 2), (2, 4), (3, 8)])
    def test_idle_hours_table(self, level, hours):
        assert cumulative_idle_hours(level) == hours

    def test_max_idle_hours_effect(self):
        owned = [(definition(PrestigeEffect.MAX_IDLE_HOURS, 0), 3)]
        assert aggregate_prestige_bonuses(0, owned).idle_cap_bonus_hours == 8

    def test_double_gold_chance(self):
        owned = [(definition(PrestigeEffect.DOUBLE_GOLD_CHANCE, 0.02), 3)]
        assert aggregate_prestige_bonuses(0, owned).double_reward_chance == pytest.approx(0.06)

    def test_reset_only_effects_do_not_touch_rates(self, caplog):
        owned = [
            (definition(PrestigeEffect.STARTING_GOLD, 0), 2),
            (definition(PrestigeEffect.GOLD_KEEP_PERCENT, 0.05), 1),
        ]
        with caplog.at_level(logging.WARNING):
            bonuses = aggregate_prestige_bonuses(0, owned)
        assert bonuses == aggregate_prestige_bonuses(0)
        assert "Unknown prestige effect" not in caplog.text

    def test_unknown_effect_skipped(self, caplog):
        with caplog.at_level(logging.WARNING):
            bonuses = aggregate_prestige_bonuses(1, [(definition("time_travel", 1), 1)])
        assert bonuses == aggregate_prestige_bonuses(1)
        assert "Unknown prestige effect type skipped" in caplog.text
