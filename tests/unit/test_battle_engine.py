"""
Unit tests for battle math and cooldown rules.
"""

import math
from datetime import date, datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from idleguild.database.models.enums import RiskTier
from idleguild.modules.battle.cooldowns import (
    CooldownSettings,
    battles_today,
    check_battle_cooldowns,
    remaining_battles_today,
)
from idleguild.modules.battle.engine import (
    classify_risk_tier,
    compute_battle_rewards,
    compute_power,
    compute_power_ratio,
    compute_revenge_rewards,
    compute_win_chance,
    counter_attack_bet,
    is_revenge_eligible,
    roll_outcome,
)
from idleguild.modules.shared.exceptions import CooldownActiveError, RateLimitError

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.mark.unit
class TestPowerAndChance:
    def test_power_formula(self):
        assert compute_power(5, 300, 0) == pytest.approx(5.6)
        assert compute_power(10, 500, 5000) == pytest.approx(12.0)

    def test_equal_power_is_even_and_normal(self):
        assert compute_win_chance(10, 10) == 50
        assert compute_power_ratio(10, 10) == 1
        assert classify_risk_tier(1) is RiskTier.NORMAL

    def test_both_zero(self):
        assert compute_win_chance(0, 0) == 50
        assert compute_power_ratio(0, 0) == 1

    def test_chance_is_clamped(self):
        assert compute_win_chance(100, 0) == 65
        assert compute_win_chance(0, 100) == 35

    def test_lopsided_is_consent(self):
        assert compute_win_chance(50, 5) == pytest.approx(50 + 45 / 55 * 15)
        assert compute_power_ratio(50, 5) == 10
        assert classify_risk_tier(10) is RiskTier.CONSENT

    def test_ratio_against_zero_is_infinite(self):
        assert math.isinf(compute_power_ratio(5, 0))
        assert classify_risk_tier(math.inf) is RiskTier.CONSENT

    @pytest.mark.parametrize(
        "ratio,tier",
        [(2.99, RiskTier.NORMAL), (3.0, RiskTier.CAPPED), (4.99, RiskTier.CAPPED), (5.0, RiskTier.CONSENT)],
    )
    def test_tier_boundaries(self, ratio, tier):
        assert classify_risk_tier(ratio) is tier

    def test_roll(self):
        assert roll_outcome(50, lambda: 0.49)
        assert not roll_outcome(50, lambda: 0.5)


@pytest.mark.unit
class TestRewards:
    def test_losing_consent_attacker_forfeits_full_bet(self):
        rewards = compute_battle_rewards(
            False, 50, 5, RiskTier.CONSENT, bet=500, loser_gold=1000, loser_xp=0, rng=lambda: 0.5
        )
        assert rewards.gold_transferred == 500
        assert not rewards.was_capped

    def test_stronger_winner_capped(self):
        rewards = compute_battle_rewards(
            True, 20, 5, RiskTier.CAPPED, bet=200, loser_gold=1000, loser_xp=0, rng=lambda: 0.0
        )
        assert rewards.gold_transferred == 10
        assert rewards.was_capped

    def test_cap_only_when_smaller_than_bet(self):
        rewards = compute_battle_rewards(
            True, 20, 5, RiskTier.CAPPED, bet=5, loser_gold=1000, loser_xp=0, rng=lambda: 0.0
        )
        assert rewards.gold_transferred == 5
        assert not rewards.was_capped

    def test_weaker_winner_takes_full_bet_in_capped_tier(self):
        rewards = compute_battle_rewards(
            True, 5, 20, RiskTier.CAPPED, bet=200, loser_gold=1000, loser_xp=0, rng=lambda: 0.0
        )
        assert rewards.gold_transferred == 200

    def test_transfer_clamped_to_loser_gold(self):
        rewards = compute_battle_rewards(
            True, 10, 10, RiskTier.NORMAL, bet=500, loser_gold=300, loser_xp=0, rng=lambda: 0.0
        )
        assert rewards.gold_transferred == 300

    def test_xp_bonus_from_loser_xp(self):
        rewards = compute_battle_rewards(
            True, 10, 10, RiskTier.NORMAL, bet=200, loser_gold=1000, loser_xp=1000, rng=lambda: 0.0
        )
        assert rewards.xp_bonus == 10

    def test_revenge_rewards(self):
        won = compute_revenge_rewards(True, 500, 1000, rng=lambda: 0.0)
        assert (won.gold, won.xp) == (5, 10)
        lost = compute_revenge_rewards(False, 500, 1000, rng=lambda: 0.0)
        assert (lost.gold, lost.xp) == (0, 0)

    def test_revenge_eligibility(self):
        def battle(attacker_power, defender_power, tier=RiskTier.CONSENT, is_free_revenge=False):
            return SimpleNamespace(
                attacker_power=attacker_power,
                defender_power=defender_power,
                risk_tier=tier.value,
                is_free_revenge=is_free_revenge,
            )

        assert is_revenge_eligible(battle(50, 5))
        assert not is_revenge_eligible(battle(5, 50))
        assert not is_revenge_eligible(battle(16, 4, tier=RiskTier.CAPPED))
        assert not is_revenge_eligible(battle(50, 5, is_free_revenge=True))

    @pytest.mark.parametrize("winner_id", [1, 2])
    def test_revenge_ignores_winner(self, winner_id):
        won_or_lost = SimpleNamespace(
            attacker_id=1, defender_id=2, winner_id=winner_id,
            attacker_power=56.0, defender_power=5.6, risk_tier="consent", is_free_revenge=False,
        )
        assert is_revenge_eligible(won_or_lost)

    def test_consent_tier_keeps_revenge_after_power_drift(self):
        # Accepted at 10x, resolved after the gap shrank to 2x
        drifted = SimpleNamespace(attacker_power=20, defender_power=10, risk_tier="consent", is_free_revenge=False)
        assert is_revenge_eligible(drifted)

    def test_counter_attack_bet(self):
        assert counter_attack_bet(500, 300) == 300
        assert counter_attack_bet(200, 1000) == 200


def attacker(last_battle_at=None, count=0, reset=None):
    return SimpleNamespace(last_battle_at=last_battle_at, battles_today=count, last_battle_reset=reset)


@pytest.mark.unit
class TestCooldowns:
    settings = CooldownSettings(global_cooldown_seconds=120, target_cooldown_seconds=7200, daily_limit=10)

    def test_fresh_guild_may_battle(self):
        check_battle_cooldowns(attacker(), self.settings, now=NOW)

    def test_global_cooldown(self):
        with pytest.raises(CooldownActiveError) as exc_info:
            check_battle_cooldowns(attacker(NOW - timedelta(seconds=60)), self.settings, now=NOW)
        assert exc_info.value.action == "battle"
        assert exc_info.value.remaining_seconds == 60

    def test_pair_cooldown(self):
        with pytest.raises(CooldownActiveError) as exc_info:
            check_battle_cooldowns(
                attacker(NOW - timedelta(hours=1)),
                self.settings,
                last_pair_battle_at=NOW - timedelta(hours=1),
                now=NOW,
            )
        assert exc_info.value.action == "battle_target"
        assert exc_info.value.remaining_seconds == 3600

    def test_daily_limit(self):
        with pytest.raises(RateLimitError) as exc_info:
            check_battle_cooldowns(attacker(count=10, reset=NOW.date()), self.settings, now=NOW)
        assert exc_info.value.retry_after == 12 * 3600

    def test_daily_count_resets_on_new_date(self):
        guild = attacker(count=10, reset=date(2025, 5, 31))
        assert battles_today(guild, NOW.date()) == 0
        check_battle_cooldowns(guild, self.settings, now=NOW)

    def test_zero_disables_checks(self):
        disabled = CooldownSettings(global_cooldown_seconds=0, target_cooldown_seconds=0, daily_limit=0)
        check_battle_cooldowns(
            attacker(NOW, count=99, reset=NOW.date()), disabled, last_pair_battle_at=NOW, now=NOW
        )
        assert remaining_battles_today(attacker(), disabled) is None

    def test_naive_last_battle_is_utc(self):
        naive = (NOW - timedelta(seconds=30)).replace(tzinfo=None)
        with pytest.raises(CooldownActiveError):
            check_battle_cooldowns(attacker(naive), self.settings, now=NOW)
