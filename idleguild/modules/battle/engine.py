"""
Battle Engine
=============

Purpose
-------
Pure PvP resolution math: power, win chance, outcome roll, risk tier and
reward computation for wagered guild battles.

Domain
------
- power = adventurers + gold_per_hour / 500 + xp / 5000 (production, not holdings)
- win chance = clamp(50 + (a - d) / (a + d) * 15, 35, 65); 50 when both are 0
- attacker wins iff uniform[0, 100) < chance
- ratio = stronger / weaker (inf when the weaker side is 0, 1 when both are)
- tiers: ratio < 3 normal, [3, 5) capped, >= 5 consent

Reward Rules
------------
- Winner's XP bonus: floor(loser_xp * U(1%, 5%)), any tier. Loser XP is untouched.
- Gold transfer: the bet. A losing attacker always forfeits the full bet.
- A stronger attacker winning in the capped tier re-rolls
  floor(loser_gold * U(1%, 5%)) and takes it only when smaller than the bet.
- Transfer is clamped to the loser's available gold.

Design Decisions
----------------
- Every random draw goes through an injected zero-argument callable returning
  [0, 1), so tests can pin outcomes.
- No I/O; persistence and cooldowns live in the service.
"""

from __future__ import annotations

import math
import random
from dataclasses import dataclass
from typing import Any, Callable, Optional

from idleguild.database.models.enums import RiskTier

RandomSource = Callable[[], float]

POWER_GOLD_DIVISOR = 500
POWER_XP_DIVISOR = 5000
WIN_CHANCE_BASE = 50.0
WIN_CHANCE_SPREAD = 15.0
WIN_CHANCE_MIN = 35.0
WIN_CHANCE_MAX = 65.0
CAPPED_RATIO = 3.0
CONSENT_RATIO = 5.0

XP_BONUS_RANGE = (0.01, 0.05)
CAPPED_GOLD_RANGE = (0.01, 0.05)
REVENGE_RANGE = (0.01, 0.02)


@dataclass(frozen=True)
class BattleRewards:
    attacker_won: bool
    gold_transferred: int
    xp_bonus: int
    was_capped: bool


@dataclass(frozen=True)
class RevengeRewards:
    revenger_won: bool
    gold: int
    xp: int


def compute_power(
    adventurer_count: int,
    gold_per_hour: float,
    xp: int,
    gold_divisor: float = POWER_GOLD_DIVISOR,
    xp_divisor: float = POWER_XP_DIVISOR,
) -> float:
    return adventurer_count + gold_per_hour / gold_divisor + xp / xp_divisor


def compute_win_chance(
    attacker_power: float,
    defender_power: float,
    spread: float = WIN_CHANCE_SPREAD,
    minimum: float = WIN_CHANCE_MIN,
    maximum: float = WIN_CHANCE_MAX,
) -> float:
    """Attacker win chance as a percentage in [minimum, maximum]."""
    total = attacker_power + defender_power
    if total == 0:
        return WIN_CHANCE_BASE
    chance = WIN_CHANCE_BASE + ((attacker_power - defender_power) / total) * spread
    return min(maximum, max(minimum, chance))


def roll_outcome(win_chance: float, rng: Optional[RandomSource] = None) -> bool:
    rng = rng or random.random
    return rng() * 100 < win_chance


def compute_power_ratio(power_a: float, power_b: float) -> float:
    stronger = max(power_a, power_b)
    weaker = min(power_a, power_b)
    if stronger == 0:
        return 1.0
    if weaker <= 0:
        return math.inf
    return stronger / weaker


def classify_risk_tier(
    ratio: float,
    capped_ratio: float = CAPPED_RATIO,
    consent_ratio: float = CONSENT_RATIO,
) -> RiskTier:
    if ratio < capped_ratio:
        return RiskTier.NORMAL
    if ratio < consent_ratio:
        return RiskTier.CAPPED
    return RiskTier.CONSENT


def _uniform_fraction(bounds: tuple, rng: RandomSource) -> float:
    low, high = bounds
    return low + rng() * (high - low)


def compute_battle_rewards(
    attacker_won: bool,
    attacker_power: float,
    defender_power: float,
    risk_tier: RiskTier,
    bet: int,
    loser_gold: int,
    loser_xp: int,
    rng: Optional[RandomSource] = None,
) -> BattleRewards:
    """
    Gold and XP moving to the winner.

    Args:
        attacker_won: Outcome of `roll_outcome`
        attacker_power / defender_power: Powers the tier was classified on
        risk_tier: Tier from `classify_risk_tier`
        bet: Wagered gold
        loser_gold: Gold available to the loser (including any escrowed bet)
        loser_xp: Loser's current XP
        rng: Random source in [0, 1)

    Returns:
        BattleRewards
    """
    rng = rng or random.random
    xp_bonus = math.floor(max(0, loser_xp) * _uniform_fraction(XP_BONUS_RANGE, rng))

    transfer = bet
    was_capped = False
    if attacker_won and attacker_power > defender_power and risk_tier is RiskTier.CAPPED:
        capped = math.floor(max(0, loser_gold) * _uniform_fraction(CAPPED_GOLD_RANGE, rng))
        if capped < transfer:
            transfer = capped
            was_capped = True

    transfer = max(0, min(transfer, loser_gold))
    return BattleRewards(
        attacker_won=attacker_won,
        gold_transferred=transfer,
        xp_bonus=xp_bonus,
        was_capped=was_capped,
    )


def compute_revenge_rewards(
    revenger_won: bool,
    opponent_gold: int,
    opponent_xp: int,
    rng: Optional[RandomSource] = None,
) -> RevengeRewards:
    """Free revenge pays a small share of the opponent's holdings; a loss costs nothing."""
    if not revenger_won:
        return RevengeRewards(revenger_won=False, gold=0, xp=0)
    rng = rng or random.random
    gold = math.floor(max(0, opponent_gold) * _uniform_fraction(REVENGE_RANGE, rng))
    xp = math.floor(max(0, opponent_xp) * _uniform_fraction(REVENGE_RANGE, rng))
    return RevengeRewards(revenger_won=True, gold=gold, xp=xp)


def is_revenge_eligible(battle: Any) -> bool:
    """
    Whether the defender of `battle` earned a free revenge.

    The recorded tier decides, not a ratio recomputed afterwards: an accepted
    challenge stays consent tier even if powers moved while it was pending.
    The attacker must still have been the stronger side, and revenge battles
    themselves never qualify. The winner does not matter.
    """
    if getattr(battle, "is_free_revenge", False):
        return False
    if battle.risk_tier != RiskTier.CONSENT.value:
        return False
    return battle.attacker_power > battle.defender_power


def counter_attack_bet(suggested_bet: int, available_gold: int) -> int:
    """A counter-attack reuses the original bet, limited to what the counter-attacker holds."""
    return max(0, min(suggested_bet, available_gold))
