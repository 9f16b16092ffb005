"""
Idle Earnings Engine
====================

Purpose
-------
Compute a guild's hourly production rates and the gold / XP / adventurers
accrued since its last collection.

Domain
------
1. base gold/h = adventurers * BASE_GOLD_PER_HOUR * rank multiplier + flat gold
2. gold/h = floor(base gold/h * upgrade gold mult * prestige gold mult)
3. base xp/h = adventurers * BASE_XP_PER_HOUR + flat xp
4. xp/h = floor(base xp/h * upgrade xp mult * prestige xp mult)
5. elapsed hours clamped to [0, BASE_MAX_IDLE_HOURS + prestige idle bonus]
6. earnings = floor(rate * capped hours)
7. optional gold doubling from a single uniform draw in [0, 1)
8. adventurers gained = floor(recruitment/h * capped hours * recruitment mult)

Design Decisions
----------------
- Pure: the caller supplies `now` and the random source, and clamps
  adventurer growth to effective capacity before persisting.
- Naive timestamps are UTC.
- The random draw happens only when a doubling chance exists.
"""

from __future__ import annotations

import math
import random
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional

from idleguild.core.database.base import as_utc, utc_now
from idleguild.modules.economy.bonuses import UpgradeBonuses
from idleguild.modules.prestige.bonuses import PrestigeBonuses
from idleguild.modules.progression.ranks import rank_for_level

BASE_GOLD_PER_HOUR = 60
BASE_XP_PER_HOUR = 30
BASE_MAX_IDLE_HOURS = 24

RandomSource = Callable[[], float]


@dataclass(frozen=True)
class Rates:
    gold_per_hour: int
    xp_per_hour: int


@dataclass(frozen=True)
class IdleEarnings:
    gold_earned: int
    xp_earned: int
    adventurers_gained: int
    elapsed_hours: float
    capped_hours: float
    max_idle_hours: float
    was_capped: bool
    doubled_gold: bool
    rates: Rates


def compute_rates(
    guild: Any,
    upgrade_bonuses: UpgradeBonuses,
    prestige_bonuses: Optional[PrestigeBonuses] = None,
    base_gold_per_hour: float = BASE_GOLD_PER_HOUR,
    base_xp_per_hour: float = BASE_XP_PER_HOUR,
) -> Rates:
    """
    Hourly gold and XP production for a guild snapshot.

    Args:
        guild: Object exposing `adventurer_count` and `level`
        upgrade_bonuses: Aggregated shop-upgrade bonuses
        prestige_bonuses: Aggregated prestige bonuses (neutral when None)
    """
    prestige_bonuses = prestige_bonuses or PrestigeBonuses()
    rank = rank_for_level(guild.level)

    base_gold = (
        guild.adventurer_count * base_gold_per_hour * rank.multiplier
        + upgrade_bonuses.flat_gold_per_hour
    )
    gold_per_hour = math.floor(
        base_gold * upgrade_bonuses.gold_multiplier * prestige_bonuses.gold_multiplier
    )

    base_xp = guild.adventurer_count * base_xp_per_hour + upgrade_bonuses.flat_xp_per_hour
    xp_per_hour = math.floor(
        base_xp * upgrade_bonuses.xp_multiplier * prestige_bonuses.xp_multiplier
    )

    return Rates(gold_per_hour=gold_per_hour, xp_per_hour=xp_per_hour)


def compute_idle_earnings(
    guild: Any,
    upgrade_bonuses: UpgradeBonuses,
    prestige_bonuses: Optional[PrestigeBonuses] = None,
    now: Optional[datetime] = None,
    rng: Optional[RandomSource] = None,
    base_gold_per_hour: float = BASE_GOLD_PER_HOUR,
    base_xp_per_hour: float = BASE_XP_PER_HOUR,
    base_max_idle_hours: float = BASE_MAX_IDLE_HOURS,
) -> IdleEarnings:
    """
    Earnings accrued between `guild.last_collected_at` and `now`.

    Args:
        guild: Object exposing `adventurer_count`, `level`, `last_collected_at`
        upgrade_bonuses: Aggregated shop-upgrade bonuses
        prestige_bonuses: Aggregated prestige bonuses (neutral when None)
        now: Evaluation time (defaults to current UTC time)
        rng: Zero-argument callable returning a float in [0, 1)

    Returns:
        IdleEarnings; never raises for well-formed inputs
    """
    prestige_bonuses = prestige_bonuses or PrestigeBonuses()
    rng = rng or random.random
    now = as_utc(now) if now is not None else utc_now()

    rates = compute_rates(
        guild,
        upgrade_bonuses,
        prestige_bonuses,
        base_gold_per_hour=base_gold_per_hour,
        base_xp_per_hour=base_xp_per_hour,
    )

    last_collected = as_utc(guild.last_collected_at) or now
    elapsed_hours = max(0.0, (now - last_collected).total_seconds() / 3600)
    max_idle_hours = base_max_idle_hours + prestige_bonuses.idle_cap_bonus_hours
    capped_hours = min(elapsed_hours, max_idle_hours)

    gold_earned = math.floor(rates.gold_per_hour * capped_hours)
    xp_earned = math.floor(rates.xp_per_hour * capped_hours)

    doubled_gold = False
    if prestige_bonuses.double_reward_chance > 0 and rng() < prestige_bonuses.double_reward_chance:
        gold_earned *= 2
        doubled_gold = True

    adventurers_gained = math.floor(
        upgrade_bonuses.recruitment_per_hour
        * capped_hours
        * prestige_bonuses.recruitment_multiplier
    )

    return IdleEarnings(
        gold_earned=gold_earned,
        xp_earned=xp_earned,
        adventurers_gained=adventurers_gained,
        elapsed_hours=elapsed_hours,
        capped_hours=capped_hours,
        max_idle_hours=max_idle_hours,
        was_capped=elapsed_hours > max_idle_hours,
        doubled_gold=doubled_gold,
        rates=rates,
    )
