"""
Prestige Engine
===============

Purpose
-------
Pure rules for the prestige reset: level requirement, eligibility, point
reward and the starting values a guild restarts with.

Domain
------
- required level = min(MIN_LEVEL + prestige_level * LEVEL_INCREMENT, MAX_REQUIREMENT)
- points = BASE_POINTS + min(MAX_BONUS_POINTS, floor((level - MIN_LEVEL) / BONUS_STEP))
- starting gold / adventurers / capacity come from designer tables indexed by
  the owned perk level (cumulative, not a formula)
- gold kept = floor(gold * sum(effect_value * level)) for gold-keep perks

Design Decisions
----------------
- Bonus points never go negative, so the reward is always at least BASE_POINTS.
- Levels past the end of a designer table add nothing further.
- Transactional reset lives in `PrestigeService`; nothing here touches the DB.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Iterable, Tuple

from idleguild.database.models.enums import PrestigeEffect
from idleguild.modules.economy.bonuses import parse_effect

MIN_LEVEL = 50
LEVEL_INCREMENT = 10
MAX_REQUIREMENT = 75
BASE_POINTS = 1
MAX_BONUS_POINTS = 3
BONUS_STEP = 10

BASE_STARTING_GOLD = 25
BASE_STARTING_ADVENTURERS = 5
BASE_STARTING_CAPACITY = 10

# Per-level increments; cumulative totals are 100/350/850/1850/4350 etc.
STARTING_GOLD_TABLE: Tuple[int, ...] = (100, 250, 500, 1000, 2500)
STARTING_ADVENTURERS_TABLE: Tuple[int, ...] = (2, 2, 3, 4, 5)
STARTING_CAPACITY_TABLE: Tuple[int, ...] = (5, 7, 8, 10, 15)


@dataclass(frozen=True)
class PrestigeEligibility:
    eligible: bool
    current_level: int
    required_level: int
    prestige_level: int


@dataclass(frozen=True)
class PrestigeReward:
    base_points: int
    bonus_points: int

    @property
    def total_points(self) -> int:
        return self.base_points + self.bonus_points


@dataclass(frozen=True)
class StartingValues:
    gold: int
    adventurers: int
    capacity: int
    gold_keep_percent: float


def required_level(
    prestige_level: int,
    min_level: int = MIN_LEVEL,
    level_increment: int = LEVEL_INCREMENT,
    max_requirement: int = MAX_REQUIREMENT,
) -> int:
    return min(min_level + prestige_level * level_increment, max_requirement)


def check_eligibility(level: int, prestige_level: int, **requirement: int) -> PrestigeEligibility:
    needed = required_level(prestige_level, **requirement)
    return PrestigeEligibility(
        eligible=level >= needed,
        current_level=level,
        required_level=needed,
        prestige_level=prestige_level,
    )


def compute_prestige_points(
    level: int,
    min_level: int = MIN_LEVEL,
    base_points: int = BASE_POINTS,
    max_bonus_points: int = MAX_BONUS_POINTS,
    bonus_step: int = BONUS_STEP,
) -> PrestigeReward:
    bonus = min(max_bonus_points, math.floor((level - min_level) / bonus_step))
    return PrestigeReward(base_points=base_points, bonus_points=max(0, bonus))


def _table_total(table: Tuple[int, ...], level: int) -> int:
    return sum(table[:max(0, level)])


def compute_starting_values(
    owned: Iterable[Tuple[Any, int]],
    base_gold: int = BASE_STARTING_GOLD,
    base_adventurers: int = BASE_STARTING_ADVENTURERS,
    base_capacity: int = BASE_STARTING_CAPACITY,
) -> StartingValues:
    """
    Starting values after a reset, from owned prestige perks.

    Args:
        owned: (prestige definition, level) pairs
    """
    gold = base_gold
    adventurers = base_adventurers
    capacity = base_capacity
    keep_percent = 0.0

    for definition, level in owned:
        if level <= 0:
            continue
        effect = parse_effect(PrestigeEffect, definition.effect_type)
        if effect is PrestigeEffect.STARTING_GOLD:
            gold += _table_total(STARTING_GOLD_TABLE, level)
        elif effect is PrestigeEffect.STARTING_ADVENTURERS:
            adventurers += _table_total(STARTING_ADVENTURERS_TABLE, level)
        elif effect is PrestigeEffect.STARTING_CAPACITY:
            capacity += _table_total(STARTING_CAPACITY_TABLE, level)
        elif effect is PrestigeEffect.GOLD_KEEP_PERCENT:
            keep_percent += float(definition.effect_value) * level

    return StartingValues(
        gold=gold,
        adventurers=adventurers,
        capacity=capacity,
        gold_keep_percent=min(1.0, keep_percent),
    )


def compute_gold_keep(current_gold: int, keep_percent: float) -> int:
    return math.floor(max(0, current_gold) * keep_percent)
