"""
Upgrade pricing and unlock rules.

Cost of the level after `current_level` is floor(base_cost * multiplier ** current_level).
Bulk quotes sum level by level and stop at the upgrade's max level; they
never skip a level. Pure functions, no I/O.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Mapping, Optional


@dataclass(frozen=True)
class PurchaseQuote:
    levels: int
    total_cost: int
    start_level: int
    final_level: int


@dataclass(frozen=True)
class UnlockStatus:
    unlocked: bool
    reason: Optional[str] = None


def calculate_upgrade_cost(base_cost: int, cost_multiplier: float, current_level: int) -> int:
    return math.floor(base_cost * cost_multiplier ** current_level)


def calculate_bulk_cost(
    base_cost: int,
    cost_multiplier: float,
    current_level: int,
    levels: int,
    max_level: Optional[int] = None,
) -> PurchaseQuote:
    """Quote up to `levels` further levels, stopping at `max_level`."""
    level = current_level
    total = 0
    for _ in range(levels):
        if max_level is not None and level >= max_level:
            break
        total += calculate_upgrade_cost(base_cost, cost_multiplier, level)
        level += 1
    return PurchaseQuote(
        levels=level - current_level, total_cost=total, start_level=current_level, final_level=level
    )


def calculate_max_affordable(
    base_cost: int,
    cost_multiplier: float,
    current_level: int,
    gold: int,
    max_level: Optional[int] = None,
    limit: Optional[int] = None,
) -> PurchaseQuote:
    """
    Most levels purchasable with `gold`.

    Args:
        limit: Optional cap on the number of levels bought in one go
    """
    level = current_level
    total = 0
    while max_level is None or level < max_level:
        if limit is not None and level - current_level >= limit:
            break
        next_cost = calculate_upgrade_cost(base_cost, cost_multiplier, level)
        if total + next_cost > gold:
            break
        total += next_cost
        level += 1
    return PurchaseQuote(
        levels=level - current_level, total_cost=total, start_level=current_level, final_level=level
    )


def check_unlock(upgrade: Any, guild: Any, owned_levels: Mapping[int, int]) -> UnlockStatus:
    """
    Whether `guild` may buy `upgrade` at all.

    Args:
        upgrade: Upgrade definition (requirement columns)
        guild: Guild snapshot (`level`, `adventurer_count`)
        owned_levels: upgrade_id -> owned level for this guild
    """
    if guild.level < upgrade.required_guild_level:
        return UnlockStatus(False, f"Requires guild level {upgrade.required_guild_level}")
    if guild.adventurer_count < upgrade.required_adventurer_count:
        return UnlockStatus(False, f"Requires {upgrade.required_adventurer_count} adventurers")
    if upgrade.required_upgrade_id is not None and owned_levels.get(upgrade.required_upgrade_id, 0) <= 0:
        return UnlockStatus(False, "Requires a prerequisite upgrade")
    return UnlockStatus(True)


def is_maxed(upgrade: Any, current_level: int) -> bool:
    return upgrade.max_level is not None and current_level >= upgrade.max_level
