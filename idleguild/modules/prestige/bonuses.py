"""
Prestige Bonus Aggregator
=========================

Reduce prestige level and owned prestige-shop upgrades into the compounding
bonus vector applied on top of the shop-upgrade bonuses.

Three distinct rules, kept apart per effect type:
- base compounding from prestige level: (1 + rate) ** prestige_level
- level-compounded perks: multiplier *= (1 + value) ** upgrade_level
- prestige-scaled perks: multiplier *= 1 + value * prestige_level

Starting-value and gold-keep perks have no effect on rates; the prestige
engine consumes them during the reset.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Tuple

from idleguild.core.logging.logger import get_logger
from idleguild.database.models.enums import PrestigeEffect
from idleguild.modules.economy.bonuses import parse_effect

logger = get_logger(__name__)

GOLD_BONUS_PER_LEVEL = 0.05
XP_BONUS_PER_LEVEL = 0.05
RECRUIT_BONUS_PER_LEVEL = 0.08

# Extra idle hours granted per max_idle_hours level; cumulative 2, 4, 8.
IDLE_HOURS_PER_LEVEL: Tuple[int, ...] = (2, 2, 4)

_RESET_ONLY_EFFECTS = frozenset(
    {
        PrestigeEffect.STARTING_GOLD,
        PrestigeEffect.STARTING_ADVENTURERS,
        PrestigeEffect.STARTING_CAPACITY,
        PrestigeEffect.GOLD_KEEP_PERCENT,
    }
)


@dataclass(frozen=True)
class PrestigeBonuses:
    gold_multiplier: float = 1.0
    xp_multiplier: float = 1.0
    recruitment_multiplier: float = 1.0
    idle_cap_bonus_hours: float = 0.0
    double_reward_chance: float = 0.0

    def to_dict(self) -> dict:
        return {
            "gold_multiplier": self.gold_multiplier,
            "xp_multiplier": self.xp_multiplier,
            "recruitment_multiplier": self.recruitment_multiplier,
            "idle_cap_bonus_hours": self.idle_cap_bonus_hours,
            "double_reward_chance": self.double_reward_chance,
        }


def cumulative_idle_hours(level: int) -> int:
    return sum(IDLE_HOURS_PER_LEVEL[:max(0, level)])


def aggregate_prestige_bonuses(
    prestige_level: int,
    owned: Iterable[Tuple[Any, int]] = (),
    gold_rate: float = GOLD_BONUS_PER_LEVEL,
    xp_rate: float = XP_BONUS_PER_LEVEL,
    recruit_rate: float = RECRUIT_BONUS_PER_LEVEL,
) -> PrestigeBonuses:
    """
    Build the prestige bonus vector.

    Args:
        prestige_level: Completed prestiges (>= 0)
        owned: (prestige definition, level) pairs
        gold_rate / xp_rate / recruit_rate: per-prestige compounding rates

    Returns:
        PrestigeBonuses
    """
    prestige_level = max(0, prestige_level)
    gold_mult = (1 + gold_rate) ** prestige_level
    xp_mult = (1 + xp_rate) ** prestige_level
    recruit_mult = (1 + recruit_rate) ** prestige_level
    idle_hours = 0.0
    double_chance = 0.0

    for definition, level in owned:
        if level <= 0:
            continue
        effect = parse_effect(PrestigeEffect, definition.effect_type)
        value = float(definition.effect_value)

        if effect is PrestigeEffect.PERMANENT_GOLD_MULTIPLIER:
            gold_mult *= (1 + value) ** level
        elif effect is PrestigeEffect.PERMANENT_XP_MULTIPLIER:
            xp_mult *= (1 + value) ** level
        elif effect is PrestigeEffect.MAX_IDLE_HOURS:
            idle_hours += cumulative_idle_hours(level)
        elif effect is PrestigeEffect.DOUBLE_GOLD_CHANCE:
            double_chance += value * level
        elif effect is PrestigeEffect.XP_PER_PRESTIGE:
            xp_mult *= 1 + value * prestige_level
        elif effect is PrestigeEffect.GOLD_PER_PRESTIGE:
            gold_mult *= 1 + value * prestige_level
        elif effect in _RESET_ONLY_EFFECTS:
            continue
        else:
            logger.warning(
                "Unknown prestige effect type skipped",
                extra={
                    "effect_type": str(definition.effect_type),
                    "upgrade_name": getattr(definition, "name", None),
                    "level": level,
                },
            )

    return PrestigeBonuses(
        gold_multiplier=gold_mult,
        xp_multiplier=xp_mult,
        recruitment_multiplier=recruit_mult,
        idle_cap_bonus_hours=idle_hours,
        double_reward_chance=double_chance,
    )
