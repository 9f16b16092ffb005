"""
Upgrade Bonus Aggregator
========================

Purpose
-------
Reduce a guild's owned shop upgrades into one additive bonus vector that the
idle engine, battle power and grind rates all consume.

Domain
------
- magnitude = effect_value * level (linear, never compounding)
- multipliers start at 1.0 and only ever grow
- capacity / recruitment / flat rates start at 0

Design Decisions
----------------
- Dispatch is an explicit if/elif over the closed `UpgradeEffect` enum.
- Unknown effect types are a data-integrity problem in the catalog: they are
  logged as warnings and skipped, never raised.
- `capacity_and_gold` carries a fixed 8%-per-level gold side effect that is
  independent of its effect_value.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Optional, Tuple

from idleguild.core.logging.logger import get_logger
from idleguild.database.models.enums import UpgradeEffect

logger = get_logger(__name__)

CAPACITY_AND_GOLD_GOLD_PER_LEVEL = 0.08
FLAT_XP_SHARE = 0.5


@dataclass(frozen=True)
class UpgradeBonuses:
    gold_multiplier: float = 1.0
    xp_multiplier: float = 1.0
    capacity_bonus: float = 0.0
    recruitment_per_hour: float = 0.0
    flat_gold_per_hour: float = 0.0
    flat_xp_per_hour: float = 0.0

    def to_dict(self) -> dict:
        return {
            "gold_multiplier": self.gold_multiplier,
            "xp_multiplier": self.xp_multiplier,
            "capacity_bonus": self.capacity_bonus,
            "recruitment_per_hour": self.recruitment_per_hour,
            "flat_gold_per_hour": self.flat_gold_per_hour,
            "flat_xp_per_hour": self.flat_xp_per_hour,
        }


def parse_effect(enum_cls: Any, raw: Any) -> Optional[Any]:
    """Coerce a stored effect tag into `enum_cls`, or None when unrecognized."""
    if isinstance(raw, enum_cls):
        return raw
    try:
        return enum_cls(raw)
    except ValueError:
        return None


def aggregate_upgrade_bonuses(owned: Iterable[Tuple[Any, int]]) -> UpgradeBonuses:
    """
    Sum the effects of owned upgrades.

    Args:
        owned: (definition, level) pairs; a definition needs `effect_type`
            and `effect_value` (and optionally `name` for logging)

    Returns:
        UpgradeBonuses vector (order of `owned` does not matter)
    """
    gold_mult = 1.0
    xp_mult = 1.0
    capacity = 0.0
    recruitment = 0.0
    flat_gold = 0.0
    flat_xp = 0.0

    for definition, level in owned:
        if level <= 0:
            continue
        effect = parse_effect(UpgradeEffect, definition.effect_type)
        magnitude = float(definition.effect_value) * level

        if effect is UpgradeEffect.GOLD_MULTIPLIER:
            gold_mult += magnitude
        elif effect is UpgradeEffect.XP_MULTIPLIER:
            xp_mult += magnitude
        elif effect is UpgradeEffect.ALL_MULTIPLIER:
            gold_mult += magnitude
            xp_mult += magnitude
        elif effect is UpgradeEffect.ADVENTURER_CAPACITY:
            capacity += magnitude
        elif effect is UpgradeEffect.ADVENTURER_PER_HOUR:
            recruitment += magnitude
        elif effect is UpgradeEffect.BASE_GOLD_PER_HOUR:
            flat_gold += magnitude
        elif effect is UpgradeEffect.BASE_GOLD_AND_XP:
            flat_gold += magnitude
            flat_xp += magnitude * FLAT_XP_SHARE
        elif effect is UpgradeEffect.CAPACITY_AND_GOLD:
            capacity += magnitude
            gold_mult += CAPACITY_AND_GOLD_GOLD_PER_LEVEL * level
        else:
            logger.warning(
                "Unknown upgrade effect type skipped",
                extra={
                    "effect_type": str(definition.effect_type),
                    "upgrade_name": getattr(definition, "name", None),
                    "level": level,
                },
            )

    return UpgradeBonuses(
        gold_multiplier=gold_mult,
        xp_multiplier=xp_mult,
        capacity_bonus=capacity,
        recruitment_per_hour=recruitment,
        flat_gold_per_hour=flat_gold,
        flat_xp_per_hour=flat_xp,
    )


def effective_capacity(adventurer_capacity: int, bonuses: UpgradeBonuses) -> int:
    """Base capacity plus upgrade capacity, floored to whole adventurers."""
    return int(adventurer_capacity + bonuses.capacity_bonus)
