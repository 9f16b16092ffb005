"""
Prestige shop catalog and seeding.

`point_costs[i]` is the price of level i + 1. Starting-value perks have five
levels to match the designer tables in `prestige.engine`; Expanded Vaults
has three to match the idle-hour table.
"""

from __future__ import annotations

from typing import Any, Dict, List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from idleguild.core.logging.logger import get_logger
from idleguild.database.models import PrestigeEffect, PrestigeUpgrade

logger = get_logger(__name__)

PRESTIGE_CATALOG: List[Dict[str, Any]] = [
    {
        "name": "Golden Ledger",
        "description": "Permanent +8% gold, compounding per level.",
        "effect_type": PrestigeEffect.PERMANENT_GOLD_MULTIPLIER.value,
        "effect_value": 0.08,
        "max_level": 5,
        "point_costs": [1, 2, 3, 4, 5],
    },
    {
        "name": "Sage's Tome",
        "description": "Permanent +8% XP, compounding per level.",
        "effect_type": PrestigeEffect.PERMANENT_XP_MULTIPLIER.value,
        "effect_value": 0.08,
        "max_level": 5,
        "point_costs": [1, 2, 3, 4, 5],
    },
    {
        "name": "Expanded Vaults",
        "description": "Store idle earnings longer: +2h / +4h / +8h total.",
        "effect_type": PrestigeEffect.MAX_IDLE_HOURS.value,
        "effect_value": 0,
        "max_level": 3,
        "point_costs": [2, 3, 5],
    },
    {
        "name": "Lucky Coin",
        "description": "+2% chance per level to double collected gold.",
        "effect_type": PrestigeEffect.DOUBLE_GOLD_CHANCE.value,
        "effect_value": 0.02,
        "max_level": 5,
        "point_costs": [1, 2, 3, 4, 5],
    },
    {
        "name": "Veteran's Wisdom",
        "description": "+2% XP for every prestige completed.",
        "effect_type": PrestigeEffect.XP_PER_PRESTIGE.value,
        "effect_value": 0.02,
        "max_level": 1,
        "point_costs": [3],
    },
    {
        "name": "Merchant Dynasty",
        "description": "+2% gold for every prestige completed.",
        "effect_type": PrestigeEffect.GOLD_PER_PRESTIGE.value,
        "effect_value": 0.02,
        "max_level": 1,
        "point_costs": [3],
    },
    {
        "name": "Head Start",
        "description": "Begin each prestige with extra gold: +100/250/500/1000/2500.",
        "effect_type": PrestigeEffect.STARTING_GOLD.value,
        "effect_value": 0,
        "max_level": 5,
        "point_costs": [1, 1, 2, 2, 3],
    },
    {
        "name": "Loyal Veterans",
        "description": "Begin each prestige with extra adventurers: +2/4/7/11/16.",
        "effect_type": PrestigeEffect.STARTING_ADVENTURERS.value,
        "effect_value": 0,
        "max_level": 5,
        "point_costs": [1, 1, 2, 2, 3],
    },
    {
        "name": "Ancestral Halls",
        "description": "Begin each prestige with extra capacity: +5/12/20/30/45.",
        "effect_type": PrestigeEffect.STARTING_CAPACITY.value,
        "effect_value": 0,
        "max_level": 5,
        "point_costs": [1, 1, 2, 2, 3],
    },
    {
        "name": "Quick Start",
        "description": "Keep 5% of your gold per level when you prestige.",
        "effect_type": PrestigeEffect.GOLD_KEEP_PERCENT.value,
        "effect_value": 0.05,
        "max_level": 3,
        "point_costs": [2, 3, 4],
    },
]


async def seed_prestige_upgrades(session: AsyncSession) -> int:
    """Upsert the prestige shop by name; returns the number of entries."""
    existing = {
        row.name: row
        for row in (await session.execute(select(PrestigeUpgrade))).scalars().all()
    }

    for sort_order, entry in enumerate(PRESTIGE_CATALOG):
        row = existing.get(entry["name"])
        if row is None:
            session.add(PrestigeUpgrade(sort_order=sort_order, **entry))
        else:
            for key, value in entry.items():
                setattr(row, key, value)
            row.sort_order = sort_order

    await session.flush()
    logger.info("Prestige catalog seeded", extra={"upgrade_count": len(PRESTIGE_CATALOG)})
    return len(PRESTIGE_CATALOG)
