"""
Guild upgrade catalog and seeding.

Balance notes: early upgrades should land every 5-15 minutes. With 5
adventurers at 60 gold/h (5 gold/min) and 25 starting gold, the first
upgrade at ~50 gold takes about five minutes.

`seed_upgrades` upserts by name so re-running it after a balance change
updates existing rows in place.
"""

from __future__ import annotations

from typing import Any, Dict, List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from idleguild.core.logging.logger import get_logger
from idleguild.database.models import Upgrade, UpgradeCategory, UpgradeEffect

logger = get_logger(__name__)


def _entry(
    name: str,
    description: str,
    category: UpgradeCategory,
    base_cost: int,
    cost_multiplier: float,
    effect_type: UpgradeEffect,
    effect_value: float,
    max_level: Any,
    required_guild_level: int,
    required_adventurer_count: int,
) -> Dict[str, Any]:
    return {
        "name": name,
        "description": description,
        "category": category.value,
        "base_cost": base_cost,
        "cost_multiplier": cost_multiplier,
        "effect_type": effect_type.value,
        "effect_value": effect_value,
        "max_level": max_level,
        "required_guild_level": required_guild_level,
        "required_adventurer_count": required_adventurer_count,
    }


R, E, F, M = (
    UpgradeCategory.RECRUITMENT,
    UpgradeCategory.EQUIPMENT,
    UpgradeCategory.FACILITIES,
    UpgradeCategory.MISSIONS,
)

UPGRADE_CATALOG: List[Dict[str, Any]] = [
    # Recruitment: capacity and passive adventurer growth
    _entry("Job Board", "Post job listings to attract more adventurers. +3 adventurer capacity per level.",
           R, 50, 1.25, UpgradeEffect.ADVENTURER_CAPACITY, 3, None, 1, 0),
    _entry("Guild Scouts", "Send scouts to recruit new adventurers. +1 adventurer joins per hour.",
           R, 80, 1.3, UpgradeEffect.ADVENTURER_PER_HOUR, 1, 5, 1, 0),
    _entry("Guild Reputation", "Word spreads of your guild's success. +2 adventurers join per hour.",
           R, 150, 1.4, UpgradeEffect.ADVENTURER_PER_HOUR, 2, 10, 2, 8),
    _entry("Recruitment Office", "A dedicated office for handling new recruits. +8 adventurer capacity.",
           R, 400, 1.5, UpgradeEffect.ADVENTURER_CAPACITY, 8, 5, 4, 15),
    _entry("Famous Benefactor", "A noble sponsors your guild. +25 adventurer capacity.",
           R, 5000, 2.0, UpgradeEffect.ADVENTURER_CAPACITY, 25, 5, 10, 40),
    # Equipment: gold per adventurer
    _entry("Basic Armory", "Provide basic weapons and armor. +15% gold per adventurer.",
           E, 75, 1.3, UpgradeEffect.GOLD_MULTIPLIER, 0.15, 10, 1, 0),
    _entry("Iron Forge", "Upgrade to iron equipment. +20% gold per adventurer.",
           E, 350, 1.35, UpgradeEffect.GOLD_MULTIPLIER, 0.20, 10, 3, 10),
    _entry("Steel Works", "Master-crafted steel equipment. +25% gold per adventurer.",
           E, 1500, 1.4, UpgradeEffect.GOLD_MULTIPLIER, 0.25, 10, 7, 20),
    _entry("Enchanted Arsenal", "Magical weapons and armor. +35% gold per adventurer.",
           E, 8000, 1.6, UpgradeEffect.GOLD_MULTIPLIER, 0.35, 5, 15, 50),
    # Facilities: XP and mixed bonuses
    _entry("Training Grounds", "A place for adventurers to hone their skills. +25% XP gain.",
           F, 100, 1.3, UpgradeEffect.XP_MULTIPLIER, 0.25, 10, 1, 0),
    _entry("Tavern", "A place to relax and share tales. +12% gold and XP.",
           F, 250, 1.4, UpgradeEffect.ALL_MULTIPLIER, 0.12, 5, 3, 8),
    _entry("Barracks", "Housing for your adventurers. +12 adventurer capacity, +8% gold.",
           F, 600, 1.5, UpgradeEffect.CAPACITY_AND_GOLD, 12, 5, 5, 15),
    _entry("Library", "Knowledge is power. +50% XP gain.",
           F, 2000, 1.6, UpgradeEffect.XP_MULTIPLIER, 0.50, 3, 8, 25),
    _entry("Grand Hall", "An impressive hall for guild meetings. +30% all gains.",
           F, 12000, 2.0, UpgradeEffect.ALL_MULTIPLIER, 0.30, 3, 18, 75),
    # Missions: flat hourly income
    _entry("Escort Contracts", "Take on merchant escort missions. +30 base gold per hour.",
           M, 120, 1.3, UpgradeEffect.BASE_GOLD_PER_HOUR, 30, 10, 2, 5),
    _entry("Monster Bounties", "Hunt dangerous creatures for rewards. +60 base gold per hour.",
           M, 500, 1.4, UpgradeEffect.BASE_GOLD_PER_HOUR, 60, 10, 5, 12),
    _entry("Dungeon Expeditions", "Explore dangerous dungeons. +150 base gold, +75 base XP per hour.",
           M, 2500, 1.6, UpgradeEffect.BASE_GOLD_AND_XP, 150, 5, 10, 30),
    _entry("Royal Commissions", "Prestigious missions from the crown. +300 base gold, +150 XP per hour.",
           M, 15000, 1.8, UpgradeEffect.BASE_GOLD_AND_XP, 300, 3, 20, 80),
]


async def seed_upgrades(session: AsyncSession) -> int:
    """
    Insert or update every catalog entry inside the caller's transaction.

    Returns:
        Number of catalog entries written
    """
    existing = {
        row.name: row for row in (await session.execute(select(Upgrade))).scalars().all()
    }

    for sort_order, entry in enumerate(UPGRADE_CATALOG):
        row = existing.get(entry["name"])
        if row is None:
            session.add(Upgrade(sort_order=sort_order, **entry))
        else:
            for key, value in entry.items():
                setattr(row, key, value)
            row.sort_order = sort_order

    await session.flush()
    logger.info(
        "Upgrade catalog seeded",
        extra={"upgrade_count": len(UPGRADE_CATALOG), "updated": len(existing)},
    )
    return len(UPGRADE_CATALOG)
