"""
Bonus snapshot loader.

Loads a guild's owned shop and prestige upgrades inside the caller's session
and reduces them through both aggregators. Every service that needs rates
(collect, purchase, battle power, grind) goes through here so they all agree
on the same numbers.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, List, Tuple

from idleguild.modules.economy.bonuses import UpgradeBonuses, aggregate_upgrade_bonuses, effective_capacity
from idleguild.modules.economy.idle_engine import Rates, compute_rates
from idleguild.modules.guild.repository import GuildPrestigeUpgradeRepository, GuildUpgradeRepository
from idleguild.modules.prestige.bonuses import PrestigeBonuses, aggregate_prestige_bonuses

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy.ext.asyncio import AsyncSession

    from idleguild.core.config.manager import ConfigManager
    from idleguild.database.models import Guild


@dataclass(frozen=True)
class BonusSnapshot:
    upgrade_bonuses: UpgradeBonuses
    prestige_bonuses: PrestigeBonuses
    rates: Rates
    capacity: int
    owned_upgrades: List[Tuple[Any, int]]
    owned_prestige: List[Tuple[Any, int]]


class BonusSnapshotLoader:
    def __init__(self, config_manager: ConfigManager, logger: Logger) -> None:
        self._config = config_manager
        self._upgrades = GuildUpgradeRepository(logger)
        self._prestige = GuildPrestigeUpgradeRepository(logger)

    def prestige_bonuses(self, prestige_level: int, owned: List[Tuple[Any, int]]) -> PrestigeBonuses:
        return aggregate_prestige_bonuses(
            prestige_level,
            owned,
            gold_rate=float(self._config.get("prestige.gold_bonus_per_level", 0.05)),
            xp_rate=float(self._config.get("prestige.xp_bonus_per_level", 0.05)),
            recruit_rate=float(self._config.get("prestige.recruit_bonus_per_level", 0.08)),
        )

    def rates(self, guild: Guild, upgrade_bonuses: UpgradeBonuses, prestige_bonuses: PrestigeBonuses) -> Rates:
        return compute_rates(
            guild,
            upgrade_bonuses,
            prestige_bonuses,
            base_gold_per_hour=float(self._config.get("economy.base_gold_per_hour", 60)),
            base_xp_per_hour=float(self._config.get("economy.base_xp_per_hour", 30)),
        )

    async def load(self, session: AsyncSession, guild: Guild) -> BonusSnapshot:
        owned_upgrades = [(row.upgrade, row.level) for row in await self._upgrades.owned(session, guild.id)]
        owned_prestige = [
            (row.prestige_upgrade, row.level) for row in await self._prestige.owned(session, guild.id)
        ]

        upgrade_bonuses = aggregate_upgrade_bonuses(owned_upgrades)
        prestige_bonuses = self.prestige_bonuses(guild.prestige_level, owned_prestige)

        return BonusSnapshot(
            upgrade_bonuses=upgrade_bonuses,
            prestige_bonuses=prestige_bonuses,
            rates=self.rates(guild, upgrade_bonuses, prestige_bonuses),
            capacity=effective_capacity(guild.adventurer_capacity, upgrade_bonuses),
            owned_upgrades=owned_upgrades,
            owned_prestige=owned_prestige,
        )
