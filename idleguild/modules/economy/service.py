"""
EconomyService - idle collection, level-ups and the upgrade shop
================================================================

Purpose
-------
Transactional wrapper around the idle earnings engine, leveling engine and
upgrade pricing rules.

Responsibilities
----------------
- `collect_idle_earnings`: accrue and persist idle gold / XP / adventurers
- `apply_level_ups`: reconcile level with XP
- `purchase_upgrade`: single, bulk and "max" purchases
- `list_upgrades` / `preview_idle_earnings`: read-only views
- Auto-prestige check after every collect and level-up path

Concurrency
-----------
Each mutation runs in one `DatabaseService.get_transaction()` block with the
guild row locked. Preconditions are validated first on a read session (clean
validation errors), then re-checked under the lock; a mismatch there raises
`ConcurrencyConflictError` and rolls back everything.
"""

from __future__ import annotations

import math
import random
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Union

from idleguild.core.database.base import as_utc, utc_now
from idleguild.core.database.service import DatabaseService
from idleguild.core.validation.input_validator import MAX_QUANTITY, InputValidator
from idleguild.database.models import Guild, GuildUpgrade, Upgrade
from idleguild.modules.economy import pricing
from idleguild.modules.economy.bonuses import UpgradeBonuses
from idleguild.modules.economy.idle_engine import IdleEarnings, compute_idle_earnings
from idleguild.modules.economy.snapshot import BonusSnapshotLoader
from idleguild.modules.guild.repository import GuildRepository, GuildUpgradeRepository
from idleguild.modules.progression.leveling import LevelUpResult, apply_level_ups
from idleguild.modules.shared.base_repository import BaseRepository
from idleguild.modules.shared.base_service import BaseService
from idleguild.modules.shared.exceptions import (
    ConcurrencyConflictError,
    CooldownActiveError,
    InsufficientResourcesError,
    InvalidOperationError,
    NotFoundError,
)

if TYPE_CHECKING:
    from logging import Logger

    from idleguild.core.config.manager import ConfigManager
    from idleguild.core.event.bus import EventBus
    from idleguild.modules.prestige.service import PrestigeResult, PrestigeService


@dataclass(frozen=True)
class CollectResult:
    guild_id: int
    earnings: IdleEarnings
    adventurers_gained: int
    level_up: LevelUpResult
    gold: int
    xp: int
    adventurer_count: int
    auto_prestige: Optional["PrestigeResult"] = None


@dataclass(frozen=True)
class PurchaseResult:
    guild_id: int
    upgrade_id: int
    name: str
    levels_bought: int
    total_cost: int
    new_level: int
    gold_remaining: int
    bonuses: UpgradeBonuses


class EconomyService(BaseService):
    """
    Idle economy operations.

    Business Logic:
    - Collect requires `economy.min_collect_seconds` since the last collection
    - Adventurer growth is clamped to effective capacity
    - Purchases never skip levels and never exceed max_level
    - A numeric quantity must be fully affordable; "max" buys what gold allows
    """

    def __init__(
        self,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
        prestige_service: Optional[PrestigeService] = None,
        rng: Optional[Callable[[], float]] = None,
    ) -> None:
        super().__init__(config_manager, event_bus, logger)
        self._prestige = prestige_service
        self._rng = rng or random.random
        self._guild_repo = GuildRepository(self.log)
        self._owned_repo = GuildUpgradeRepository(self.log)
        self._catalog_repo = BaseRepository[Upgrade](Upgrade, self.log)
        self._snapshots = BonusSnapshotLoader(config_manager, self.log)

    def _idle_settings(self) -> Dict[str, float]:
        return {
            "base_gold_per_hour": float(self.get_config("economy.base_gold_per_hour", 60)),
            "base_xp_per_hour": float(self.get_config("economy.base_xp_per_hour", 30)),
            "base_max_idle_hours": float(self.get_config("economy.max_idle_hours", 24)),
        }

    def _collect_wait(self, guild: Guild, now) -> int:
        min_seconds = int(self.get_config("economy.min_collect_seconds", 60))
        elapsed = (now - as_utc(guild.last_collected_at)).total_seconds()
        return max(0, math.ceil(min_seconds - elapsed))

    async def _auto_prestige(self, session, guild: Guild, owned_prestige, now) -> Optional[PrestigeResult]:
        if self._prestige is None:
            return None
        return await self._prestige.auto_prestige_in_session(session, guild, owned_prestige, now=now)

    async def _emit_level_events(self, guild_id: int, level_up: LevelUpResult) -> None:
        if not level_up.leveled_up:
            return
        await self.emit_event(
            "guild.leveled_up",
            {
                "guild_id": guild_id,
                "old_level": level_up.old_level,
                "new_level": level_up.new_level,
                "rank_changed": level_up.rank_changed,
                "new_rank": level_up.new_rank.name,
            },
        )

    # -------------------------------------------------------------------------
    # Idle collection
    # -------------------------------------------------------------------------

    async def preview_idle_earnings(self, guild_id: int) -> IdleEarnings:
        """Pending earnings without collecting; no doubling roll."""
        guild_id = InputValidator.validate_positive_integer(guild_id, "guild_id")
        async with DatabaseService.get_session() as session:
            guild = await self._guild_repo.get(session, guild_id)
            if guild is None:
                raise NotFoundError("Guild", guild_id)
            snapshot = await self._snapshots.load(session, guild)

        return compute_idle_earnings(
            guild,
            snapshot.upgrade_bonuses,
            snapshot.prestige_bonuses,
            now=utc_now(),
            rng=lambda: 1.0,
            **self._idle_settings(),
        )

    async def collect_idle_earnings(self, guild_id: int) -> CollectResult:
        """
        Collect everything accrued since the last collection.

        Raises:
            NotFoundError: Guild missing
            CooldownActiveError: Collected too recently
            ConcurrencyConflictError: Another collect landed first
        """
        guild_id = InputValidator.validate_positive_integer(guild_id, "guild_id")
        now = utc_now()

        async with DatabaseService.get_session() as session:
            guild = await self._guild_repo.get(session, guild_id)
        if guild is None:
            raise NotFoundError("Guild", guild_id)
        wait = self._collect_wait(guild, now)
        if wait > 0:
            raise CooldownActiveError("collect", wait)

        async with DatabaseService.get_transaction() as session:
            guild = await self._guild_repo.get_for_update(session, guild_id)
            if guild is None:
                raise NotFoundError("Guild", guild_id)
            if self._collect_wait(guild, now) > 0:
                raise ConcurrencyConflictError("collect", "earnings were already collected")

            snapshot = await self._snapshots.load(session, guild)
            earnings = compute_idle_earnings(
                guild,
                snapshot.upgrade_bonuses,
                snapshot.prestige_bonuses,
                now=now,
                rng=self._rng,
                **self._idle_settings(),
            )

            room = max(0, snapshot.capacity - guild.adventurer_count)
            gained = min(room, earnings.adventurers_gained)

            guild.gold += earnings.gold_earned
            guild.xp += earnings.xp_earned
            guild.adventurer_count += gained
            guild.lifetime_gold_earned += earnings.gold_earned
            guild.lifetime_xp_earned += earnings.xp_earned
            guild.lifetime_adventurers_recruited += gained
            guild.peak_gold_balance = max(guild.peak_gold_balance, guild.gold)
            guild.last_collected_at = now

            level_up = apply_level_ups(guild)
            auto = await self._auto_prestige(session, guild, snapshot.owned_prestige, now)

            result = CollectResult(
                guild_id=guild_id,
                earnings=earnings,
                adventurers_gained=gained,
                level_up=level_up,
                gold=guild.gold,
                xp=guild.xp,
                adventurer_count=guild.adventurer_count,
                auto_prestige=auto,
            )

        self.log_operation(
            "collect_idle_earnings",
            guild_id=guild_id,
            gold_earned=earnings.gold_earned,
            xp_earned=earnings.xp_earned,
            capped=earnings.was_capped,
        )
        await self.emit_event(
            "guild.collected",
            {
                "guild_id": guild_id,
                "gold_earned": earnings.gold_earned,
                "xp_earned": earnings.xp_earned,
                "adventurers_gained": gained,
                "doubled_gold": earnings.doubled_gold,
                "was_capped": earnings.was_capped,
            },
        )
        await self._emit_level_events(guild_id, level_up)
        if auto is not None:
            await self.emit_event("prestige.completed", auto.to_dict())
        return result

    # -------------------------------------------------------------------------
    # Leveling
    # -------------------------------------------------------------------------

    async def apply_level_ups(self, guild_id: int) -> LevelUpResult:
        """Bring the guild's level in line with its XP; idempotent."""
        guild_id = InputValidator.validate_positive_integer(guild_id, "guild_id")
        async with DatabaseService.get_transaction() as session:
            guild = await self._guild_repo.get_for_update(session, guild_id)
            if guild is None:
                raise NotFoundError("Guild", guild_id)
            level_up = apply_level_ups(guild)
            auto = None
            if self._prestige is not None and guild.auto_prestige_enabled:
                snapshot = await self._snapshots.load(session, guild)
                auto = await self._auto_prestige(session, guild, snapshot.owned_prestige, utc_now())

        await self._emit_level_events(guild_id, level_up)
        if auto is not None:
            await self.emit_event("prestige.completed", auto.to_dict())
        return level_up

    # -------------------------------------------------------------------------
    # Upgrade shop
    # -------------------------------------------------------------------------

    async def list_upgrades(self, guild_id: int) -> List[Dict[str, Any]]:
        """Catalog with this guild's levels, next cost and unlock status."""
        guild_id = InputValidator.validate_positive_integer(guild_id, "guild_id")
        async with DatabaseService.get_session() as session:
            guild = await self._guild_repo.get(session, guild_id)
            if guild is None:
                raise NotFoundError("Guild", guild_id)
            catalog = await self._catalog_repo.find_many_where(session, order_by=Upgrade.sort_order)
            levels = await self._owned_repo.owned_levels(session, guild_id)

        entries = []
        for upgrade in catalog:
            level = levels.get(upgrade.id, 0)
            unlock = pricing.check_unlock(upgrade, guild, levels)
            maxed = pricing.is_maxed(upgrade, level)
            entries.append(
                {
                    "id": upgrade.id,
                    "name": upgrade.name,
                    "category": upgrade.category,
                    "description": upgrade.description,
                    "level": level,
                    "max_level": upgrade.max_level,
                    "next_cost": None
                    if maxed
                    else pricing.calculate_upgrade_cost(upgrade.base_cost, upgrade.cost_multiplier, level),
                    "unlocked": unlock.unlocked,
                    "locked_reason": unlock.reason,
                    "maxed": maxed,
                }
            )
        return entries

    def _quote(self, upgrade: Upgrade, current_level: int, gold: int, quantity: Union[int, str]) -> pricing.PurchaseQuote:
        max_bulk = int(self.get_config("economy.max_bulk_levels", 100))
        if quantity == MAX_QUANTITY:
            quote = pricing.calculate_max_affordable(
                upgrade.base_cost,
                upgrade.cost_multiplier,
                current_level,
                gold,
                max_level=upgrade.max_level,
                limit=max_bulk,
            )
            if quote.levels == 0:
                next_cost = pricing.calculate_upgrade_cost(upgrade.base_cost, upgrade.cost_multiplier, current_level)
                raise InsufficientResourcesError("gold", next_cost, gold)
            return quote

        quote = pricing.calculate_bulk_cost(
            upgrade.base_cost,
            upgrade.cost_multiplier,
            current_level,
            int(quantity),
            max_level=upgrade.max_level,
        )
        if quote.total_cost > gold:
            raise InsufficientResourcesError("gold", quote.total_cost, gold)
        return quote

    async def purchase_upgrade(
        self, guild_id: int, upgrade_id: int, quantity: Union[int, str] = 1
    ) -> PurchaseResult:
        """
        Buy one or more levels of an upgrade.

        Args:
            guild_id: Buyer
            upgrade_id: Catalog id
            quantity: Positive level count, or "max" for as many as gold allows

        Raises:
            NotFoundError: Guild or upgrade missing
            ValidationError: Bad quantity
            InvalidOperationError: Locked, or already at max level
            InsufficientResourcesError: Not enough gold
            ConcurrencyConflictError: Gold or level changed under the row lock
        """
        guild_id = InputValidator.validate_positive_integer(guild_id, "guild_id")
        upgrade_id = InputValidator.validate_positive_integer(upgrade_id, "upgrade_id")
        quantity = InputValidator.validate_quantity(
            quantity, max_value=int(self.get_config("economy.max_bulk_levels", 100))
        )

        async with DatabaseService.get_session() as session:
            guild = await self._guild_repo.get(session, guild_id)
            upgrade = await self._catalog_repo.get(session, upgrade_id)
            levels = await self._owned_repo.owned_levels(session, guild_id)
        if guild is None:
            raise NotFoundError("Guild", guild_id)
        if upgrade is None:
            raise NotFoundError("Upgrade", upgrade_id)

        current_level = levels.get(upgrade_id, 0)
        unlock = pricing.check_unlock(upgrade, guild, levels)
        if not unlock.unlocked:
            raise InvalidOperationError("purchase_upgrade", unlock.reason or "Upgrade is locked")
        if pricing.is_maxed(upgrade, current_level):
            raise InvalidOperationError("purchase_upgrade", f"{upgrade.name} is already at max level")
        quote = self._quote(upgrade, current_level, guild.gold, quantity)

        async with DatabaseService.get_transaction() as session:
            guild = await self._guild_repo.get_for_update(session, guild_id)
            if guild is None:
                raise NotFoundError("Guild", guild_id)
            owned = await self._owned_repo.find_owned(session, guild_id, upgrade_id)
            locked_level = owned.level if owned else 0
            if locked_level != current_level or guild.gold < quote.total_cost:
                raise ConcurrencyConflictError("purchase_upgrade", "gold or upgrade level changed")

            guild.gold -= quote.total_cost
            guild.lifetime_gold_spent += quote.total_cost
            guild.lifetime_upgrades_purchased += quote.levels
            guild.peak_gold_balance = max(guild.peak_gold_balance, guild.gold)

            if owned is None:
                self._owned_repo.add(
                    session, GuildUpgrade(guild_id=guild_id, upgrade_id=upgrade_id, level=quote.final_level)
                )
            else:
                owned.level = quote.final_level
            await session.flush()

            snapshot = await self._snapshots.load(session, guild)
            result = PurchaseResult(
                guild_id=guild_id,
                upgrade_id=upgrade_id,
                name=upgrade.name,
                levels_bought=quote.levels,
                total_cost=quote.total_cost,
                new_level=quote.final_level,
                gold_remaining=guild.gold,
                bonuses=snapshot.upgrade_bonuses,
            )

        self.log_operation(
            "purchase_upgrade",
            guild_id=guild_id,
            upgrade_id=upgrade_id,
            levels=quote.levels,
            cost=quote.total_cost,
        )
        await self.emit_event(
            "economy.upgrade_purchased",
            {
                "guild_id": guild_id,
                "upgrade_id": upgrade_id,
                "levels": quote.levels,
                "new_level": quote.final_level,
                "cost": quote.total_cost,
            },
        )
        return result
