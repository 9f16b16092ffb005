"""
PrestigeService - prestige reset, prestige shop and auto-prestige
=================================================================

Handles:
- Manual prestige (`execute_prestige`)
- Prestige shop purchases paid in prestige points
- The auto-prestige opt-in flag and its silent reset path

Atomicity
---------
The reset is one transaction: guild row locked, eligibility re-checked under
the lock, balances reset, points awarded, every shop upgrade deleted. Any
failure rolls back all of it. Prestige-shop ownership is never touched.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

from idleguild.core.database.base import utc_now
from idleguild.core.database.service import DatabaseService
from idleguild.core.validation.input_validator import InputValidator
from idleguild.database.models import Guild, GuildPrestigeUpgrade, GuildUpgrade, PrestigeUpgrade
from idleguild.modules.guild.repository import (
    GuildPrestigeUpgradeRepository,
    GuildRepository,
    GuildUpgradeRepository,
)
from idleguild.modules.prestige import engine
from idleguild.modules.shared.base_repository import BaseRepository
from idleguild.modules.shared.base_service import BaseService
from idleguild.modules.shared.exceptions import (
    ConcurrencyConflictError,
    InsufficientResourcesError,
    InvalidOperationError,
    NotFoundError,
)

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy.ext.asyncio import AsyncSession

    from idleguild.core.config.manager import ConfigManager
    from idleguild.core.event.bus import EventBus


@dataclass(frozen=True)
class PrestigeResult:
    guild_id: int
    points_earned: int
    new_prestige_level: int
    starting_gold: int
    starting_adventurers: int
    starting_capacity: int
    gold_kept: int
    upgrades_cleared: int
    automatic: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class PrestigePurchaseResult:
    guild_id: int
    prestige_upgrade_id: int
    name: str
    new_level: int
    points_spent: int
    points_remaining: int


class PrestigeService(BaseService):
    """
    Prestige reset and prestige shop.

    Business Logic:
    - Required level = min(50 + 10 * prestige_level, 75)
    - Reward = 1 + min(3, floor((level - 50) / 10)) points
    - Starting values come from owned starting-value perks plus kept gold
    - Auto-prestige resets silently whenever a collect or level-up leaves
      an opted-in guild eligible
    """

    def __init__(
        self,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
    ) -> None:
        super().__init__(config_manager, event_bus, logger)
        self._guild_repo = GuildRepository(self.log)
        self._upgrade_repo = GuildUpgradeRepository(self.log)
        self._owned_prestige_repo = GuildPrestigeUpgradeRepository(self.log)
        self._prestige_catalog_repo = BaseRepository[PrestigeUpgrade](PrestigeUpgrade, self.log)

    # -------------------------------------------------------------------------
    # Rules (config-bound wrappers over the pure engine)
    # -------------------------------------------------------------------------

    def _requirement(self) -> Dict[str, int]:
        return {
            "min_level": int(self.get_config("prestige.min_level", engine.MIN_LEVEL)),
            "level_increment": int(self.get_config("prestige.level_increment", engine.LEVEL_INCREMENT)),
            "max_requirement": int(self.get_config("prestige.max_requirement", engine.MAX_REQUIREMENT)),
        }

    def check_eligibility(self, guild: Guild) -> engine.PrestigeEligibility:
        return engine.check_eligibility(guild.level, guild.prestige_level, **self._requirement())

    def compute_reward(self, level: int) -> engine.PrestigeReward:
        return engine.compute_prestige_points(
            level,
            min_level=int(self.get_config("prestige.min_level", engine.MIN_LEVEL)),
            base_points=int(self.get_config("prestige.base_points", engine.BASE_POINTS)),
            max_bonus_points=int(self.get_config("prestige.max_bonus_points", engine.MAX_BONUS_POINTS)),
            bonus_step=int(self.get_config("prestige.bonus_points_step", engine.BONUS_STEP)),
        )

    def _starting_values(self, owned: List[Tuple[Any, int]]) -> engine.StartingValues:
        return engine.compute_starting_values(
            owned,
            base_gold=int(self.get_config("guild.starting_gold", engine.BASE_STARTING_GOLD)),
            base_adventurers=int(self.get_config("guild.starting_adventurers", engine.BASE_STARTING_ADVENTURERS)),
            base_capacity=int(self.get_config("guild.starting_capacity", engine.BASE_STARTING_CAPACITY)),
        )

    async def _owned_prestige(self, session: AsyncSession, guild_id: int) -> List[Tuple[Any, int]]:
        rows = await self._owned_prestige_repo.owned(session, guild_id)
        return [(row.prestige_upgrade, row.level) for row in rows]

    # -------------------------------------------------------------------------
    # Status
    # -------------------------------------------------------------------------

    async def get_status(self, guild_id: int) -> Dict[str, Any]:
        """Eligibility, reward preview and restart values, without mutating anything."""
        guild_id = InputValidator.validate_positive_integer(guild_id, "guild_id")
        async with DatabaseService.get_session() as session:
            guild = await self._guild_repo.get(session, guild_id)
            if guild is None:
                raise NotFoundError("Guild", guild_id)
            owned = await self._owned_prestige(session, guild_id)

        eligibility = self.check_eligibility(guild)
        start = self._starting_values(owned)
        return {
            "eligible": eligibility.eligible,
            "current_level": eligibility.current_level,
            "required_level": eligibility.required_level,
            "prestige_level": guild.prestige_level,
            "prestige_points": guild.prestige_points,
            "points_on_prestige": self.compute_reward(guild.level).total_points,
            "starting_gold": start.gold + engine.compute_gold_keep(guild.gold, start.gold_keep_percent),
            "starting_adventurers": start.adventurers,
            "starting_capacity": start.capacity,
            "auto_prestige_enabled": guild.auto_prestige_enabled,
        }

    # -------------------------------------------------------------------------
    # Reset
    # -------------------------------------------------------------------------

    async def _clear_upgrades(self, session: AsyncSession, guild_id: int) -> int:
        return await self._upgrade_repo.delete_where(session, GuildUpgrade.guild_id == guild_id)

    async def reset_in_session(
        self,
        session: AsyncSession,
        guild: Guild,
        owned_prestige: List[Tuple[Any, int]],
        now: Optional[datetime] = None,
        automatic: bool = False,
    ) -> PrestigeResult:
        """
        Apply the prestige reset to a locked guild row inside the caller's transaction.

        The caller must already hold the row lock and have verified eligibility.
        """
        now = now or utc_now()
        reward = self.compute_reward(guild.level)
        start = self._starting_values(owned_prestige)
        gold_kept = engine.compute_gold_keep(guild.gold, start.gold_keep_percent)

        guild.level = 1
        guild.xp = 0
        guild.gold = start.gold + gold_kept
        guild.adventurer_count = start.adventurers
        guild.adventurer_capacity = start.capacity
        guild.last_collected_at = now
        guild.prestige_level += 1
        guild.prestige_points += reward.total_points
        guild.total_prestige_points_earned += reward.total_points
        guild.lifetime_prestiges += 1
        guild.peak_gold_balance = max(guild.peak_gold_balance, guild.gold)

        cleared = await self._clear_upgrades(session, guild.id)
        await session.flush()

        return PrestigeResult(
            guild_id=guild.id,
            points_earned=reward.total_points,
            new_prestige_level=guild.prestige_level,
            starting_gold=guild.gold,
            starting_adventurers=guild.adventurer_count,
            starting_capacity=guild.adventurer_capacity,
            gold_kept=gold_kept,
            upgrades_cleared=cleared,
            automatic=automatic,
        )

    async def execute_prestige(self, guild_id: int) -> PrestigeResult:
        """
        Manually prestige a guild.

        Raises:
            NotFoundError: Guild missing
            InvalidOperationError: Level requirement not met
            ConcurrencyConflictError: Requirement no longer met under the row lock
        """
        guild_id = InputValidator.validate_positive_integer(guild_id, "guild_id")

        async with DatabaseService.get_session() as session:
            guild = await self._guild_repo.get(session, guild_id)
        if guild is None:
            raise NotFoundError("Guild", guild_id)
        eligibility = self.check_eligibility(guild)
        if not eligibility.eligible:
            raise InvalidOperationError(
                "prestige", f"Reach guild level {eligibility.required_level} to prestige"
            )

        async with DatabaseService.get_transaction() as session:
            guild = await self._guild_repo.get_for_update(session, guild_id)
            if guild is None:
                raise NotFoundError("Guild", guild_id)
            if not self.check_eligibility(guild).eligible:
                raise ConcurrencyConflictError("prestige", "guild level changed")

            owned = await self._owned_prestige(session, guild_id)
            result = await self.reset_in_session(session, guild, owned)

        self.log_operation("execute_prestige", guild_id=guild_id, points=result.points_earned)
        await self.emit_event("prestige.completed", result.to_dict())
        return result

    async def auto_prestige_in_session(
        self,
        session: AsyncSession,
        guild: Guild,
        owned_prestige: List[Tuple[Any, int]],
        now: Optional[datetime] = None,
    ) -> Optional[PrestigeResult]:
        """Silent reset for an opted-in, eligible, already-locked guild; None otherwise."""
        if not guild.auto_prestige_enabled or not self.check_eligibility(guild).eligible:
            return None
        result = await self.reset_in_session(session, guild, owned_prestige, now=now, automatic=True)
        self.log.info(
            "Auto-prestige executed",
            extra={"guild_id": guild.id, "points": result.points_earned},
        )
        return result

    async def check_auto_prestige(self, guild_id: int) -> Optional[PrestigeResult]:
        """Run the silent reset for `guild_id` if it is opted in and eligible."""
        guild_id = InputValidator.validate_positive_integer(guild_id, "guild_id")
        async with DatabaseService.get_transaction() as session:
            guild = await self._guild_repo.get_for_update(session, guild_id)
            if guild is None:
                raise NotFoundError("Guild", guild_id)
            owned = await self._owned_prestige(session, guild_id)
            result = await self.auto_prestige_in_session(session, guild, owned)

        if result is not None:
            await self.emit_event("prestige.completed", result.to_dict())
        return result

    async def set_auto_prestige(self, guild_id: int, enabled: bool) -> bool:
        guild_id = InputValidator.validate_positive_integer(guild_id, "guild_id")
        async with DatabaseService.get_transaction() as session:
            guild = await self._guild_repo.get_for_update(session, guild_id)
            if guild is None:
                raise NotFoundError("Guild", guild_id)
            guild.auto_prestige_enabled = bool(enabled)

        self.log_operation("set_auto_prestige", guild_id=guild_id, enabled=bool(enabled))
        return bool(enabled)

    # -------------------------------------------------------------------------
    # Prestige shop
    # -------------------------------------------------------------------------

    async def list_prestige_upgrades(self, guild_id: int) -> List[Dict[str, Any]]:
        guild_id = InputValidator.validate_positive_integer(guild_id, "guild_id")
        async with DatabaseService.get_session() as session:
            catalog = await self._prestige_catalog_repo.find_many_where(
                session, order_by=PrestigeUpgrade.sort_order
            )
            levels = {row.prestige_upgrade_id: row.level for row in await self._owned_prestige_repo.owned(session, guild_id)}

        entries = []
        for upgrade in catalog:
            level = levels.get(upgrade.id, 0)
            maxed = level >= upgrade.max_level
            entries.append(
                {
                    "id": upgrade.id,
                    "name": upgrade.name,
                    "description": upgrade.description,
                    "effect_type": upgrade.effect_type,
                    "level": level,
                    "max_level": upgrade.max_level,
                    "next_cost": None if maxed else self._point_cost(upgrade, level),
                }
            )
        return entries

    def _point_cost(self, upgrade: PrestigeUpgrade, current_level: int) -> int:
        costs = list(upgrade.point_costs or [])
        if current_level >= len(costs):
            self.log.warning(
                "Prestige upgrade has no cost for level",
                extra={"prestige_upgrade_id": upgrade.id, "level": current_level},
            )
            raise InvalidOperationError("purchase_prestige_upgrade", f"{upgrade.name} cannot be upgraded further")
        return int(costs[current_level])

    async def purchase_prestige_upgrade(
        self, guild_id: int, prestige_upgrade_id: int
    ) -> PrestigePurchaseResult:
        """
        Buy the next level of a prestige upgrade.

        Raises:
            NotFoundError: Guild or upgrade missing
            InvalidOperationError: Already at max level
            InsufficientResourcesError: Not enough prestige points
            ConcurrencyConflictError: Points or level changed under the row lock
        """
        guild_id = InputValidator.validate_positive_integer(guild_id, "guild_id")
        prestige_upgrade_id = InputValidator.validate_positive_integer(prestige_upgrade_id, "prestige_upgrade_id")

        async with DatabaseService.get_session() as session:
            guild = await self._guild_repo.get(session, guild_id)
            upgrade = await self._prestige_catalog_repo.get(session, prestige_upgrade_id)
            owned = await self._owned_prestige_repo.find_owned(session, guild_id, prestige_upgrade_id)
        if guild is None:
            raise NotFoundError("Guild", guild_id)
        if upgrade is None:
            raise NotFoundError("PrestigeUpgrade", prestige_upgrade_id)

        current_level = owned.level if owned else 0
        if current_level >= upgrade.max_level:
            raise InvalidOperationError("purchase_prestige_upgrade", f"{upgrade.name} is already at max level")
        cost = self._point_cost(upgrade, current_level)
        if guild.prestige_points < cost:
            raise InsufficientResourcesError("prestige_points", cost, guild.prestige_points)

        async with DatabaseService.get_transaction() as session:
            guild = await self._guild_repo.get_for_update(session, guild_id)
            if guild is None:
                raise NotFoundError("Guild", guild_id)
            owned = await self._owned_prestige_repo.find_owned(session, guild_id, prestige_upgrade_id)
            locked_level = owned.level if owned else 0
            if locked_level != current_level or guild.prestige_points < cost:
                raise ConcurrencyConflictError("purchase_prestige_upgrade", "prestige points or level changed")

            guild.prestige_points -= cost
            if owned is None:
                self._owned_prestige_repo.add(
                    session,
                    GuildPrestigeUpgrade(guild_id=guild_id, prestige_upgrade_id=prestige_upgrade_id, level=1),
                )
            else:
                owned.level += 1
            remaining = guild.prestige_points

        result = PrestigePurchaseResult(
            guild_id=guild_id,
            prestige_upgrade_id=prestige_upgrade_id,
            name=upgrade.name,
            new_level=current_level + 1,
            points_spent=cost,
            points_remaining=remaining,
        )
        self.log_operation(
            "purchase_prestige_upgrade",
            guild_id=guild_id,
            prestige_upgrade_id=prestige_upgrade_id,
            new_level=result.new_level,
        )
        await self.emit_event("prestige.upgrade_purchased", asdict(result))
        return result
