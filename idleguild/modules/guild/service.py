"""
GuildService - guild founding and lookup
========================================

Handles:
- Founding a guild (one per owner)
- Lookup by owner id or guild id
- Read-only profile summary (rank, XP progress, rates)
- Leaderboards, a guild's position on them, and the total guild count

All operations:
- Pure business logic, no chat-platform concerns
- Config-driven starting values
- Event emission for state changes
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, List

from sqlalchemy.exc import IntegrityError

from idleguild.core.database.service import DatabaseService
from idleguild.core.validation.input_validator import InputValidator
from idleguild.database.models import Guild
from idleguild.modules.economy.snapshot import BonusSnapshotLoader
from idleguild.modules.guild.repository import LEADERBOARD_COLUMNS, GuildRepository
from idleguild.modules.progression.leveling import xp_progress
from idleguild.modules.progression.ranks import next_rank, rank_for_level
from idleguild.modules.shared.base_service import BaseService
from idleguild.modules.shared.exceptions import NotFoundError, ValidationError

if TYPE_CHECKING:
    from logging import Logger

    from idleguild.core.config.manager import ConfigManager
    from idleguild.core.event.bus import EventBus


class GuildService(BaseService):
    """
    Guild lifecycle entry point.

    Business Logic:
    - Each owner id may found exactly one guild
    - Names are 1..name_max_length characters after trimming
    - New guilds start from the `guild.*` config values
    """

    def __init__(
        self,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
    ) -> None:
        super().__init__(config_manager, event_bus, logger)
        self._guild_repo = GuildRepository(self.log)
        self._snapshots = BonusSnapshotLoader(config_manager, self.log)

    # -------------------------------------------------------------------------
    # Founding
    # -------------------------------------------------------------------------

    async def found_guild(self, owner_id: Any, name: Any) -> Guild:
        """
        Create a guild for `owner_id`.

        Raises:
            ValidationError: Bad name, or the owner already has a guild
        """
        owner_id = InputValidator.validate_owner_id(owner_id)
        name = InputValidator.validate_string(
            name,
            "name",
            min_length=1,
            max_length=int(self.get_config("guild.name_max_length", 50)),
        )

        try:
            async with DatabaseService.get_transaction() as session:
                if await self._guild_repo.find_by_owner(session, owner_id):
                    raise ValidationError("owner_id", "You already have a guild")

                gold = int(self.get_config("guild.starting_gold", 25))
                guild = Guild(
                    owner_id=owner_id,
                    name=name,
                    gold=gold,
                    xp=int(self.get_config("guild.starting_xp", 0)),
                    adventurer_count=int(self.get_config("guild.starting_adventurers", 5)),
                    adventurer_capacity=int(self.get_config("guild.starting_capacity", 10)),
                    peak_gold_balance=gold,
                )
                self._guild_repo.add(session, guild)
                await session.flush()
        except IntegrityError as exc:
            raise ValidationError("owner_id", "You already have a guild") from exc

        self.log_operation("found_guild", owner_id=owner_id, guild_id=guild.id)
        await self.emit_event(
            "guild.founded", {"guild_id": guild.id, "owner_id": owner_id, "name": name}
        )
        return guild

    # -------------------------------------------------------------------------
    # Lookup
    # -------------------------------------------------------------------------

    async def get_guild(self, guild_id: int) -> Guild:
        """
        Raises:
            NotFoundError: No such guild
        """
        guild_id = InputValidator.validate_positive_integer(guild_id, "guild_id")
        async with DatabaseService.get_session() as session:
            guild = await self._guild_repo.get(session, guild_id)
        if guild is None:
            raise NotFoundError("Guild", guild_id)
        return guild

    async def get_guild_by_owner(self, owner_id: Any) -> Guild:
        """
        Raises:
            NotFoundError: The owner has not founded a guild
        """
        owner_id = InputValidator.validate_owner_id(owner_id)
        async with DatabaseService.get_session() as session:
            guild = await self._guild_repo.find_by_owner(session, owner_id)
        if guild is None:
            raise NotFoundError("Guild", owner_id)
        return guild

    async def get_profile(self, guild_id: int) -> Dict[str, Any]:
        """Rank, XP progress and production rates for display."""
        guild_id = InputValidator.validate_positive_integer(guild_id, "guild_id")
        async with DatabaseService.get_session() as session:
            guild = await self._guild_repo.get(session, guild_id)
            if guild is None:
                raise NotFoundError("Guild", guild_id)
            snapshot = await self._snapshots.load(session, guild)

        upcoming = next_rank(guild.level)
        progress = xp_progress(guild.level, guild.xp)
        return {
            "guild_id": guild.id,
            "name": guild.name,
            "level": guild.level,
            "rank": rank_for_level(guild.level).name,
            "next_rank": upcoming.name if upcoming else None,
            "xp_into_level": progress.xp_into_level,
            "xp_needed": progress.xp_needed,
            "xp_percent": progress.percent,
            "gold": guild.gold,
            "adventurers": guild.adventurer_count,
            "capacity": snapshot.capacity,
            "gold_per_hour": snapshot.rates.gold_per_hour,
            "xp_per_hour": snapshot.rates.xp_per_hour,
            "prestige_level": guild.prestige_level,
            "prestige_points": guild.prestige_points,
        }

    # -------------------------------------------------------------------------
    # Rankings
    # -------------------------------------------------------------------------

    def _leaderboard_column(self, field: str) -> Any:
        column = LEADERBOARD_COLUMNS.get(field)
        if column is None:
            raise ValidationError("field", f"Unknown leaderboard '{field}'; choose from {', '.join(LEADERBOARD_COLUMNS)}")
        return column

    async def get_leaderboard(self, field: str = "gold", limit: int = 10) -> List[Dict[str, Any]]:
        """
        Top guilds by `field`, highest first.

        Raises:
            ValidationError: `field` is not a ranked column, or `limit` is out of range
        """
        column = self._leaderboard_column(field)
        limit = InputValidator.validate_positive_integer(
            limit, "limit", max_value=int(self.get_config("guild.leaderboard_max_limit", 25))
        )
        async with DatabaseService.get_session() as session:
            guilds = await self._guild_repo.top(session, column, limit)

        return [
            {
                "position": index,
                "guild_id": guild.id,
                "owner_id": guild.owner_id,
                "name": guild.name,
                "value": getattr(guild, field),
            }
            for index, guild in enumerate(guilds, start=1)
        ]

    async def get_player_rank(self, owner_id: Any, field: str = "gold") -> int:
        """
        1-based leaderboard position of the owner's guild; ties share a rank.

        Raises:
            ValidationError: Unknown field
            NotFoundError: The owner has not founded a guild
        """
        column = self._leaderboard_column(field)
        owner_id = InputValidator.validate_owner_id(owner_id)
        async with DatabaseService.get_session() as session:
            guild = await self._guild_repo.find_by_owner(session, owner_id)
            if guild is None:
                raise NotFoundError("Guild", owner_id)
            ahead = await self._guild_repo.count_ahead(session, column, getattr(guild, field))
        return ahead + 1

    async def get_total_guild_count(self) -> int:
        async with DatabaseService.get_session() as session:
            return await self._guild_repo.count(session)
