"""
Guild-scoped repositories.

Thin data-access helpers over `BaseRepository` for the guild row and the
two ownership tables, plus the ranking queries behind leaderboards and
random opponents. No business rules.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from sqlalchemy import or_, select

from idleguild.database.models import GuildPrestigeUpgrade, GuildUpgrade, Guild, NotificationSettings
from idleguild.modules.shared.base_repository import BaseRepository

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy.ext.asyncio import AsyncSession


LEADERBOARD_COLUMNS: Dict[str, Any] = {
    "gold": Guild.gold,
    "level": Guild.level,
    "adventurer_count": Guild.adventurer_count,
    "xp": Guild.xp,
    "lifetime_gold_earned": Guild.lifetime_gold_earned,
    "lifetime_battles_won": Guild.lifetime_battles_won,
    "prestige_level": Guild.prestige_level,
}


class GuildRepository(BaseRepository[Guild]):
    def __init__(self, logger: Logger) -> None:
        super().__init__(Guild, logger)

    async def find_by_owner(
        self, session: AsyncSession, owner_id: str, for_update: bool = False
    ) -> Optional[Guild]:
        return await self.find_one_where(session, Guild.owner_id == owner_id, for_update=for_update)

    async def top(self, session: AsyncSession, column: Any, limit: int) -> List[Guild]:
        """Highest `column` first; ties go to the older guild."""
        return await self.find_many_where(session, order_by=(column.desc(), Guild.id), limit=limit)

    async def count_ahead(self, session: AsyncSession, column: Any, value: Any) -> int:
        """Guilds strictly above `value`; one more than this is the competition rank."""
        return await self.count(session, column > value)

    async def nth_other(self, session: AsyncSession, exclude_id: int, index: int) -> Optional[Guild]:
        """The `index`-th guild by id, skipping `exclude_id`."""
        stmt = select(Guild).where(Guild.id != exclude_id).order_by(Guild.id).offset(index).limit(1)
        return (await session.execute(stmt)).scalar_one_or_none()

    async def due_for_reminder(
        self, session: AsyncSession, idle_since: datetime, reminded_before: datetime
    ) -> List[Guild]:
        """
        Guilds idle since `idle_since` whose owners still take reminders and
        were last reminded before `reminded_before`. A guild without a
        settings row has every DM enabled.
        """
        stmt = (
            select(Guild)
            .outerjoin(NotificationSettings, NotificationSettings.guild_id == Guild.id)
            .where(
                Guild.last_collected_at <= idle_since,
                or_(NotificationSettings.id.is_(None), NotificationSettings.dm_reminders_enabled.is_(True)),
                or_(
                    NotificationSettings.last_reminder_at.is_(None),
                    NotificationSettings.last_reminder_at <= reminded_before,
                ),
            )
            .order_by(Guild.id)
        )
        return list((await session.execute(stmt)).scalars())


class GuildUpgradeRepository(BaseRepository[GuildUpgrade]):
    def __init__(self, logger: Logger) -> None:
        super().__init__(GuildUpgrade, logger)

    async def owned(self, session: AsyncSession, guild_id: int) -> List[GuildUpgrade]:
        return await self.find_many_where(
            session, GuildUpgrade.guild_id == guild_id, order_by=GuildUpgrade.upgrade_id
        )

    async def owned_levels(self, session: AsyncSession, guild_id: int) -> Dict[int, int]:
        return {row.upgrade_id: row.level for row in await self.owned(session, guild_id)}

    async def find_owned(
        self, session: AsyncSession, guild_id: int, upgrade_id: int
    ) -> Optional[GuildUpgrade]:
        return await self.find_one_where(
            session,
            GuildUpgrade.guild_id == guild_id,
            GuildUpgrade.upgrade_id == upgrade_id,
        )


class GuildPrestigeUpgradeRepository(BaseRepository[GuildPrestigeUpgrade]):
    def __init__(self, logger: Logger) -> None:
        super().__init__(GuildPrestigeUpgrade, logger)

    async def owned(self, session: AsyncSession, guild_id: int) -> List[GuildPrestigeUpgrade]:
        return await self.find_many_where(
            session,
            GuildPrestigeUpgrade.guild_id == guild_id,
            order_by=GuildPrestigeUpgrade.prestige_upgrade_id,
        )

    async def find_owned(
        self, session: AsyncSession, guild_id: int, prestige_upgrade_id: int
    ) -> Optional[GuildPrestigeUpgrade]:
        return await self.find_one_where(
            session,
            GuildPrestigeUpgrade.guild_id == guild_id,
            GuildPrestigeUpgrade.prestige_upgrade_id == prestige_upgrade_id,
        )



