"""
NotificationService - DM preferences and battle alerts
======================================================

Handles:
- Per-guild notification settings (created lazily with defaults)
- Soft-failure counting: after `notifications.max_dm_failures` consecutive
  failed DMs, reminders and battle alerts are switched off
- `battle.resolved` listener that alerts the defender
- Collect reminders for guilds whose idle storage is full, at most once
  per `notifications.reminder_interval_hours`

Notifications run after the game transaction has committed; a failed DM
never touches balances.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from idleguild.core.database.base import utc_now
from idleguild.core.database.service import DatabaseService
from idleguild.core.event.types import ListenerPriority
from idleguild.core.validation.input_validator import InputValidator
from idleguild.database.models import Guild, NotificationSettings
from idleguild.modules.guild.repository import GuildRepository
from idleguild.modules.shared.base_repository import BaseRepository
from idleguild.modules.shared.base_service import BaseService
from idleguild.modules.shared.exceptions import NotFoundError

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy.ext.asyncio import AsyncSession

    from idleguild.core.config.manager import ConfigManager
    from idleguild.core.event.bus import EventBus
    from idleguild.modules.notification.notifier import DirectMessageNotifier


class NotificationService(BaseService):
    """
    Business Logic:
    - Settings default to everything enabled
    - Re-enabling DM reminders clears the failure counter
    - A successful DM clears the failure counter
    """

    LISTENER_ID = "notifications.battle_resolved"

    def __init__(
        self,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
        notifier: Optional[DirectMessageNotifier] = None,
    ) -> None:
        super().__init__(config_manager, event_bus, logger)
        self._notifier = notifier
        self._settings_repo = BaseRepository[NotificationSettings](NotificationSettings, self.log)
        self._guild_repo = GuildRepository(self.log)

    def register_listeners(self) -> None:
        self._events.subscribe(
            "battle.resolved",
            self.on_battle_resolved,
            priority=ListenerPriority.NORMAL,
            identifier=self.LISTENER_ID,
        )

    # -------------------------------------------------------------------------
    # Settings
    # -------------------------------------------------------------------------

    async def _settings_for_update(self, session: AsyncSession, guild_id: int) -> NotificationSettings:
        settings = await self._settings_repo.find_one_where(
            session, NotificationSettings.guild_id == guild_id, for_update=True
        )
        if settings is not None:
            return settings
        if await self._guild_repo.get(session, guild_id) is None:
            raise NotFoundError("Guild", guild_id)
        settings = NotificationSettings(
            guild_id=guild_id,
            dm_reminders_enabled=True,
            battle_notifications_enabled=True,
            dm_failures=0,
        )
        self._settings_repo.add(session, settings)
        await session.flush()
        return settings

    async def get_settings(self, guild_id: int) -> NotificationSettings:
        guild_id = InputValidator.validate_positive_integer(guild_id, "guild_id")
        async with DatabaseService.get_transaction() as session:
            return await self._settings_for_update(session, guild_id)

    async def set_battle_notifications(self, guild_id: int, enabled: bool) -> NotificationSettings:
        guild_id = InputValidator.validate_positive_integer(guild_id, "guild_id")
        async with DatabaseService.get_transaction() as session:
            settings = await self._settings_for_update(session, guild_id)
            settings.battle_notifications_enabled = bool(enabled)

        self.log_operation("set_battle_notifications", guild_id=guild_id, enabled=bool(enabled))
        return settings

    async def set_dm_reminders(self, guild_id: int, enabled: bool) -> NotificationSettings:
        guild_id = InputValidator.validate_positive_integer(guild_id, "guild_id")
        async with DatabaseService.get_transaction() as session:
            settings = await self._settings_for_update(session, guild_id)
            settings.dm_reminders_enabled = bool(enabled)
            if enabled:
                settings.dm_failures = 0

        self.log_operation("set_dm_reminders", guild_id=guild_id, enabled=bool(enabled))
        return settings

    async def record_dm_failure(self, guild_id: int) -> NotificationSettings:
        """Count a failed DM; switch DMs off once the limit is reached."""
        guild_id = InputValidator.validate_positive_integer(guild_id, "guild_id")
        limit = int(self.get_config("notifications.max_dm_failures", 3))
        disabled = False
        async with DatabaseService.get_transaction() as session:
            settings = await self._settings_for_update(session, guild_id)
            settings.dm_failures += 1
            if settings.dm_failures >= limit and (
                settings.dm_reminders_enabled or settings.battle_notifications_enabled
            ):
                settings.dm_reminders_enabled = False
                settings.battle_notifications_enabled = False
                disabled = True

        if disabled:
            self.log.info(
                "DM notifications disabled after repeated failures",
                extra={"guild_id": guild_id, "failures": settings.dm_failures},
            )
            await self.emit_event(
                "notification.dm_disabled", {"guild_id": guild_id, "failures": settings.dm_failures}
            )
        return settings

    async def record_dm_success(self, guild_id: int) -> NotificationSettings:
        guild_id = InputValidator.validate_positive_integer(guild_id, "guild_id")
        async with DatabaseService.get_transaction() as session:
            settings = await self._settings_for_update(session, guild_id)
            settings.dm_failures = 0
        return settings

    # -------------------------------------------------------------------------
    # Delivery
    # -------------------------------------------------------------------------

    async def _deliver(self, guild_id: int, owner_id: str, content: str) -> bool:
        if self._notifier is None:
            return False
        delivered = await self._notifier.send(owner_id, content)
        if delivered:
            await self.record_dm_success(guild_id)
        else:
            await self.record_dm_failure(guild_id)
        return delivered

    async def on_battle_resolved(self, data: Dict[str, Any]) -> bool:
        """Alert the defender about a battle they took part in."""
        defender_id = data["defender_id"]
        owner_id = data.get("defender_owner_id")
        if owner_id is None or self._notifier is None:
            return False

        settings = await self.get_settings(defender_id)
        if not settings.battle_notifications_enabled:
            return False

        gold = data.get("gold_transferred", 0)
        if data.get("winner_id") == defender_id:
            content = f"Your guild was attacked and held the line! You won {gold:,} gold."
        else:
            content = f"Your guild was attacked and lost {gold:,} gold."
        if data.get("revenge_eligible"):
            content += " You have earned a free revenge."
        return await self._deliver(defender_id, owner_id, content)

    async def send_collect_reminder(self, guild_id: int) -> bool:
        """Remind the owner their idle storage is full; respects the reminder toggle."""
        guild_id = InputValidator.validate_positive_integer(guild_id, "guild_id")
        async with DatabaseService.get_transaction() as session:
            settings = await self._settings_for_update(session, guild_id)
            guild = await self._guild_repo.get(session, guild_id)
            if not settings.dm_reminders_enabled or self._notifier is None:
                return False
            settings.last_reminder_at = utc_now()

        return await self._deliver(
            guild_id,
            guild.owner_id,
            f"{guild.name}'s adventurers have filled the vaults. Collect your idle earnings!",
        )

    # -------------------------------------------------------------------------
    # Reminder sweep
    # -------------------------------------------------------------------------

    async def guilds_due_reminder(self, now: Optional[datetime] = None) -> List[Guild]:
        """Guilds that hit the idle cap and have not been reminded within the interval."""
        now = now or utc_now()
        idle_since = now - timedelta(hours=float(self.get_config("economy.max_idle_hours", 24)))
        reminded_before = now - timedelta(
            hours=float(self.get_config("notifications.reminder_interval_hours", 4))
        )
        async with DatabaseService.get_session() as session:
            return await self._guild_repo.due_for_reminder(session, idle_since, reminded_before)

    async def send_due_reminders(self, now: Optional[datetime] = None) -> int:
        """Remind every due guild; returns how many DMs were delivered."""
        if self._notifier is None:
            return 0
        delivered = 0
        for guild in await self.guilds_due_reminder(now):
            try:
                if await self.send_collect_reminder(guild.id):
                    delivered += 1
            except Exception as exc:
                # Retried on the next sweep
                self.log_error("send_due_reminders", exc, guild_id=guild.id)
        if delivered:
            self.log_operation("send_due_reminders", delivered=delivered)
        return delivered
