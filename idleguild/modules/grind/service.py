"""
GrindService - active clicking sessions
=======================================

Purpose
-------
Batches rapid grind clicks in memory and writes them to the guild row in
debounced deltas.

Domain
------
- A session fixes per-click gold / XP when it starts:
  max(1, floor(rate_per_hour * click_window_seconds / 3600))
- Each click adds those amounts and reschedules a flush
  `grind.flush_delay_seconds` later
- A flush writes only what was earned since the previous flush
- Sessions older than `grind.max_session_seconds` are swept

Design Decisions
----------------
- One session per owner; starting again flushes and replaces the old one.
- Each session carries an asyncio.Lock so overlapping flushes (debounce timer,
  stop, sweep) never write the same delta twice.
- The debounce task detaches itself from the session before flushing, so a
  click arriving mid-write schedules a new task instead of cancelling the
  running transaction.
"""

from __future__ import annotations

import asyncio
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, Optional

from idleguild.core.database.base import utc_now
from idleguild.core.database.service import DatabaseService
from idleguild.core.validation.input_validator import InputValidator
from idleguild.modules.economy.snapshot import BonusSnapshotLoader
from idleguild.modules.guild.repository import GuildPrestigeUpgradeRepository, GuildRepository
from idleguild.modules.progression.leveling import LevelUpResult, apply_level_ups
from idleguild.modules.shared.base_service import BaseService
from idleguild.modules.shared.exceptions import InvalidOperationError, NotFoundError

if TYPE_CHECKING:
    from logging import Logger

    from idleguild.core.config.manager import ConfigManager
    from idleguild.core.event.bus import EventBus
    from idleguild.modules.prestige.service import PrestigeService


@dataclass
class GrindSession:
    owner_id: str
    guild_id: int
    gold_per_click: int
    xp_per_click: int
    started_at: datetime = field(default_factory=utc_now)
    last_click_at: Optional[datetime] = None
    clicks: int = 0
    gold: int = 0
    xp: int = 0
    flushed_clicks: int = 0
    flushed_gold: int = 0
    flushed_xp: int = 0
    flush_task: Optional[asyncio.Task] = field(default=None, repr=False)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    @property
    def pending_clicks(self) -> int:
        return self.clicks - self.flushed_clicks

    def age_seconds(self, now: Optional[datetime] = None) -> float:
        return ((now or utc_now()) - self.started_at).total_seconds()

    def cancel_flush(self) -> None:
        if self.flush_task is not None and not self.flush_task.done():
            self.flush_task.cancel()
        self.flush_task = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "owner_id": self.owner_id,
            "guild_id": self.guild_id,
            "clicks": self.clicks,
            "gold": self.gold,
            "xp": self.xp,
            "gold_per_click": self.gold_per_click,
            "xp_per_click": self.xp_per_click,
        }


@dataclass(frozen=True)
class FlushResult:
    guild_id: int
    gold: int
    xp: int
    clicks: int
    level_up: Optional[LevelUpResult] = None

    @property
    def wrote(self) -> bool:
        return self.clicks > 0


def per_click_amount(rate_per_hour: float, click_window_seconds: float) -> int:
    return max(1, math.floor(rate_per_hour * click_window_seconds / 3600))


class GrindService(BaseService):
    """
    In-memory grind sessions with debounced persistence.

    Business Logic:
    - Clicks never touch the database directly
    - Every flush is one transaction on the locked guild row
    - Level-ups (and auto-prestige) run after each flush
    """

    def __init__(
        self,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
        prestige_service: Optional[PrestigeService] = None,
    ) -> None:
        super().__init__(config_manager, event_bus, logger)
        self._prestige = prestige_service
        self._sessions: Dict[str, GrindSession] = {}
        self._guild_repo = GuildRepository(self.log)
        self._prestige_owned_repo = GuildPrestigeUpgradeRepository(self.log)
        self._snapshots = BonusSnapshotLoader(config_manager, self.log)

    def get_active_session(self, owner_id: Any) -> Optional[GrindSession]:
        return self._sessions.get(InputValidator.validate_owner_id(owner_id))

    @property
    def active_count(self) -> int:
        return len(self._sessions)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start_session(self, owner_id: Any) -> GrindSession:
        """
        Open a grind session, replacing (and flushing) any existing one.

        Raises:
            NotFoundError: The owner has no guild
        """
        owner_id = InputValidator.validate_owner_id(owner_id)
        existing = self._sessions.get(owner_id)
        if existing is not None:
            await self._close(existing)
            self._discard(owner_id, existing)

        window = float(self.get_config("grind.click_window_seconds", 40))
        async with DatabaseService.get_transaction() as session:
            guild = await self._guild_repo.find_by_owner(session, owner_id, for_update=True)
            if guild is None:
                raise NotFoundError("Guild", owner_id)
            guild.lifetime_grind_sessions += 1
            snapshot = await self._snapshots.load(session, guild)

            grind = GrindSession(
                owner_id=owner_id,
                guild_id=guild.id,
                gold_per_click=per_click_amount(snapshot.rates.gold_per_hour, window),
                xp_per_click=per_click_amount(snapshot.rates.xp_per_hour, window),
            )

        self._sessions[owner_id] = grind
        self.log_operation(
            "start_grind",
            owner_id=owner_id,
            guild_id=grind.guild_id,
            gold_per_click=grind.gold_per_click,
            xp_per_click=grind.xp_per_click,
        )
        await self.emit_event("grind.started", grind.to_dict())
        return grind

    async def click(self, owner_id: Any) -> GrindSession:
        """
        Register one click on the owner's session.

        Raises:
            InvalidOperationError: No active session, or it ran past its maximum length
        """
        owner_id = InputValidator.validate_owner_id(owner_id)
        grind = self._sessions.get(owner_id)
        if grind is None:
            raise InvalidOperationError("grind_click", "No active grind session. Start a new one.")

        max_age = float(self.get_config("grind.max_session_seconds", 900))
        if grind.age_seconds() > max_age:
            await self.stop_session(owner_id)
            raise InvalidOperationError("grind_click", "Grind session expired. Start a new one.")

        grind.clicks += 1
        grind.gold += grind.gold_per_click
        grind.xp += grind.xp_per_click
        grind.last_click_at = utc_now()

        grind.cancel_flush()
        delay = float(self.get_config("grind.flush_delay_seconds", 3))
        grind.flush_task = asyncio.create_task(self._delayed_flush(grind, delay))
        return grind

    async def _delayed_flush(self, grind: GrindSession, delay: float) -> None:
        await asyncio.sleep(delay)
        if grind.flush_task is asyncio.current_task():
            grind.flush_task = None
        try:
            await self._flush(grind)
        except Exception as exc:
            self.log_error("flush_grind_session", exc, owner_id=grind.owner_id, guild_id=grind.guild_id)

    async def flush_grind_session(self, owner_id: Any) -> FlushResult:
        """Write the unflushed delta of the owner's session now."""
        owner_id = InputValidator.validate_owner_id(owner_id)
        grind = self._sessions.get(owner_id)
        if grind is None:
            raise InvalidOperationError("grind_flush", "No active grind session")
        grind.cancel_flush()
        return await self._flush(grind)

    async def _flush(self, grind: GrindSession) -> FlushResult:
        async with grind.lock:
            clicks = grind.clicks - grind.flushed_clicks
            gold = grind.gold - grind.flushed_gold
            xp = grind.xp - grind.flushed_xp
            if clicks <= 0:
                return FlushResult(guild_id=grind.guild_id, gold=0, xp=0, clicks=0)

            auto = None
            async with DatabaseService.get_transaction() as session:
                guild = await self._guild_repo.get_for_update(session, grind.guild_id)
                if guild is None:
                    raise NotFoundError("Guild", grind.guild_id)

                guild.gold += gold
                guild.xp += xp
                guild.lifetime_grind_gold += gold
                guild.lifetime_grind_clicks += clicks
                guild.lifetime_gold_earned += gold
                guild.lifetime_xp_earned += xp
                guild.peak_gold_balance = max(guild.peak_gold_balance, guild.gold)

                level_up = apply_level_ups(guild)
                if self._prestige is not None and guild.auto_prestige_enabled:
                    owned = [
                        (row.prestige_upgrade, row.level)
                        for row in await self._prestige_owned_repo.owned(session, guild.id)
                    ]
                    auto = await self._prestige.auto_prestige_in_session(session, guild, owned)

            grind.flushed_clicks += clicks
            grind.flushed_gold += gold
            grind.flushed_xp += xp

        self.log.debug(
            "Grind delta flushed",
            extra={"guild_id": grind.guild_id, "gold": gold, "xp": xp, "clicks": clicks},
        )
        await self.emit_event(
            "grind.flushed", {"guild_id": grind.guild_id, "gold": gold, "xp": xp, "clicks": clicks}
        )
        if level_up.leveled_up:
            await self.emit_event(
                "guild.leveled_up",
                {
                    "guild_id": grind.guild_id,
                    "old_level": level_up.old_level,
                    "new_level": level_up.new_level,
                    "rank_changed": level_up.rank_changed,
                    "new_rank": level_up.new_rank.name,
                },
            )
        if auto is not None:
            await self.emit_event("prestige.completed", auto.to_dict())
        return FlushResult(guild_id=grind.guild_id, gold=gold, xp=xp, clicks=clicks, level_up=level_up)

    def _discard(self, owner_id: str, grind: GrindSession) -> None:
        if self._sessions.get(owner_id) is grind:
            del self._sessions[owner_id]

    async def _close(self, grind: GrindSession) -> FlushResult:
        grind.cancel_flush()
        result = await self._flush(grind)
        await self.emit_event("grind.stopped", grind.to_dict())
        return result

    async def stop_session(self, owner_id: Any) -> Optional[GrindSession]:
        """
        End the owner's session after a final flush; None if there was none.

        The session is dropped only once the flush has committed. If the write
        fails the error propagates and the session, with its unflushed clicks,
        stays active.
        """
        owner_id = InputValidator.validate_owner_id(owner_id)
        grind = self._sessions.get(owner_id)
        if grind is None:
            return None
        await self._close(grind)
        self._discard(owner_id, grind)
        self.log_operation("stop_grind", owner_id=owner_id, clicks=grind.clicks, gold=grind.gold)
        return grind

    async def sweep_expired(self, now: Optional[datetime] = None) -> int:
        """Flush and drop sessions older than `grind.max_session_seconds`."""
        now = now or utc_now()
        max_age = float(self.get_config("grind.max_session_seconds", 900))
        expired = [owner for owner, grind in self._sessions.items() if grind.age_seconds(now) > max_age]
        stopped = 0
        for owner_id in expired:
            try:
                await self.stop_session(owner_id)
            except Exception as exc:
                # Kept for the next sweep
                self.log_error("sweep_grind_session", exc, owner_id=owner_id)
            else:
                stopped += 1
        if expired:
            self.log_operation("sweep_grind_sessions", expired=len(expired), stopped=stopped)
        return stopped

    async def shutdown(self) -> int:
        """Flush every live session; a failing session is logged and the rest still flush."""
        owners = list(self._sessions)
        for owner_id in owners:
            try:
                await self.stop_session(owner_id)
            except Exception as exc:
                self.log_error("shutdown_grind_session", exc, owner_id=owner_id)
        self.log.info("Grind sessions flushed", extra={"sessions": len(owners)})
        return len(owners)
