"""
Battle cooldown rules.

Three independent pre-battle checks, each disabled by a zero setting:
- global: seconds since the attacker's last battle
- target: seconds since the attacker last fought this defender
- daily: battles started today (UTC), reset at date rollover
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Optional

from idleguild.core.database.base import as_utc, utc_now
from idleguild.modules.shared.exceptions import CooldownActiveError, RateLimitError


@dataclass(frozen=True)
class CooldownSettings:
    global_cooldown_seconds: int = 120
    target_cooldown_seconds: int = 7200
    daily_limit: int = 10

    @classmethod
    def from_config(cls, config_manager: Any) -> "CooldownSettings":
        return cls(
            global_cooldown_seconds=int(config_manager.get("battle.global_cooldown_seconds", 120)),
            target_cooldown_seconds=int(config_manager.get("battle.target_cooldown_seconds", 7200)),
            daily_limit=int(config_manager.get("battle.daily_limit", 10)),
        )


def battles_today(guild: Any, today: Optional[date] = None) -> int:
    """Today's battle count, treating a stale reset date as zero."""
    today = today or utc_now().date()
    if guild.last_battle_reset != today:
        return 0
    return guild.battles_today or 0


def remaining_battles_today(guild: Any, settings: CooldownSettings, today: Optional[date] = None) -> Optional[int]:
    if settings.daily_limit <= 0:
        return None
    return max(0, settings.daily_limit - battles_today(guild, today))


def _remaining(last: Optional[datetime], window_seconds: int, now: datetime) -> int:
    last = as_utc(last)
    if last is None or window_seconds <= 0:
        return 0
    elapsed = (now - last).total_seconds()
    return max(0, math.ceil(window_seconds - elapsed))


def check_battle_cooldowns(
    attacker: Any,
    settings: CooldownSettings,
    last_pair_battle_at: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> None:
    """
    Raise if the attacker may not battle right now.

    Args:
        attacker: Guild snapshot (`last_battle_at`, `battles_today`, `last_battle_reset`)
        settings: Cooldown configuration
        last_pair_battle_at: Timestamp of the attacker's last battle against this defender
        now: Evaluation time

    Raises:
        RateLimitError: Daily limit reached
        CooldownActiveError: Global or per-target cooldown active
    """
    now = as_utc(now) if now is not None else utc_now()

    if settings.daily_limit > 0 and battles_today(attacker, now.date()) >= settings.daily_limit:
        midnight = datetime.combine(now.date(), datetime.min.time(), tzinfo=now.tzinfo)
        retry_after = max(1, math.ceil(86400 - (now - midnight).total_seconds()))
        raise RateLimitError("battle", retry_after)

    remaining = _remaining(attacker.last_battle_at, settings.global_cooldown_seconds, now)
    if remaining > 0:
        raise CooldownActiveError("battle", remaining)

    remaining = _remaining(last_pair_battle_at, settings.target_cooldown_seconds, now)
    if remaining > 0:
        raise CooldownActiveError("battle_target", remaining)
