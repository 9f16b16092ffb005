"""
Leveling Engine
===============

Purpose
-------
Exponential XP curve and level-up detection for guilds.

Domain
------
- `xp_for_level(L)`: XP needed to go from L-1 to L (0 for L <= 1)
- `cumulative_xp_required(L)`: total XP needed to reach L from level 1
- `compute_level_ups(level, xp)`: how far a guild advances on its current XP
- `xp_progress(level, xp)`: progress into the current level

Design Decisions
----------------
- Guild XP is a lifetime running total within a prestige cycle; level is
  derived by comparing it against the cumulative curve.
- Cumulative values are memoized; the curve is a pure function of L.
- Curve constants match the `leveling.*` defaults in game_config.yaml.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Optional

from idleguild.modules.progression.ranks import Rank, rank_for_level

XP_BASE = 50
XP_MULTIPLIER = 1.35


@dataclass(frozen=True)
class LevelUpResult:
    old_level: int
    new_level: int
    levels_gained: int
    old_rank: Rank
    new_rank: Rank

    @property
    def rank_changed(self) -> bool:
        return self.old_rank != self.new_rank

    @property
    def leveled_up(self) -> bool:
        return self.levels_gained > 0


@dataclass(frozen=True)
class XpProgress:
    level: int
    xp_into_level: int
    xp_needed: int
    percent: float


def xp_for_level(level: int) -> int:
    if level <= 1:
        return 0
    return math.floor(XP_BASE * XP_MULTIPLIER ** (level - 1))


@lru_cache(maxsize=1024)
def cumulative_xp_required(level: int) -> int:
    """Total XP required to reach `level`; 0 for level 1 and below."""
    return sum(xp_for_level(step) for step in range(2, level + 1))


def compute_level_ups(level: int, xp: int, max_level: Optional[int] = None) -> LevelUpResult:
    """
    Advance `level` while the guild's XP covers the next threshold.

    Args:
        level: Current guild level (>= 1)
        xp: Current guild XP total
        max_level: Optional hard ceiling

    Returns:
        LevelUpResult (levels_gained == 0 when nothing changed)
    """
    new_level = max(1, level)
    while xp >= cumulative_xp_required(new_level + 1):
        if max_level is not None and new_level >= max_level:
            break
        new_level += 1

    return LevelUpResult(
        old_level=level,
        new_level=new_level,
        levels_gained=new_level - level,
        old_rank=rank_for_level(level),
        new_rank=rank_for_level(new_level),
    )


def apply_level_ups(guild: Any) -> LevelUpResult:
    """Run `compute_level_ups` against a guild row and write the new level back."""
    result = compute_level_ups(guild.level, guild.xp)
    guild.level = result.new_level
    return result


def xp_progress(level: int, xp: int) -> XpProgress:
    floor_xp = cumulative_xp_required(level)
    needed = cumulative_xp_required(level + 1) - floor_xp
    into = max(0, xp - floor_xp)
    percent = min(100.0, (into / needed) * 100) if needed > 0 else 100.0
    return XpProgress(level=level, xp_into_level=into, xp_needed=needed, percent=round(percent, 1))
