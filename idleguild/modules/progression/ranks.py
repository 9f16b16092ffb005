"""
Guild Rank Table
================

Static, ascending table of named ranks unlocked by guild level. Each rank
carries a multiplier that `compute_rates` applies to base gold production.

Pure lookups, no I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple


@dataclass(frozen=True)
class Rank:
    name: str
    level: int
    multiplier: float


RANKS: Tuple[Rank, ...] = (
    Rank("Bronze", 1, 1.0),
    Rank("Iron", 5, 1.5),
    Rank("Steel", 10, 2.0),
    Rank("Silver", 20, 3.0),
    Rank("Gold", 35, 5.0),
    Rank("Platinum", 50, 8.0),
    Rank("Diamond", 75, 12.0),
    Rank("Mythril", 100, 20.0),
)


def rank_for_level(level: int) -> Rank:
    """
    Highest rank whose threshold is <= level.

    Levels below the first threshold still map to the first rank.
    """
    current = RANKS[0]
    for rank in RANKS:
        if rank.level > level:
            break
        current = rank
    return current


def next_rank(level: int) -> Optional[Rank]:
    """Lowest rank whose threshold is > level, or None at the top rank."""
    for rank in RANKS:
        if rank.level > level:
            return rank
    return None
