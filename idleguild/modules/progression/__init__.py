from idleguild.modules.progression.leveling import (
    LevelUpResult,
    XpProgress,
    apply_level_ups,
    compute_level_ups,
    cumulative_xp_required,
    xp_for_level,
    xp_progress,
)
from idleguild.modules.progression.ranks import RANKS, Rank, next_rank, rank_for_level

__all__ = [
    "LevelUpResult",
    "RANKS",
    "Rank",
    "XpProgress",
    "apply_level_ups",
    "compute_level_ups",
    "cumulative_xp_required",
    "next_rank",
    "rank_for_level",
    "xp_for_level",
    "xp_progress",
]
