"""
Database Model Enums
====================

Closed enumerations for categorical columns.

These enums are declarative schema helpers. Aggregators dispatch on them
with explicit if/elif chains; a value outside the enum is a data-integrity
problem, logged and skipped by the aggregator that meets it.
"""

from __future__ import annotations

import enum


class UpgradeCategory(str, enum.Enum):
    """Shop tabs for guild upgrades."""

    RECRUITMENT = "recruitment"
    EQUIPMENT = "equipment"
    FACILITIES = "facilities"
    MISSIONS = "missions"


class UpgradeEffect(str, enum.Enum):
    """
    Effect kinds an upgrade level can contribute.

    Magnitude is always `effect_value * level`.
    """

    GOLD_MULTIPLIER = "gold_multiplier"
    XP_MULTIPLIER = "xp_multiplier"
    ALL_MULTIPLIER = "all_multiplier"
    ADVENTURER_CAPACITY = "adventurer_capacity"
    ADVENTURER_PER_HOUR = "adventurer_per_hour"
    BASE_GOLD_PER_HOUR = "base_gold_per_hour"
    BASE_GOLD_AND_XP = "base_gold_and_xp"
    CAPACITY_AND_GOLD = "capacity_and_gold"


class PrestigeEffect(str, enum.Enum):
    """Effect kinds for permanent prestige-shop upgrades."""

    PERMANENT_GOLD_MULTIPLIER = "permanent_gold_multiplier"
    PERMANENT_XP_MULTIPLIER = "permanent_xp_multiplier"
    MAX_IDLE_HOURS = "max_idle_hours"
    DOUBLE_GOLD_CHANCE = "double_gold_chance"
    XP_PER_PRESTIGE = "xp_per_prestige"
    GOLD_PER_PRESTIGE = "gold_per_prestige"
    STARTING_GOLD = "starting_gold"
    STARTING_ADVENTURERS = "starting_adventurers"
    STARTING_CAPACITY = "starting_capacity"
    GOLD_KEEP_PERCENT = "gold_keep_percent"


class RiskTier(str, enum.Enum):
    """Battle risk classification by power ratio."""

    NORMAL = "normal"
    CAPPED = "capped"
    CONSENT = "consent"


class ChallengeState(str, enum.Enum):
    """
    Consent challenge lifecycle.

    PENDING_CONSENT is the only non-terminal state; the other three are sticky.
    """

    PENDING_CONSENT = "pending_consent"
    RESOLVED = "resolved"
    DECLINED = "declined"
    EXPIRED = "expired"

    @property
    def is_terminal(self) -> bool:
        return self is not ChallengeState.PENDING_CONSENT
