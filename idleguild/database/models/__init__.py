"""
Database Models Package
=======================

All SQLAlchemy ORM models for the idle guild game.

All models:
- Schema-only, no business logic
- Use Mapped[] syntax with mapped_column()
- Inherit from IdMixin (and TimestampMixin where rows are mutable)
- Explicit foreign keys with CASCADE rules
"""

from idleguild.core.database.base import Base

from .battle import Battle
from .enums import ChallengeState, PrestigeEffect, RiskTier, UpgradeCategory, UpgradeEffect
from .guild import Guild
from .notification import NotificationSettings
from .prestige import GuildPrestigeUpgrade, PrestigeUpgrade
from .upgrade import GuildUpgrade, Upgrade

__all__ = [
    "Base",
    "Battle",
    "ChallengeState",
    "Guild",
    "GuildPrestigeUpgrade",
    "GuildUpgrade",
    "NotificationSettings",
    "PrestigeEffect",
    "PrestigeUpgrade",
    "RiskTier",
    "Upgrade",
    "UpgradeCategory",
    "UpgradeEffect",
]
