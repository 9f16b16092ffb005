"""
Upgrade catalog and per-guild ownership.

- `Upgrade`: immutable catalog row (seeded at startup)
- `GuildUpgrade`: owned level of one upgrade for one guild; wiped by prestige

`effect_type` is stored as plain text so a catalog edit with an unknown
effect degrades to a logged warning in the aggregator instead of a load error.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import BigInteger, Float, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from idleguild.core.database.base import Base, IdMixin, TimestampMixin


class Upgrade(Base, IdMixin):
    """Guild upgrade definition."""

    __tablename__ = "upgrades"
    __table_args__ = (
        Index("ix_upgrades_category_sort", "category", "sort_order"),
    )

    name: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    category: Mapped[str] = mapped_column(String(32), nullable=False)

    base_cost: Mapped[int] = mapped_column(BigInteger, nullable=False)
    cost_multiplier: Mapped[float] = mapped_column(Float, nullable=False)

    effect_type: Mapped[str] = mapped_column(String(32), nullable=False)
    effect_value: Mapped[float] = mapped_column(Float, nullable=False)
    max_level: Mapped[Optional[int]] = mapped_column(
        Integer, nullable=True, default=None, doc="NULL means unbounded"
    )

    required_guild_level: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    required_adventurer_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    required_upgrade_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("upgrades.id", ondelete="SET NULL"), nullable=True, default=None
    )

    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<Upgrade id={self.id} name={self.name!r} effect={self.effect_type}>"


class GuildUpgrade(Base, IdMixin, TimestampMixin):
    """Owned upgrade level (level >= 1)."""

    __tablename__ = "guild_upgrades"
    __table_args__ = (
        UniqueConstraint("guild_id", "upgrade_id", name="uq_guild_upgrades_guild_upgrade"),
    )

    guild_id: Mapped[int] = mapped_column(
        ForeignKey("guilds.id", ondelete="CASCADE"), nullable=False, index=True
    )
    upgrade_id: Mapped[int] = mapped_column(
        ForeignKey("upgrades.id", ondelete="CASCADE"), nullable=False
    )
    level: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    upgrade: Mapped[Upgrade] = relationship("Upgrade", lazy="joined", innerjoin=True)
