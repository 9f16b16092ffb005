"""
Prestige shop catalog and per-guild ownership.

Pure schema. Ownership rows survive the prestige reset.
"""

from __future__ import annotations

from typing import List

from sqlalchemy import JSON, Float, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from idleguild.core.database.base import Base, IdMixin, TimestampMixin


class PrestigeUpgrade(Base, IdMixin):
    """
    Permanent upgrade bought with prestige points.

    `point_costs[i]` is the price of going from level i to i + 1, so
    `len(point_costs)` should equal `max_level`.
    """

    __tablename__ = "prestige_upgrades"

    name: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    effect_type: Mapped[str] = mapped_column(String(32), nullable=False)
    effect_value: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    max_level: Mapped[int] = mapped_column(Integer, nullable=False)
    point_costs: Mapped[List[int]] = mapped_column(JSON, nullable=False, default=list)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<PrestigeUpgrade id={self.id} name={self.name!r} effect={self.effect_type}>"


class GuildPrestigeUpgrade(Base, IdMixin, TimestampMixin):
    __tablename__ = "guild_prestige_upgrades"
    __table_args__ = (
        UniqueConstraint(
            "guild_id", "prestige_upgrade_id", name="uq_guild_prestige_upgrades_guild_upgrade"
        ),
    )

    guild_id: Mapped[int] = mapped_column(
        ForeignKey("guilds.id", ondelete="CASCADE"), nullable=False, index=True
    )
    prestige_upgrade_id: Mapped[int] = mapped_column(
        ForeignKey("prestige_upgrades.id", ondelete="CASCADE"), nullable=False
    )
    level: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    prestige_upgrade: Mapped[PrestigeUpgrade] = relationship("PrestigeUpgrade", lazy="joined", innerjoin=True)
