"""
Guild Model
===========

The single progression row per player: balances, level, prestige state,
battle cooldown bookkeeping and lifetime counters.

Schema-only. Lifetime counters are monotonic and never touched by the
prestige reset; all game rules live in the service/engine layers.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from sqlalchemy import BigInteger, Boolean, CheckConstraint, Date, DateTime, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from idleguild.core.database.base import Base, IdMixin, TimestampMixin, utc_now


class Guild(Base, IdMixin, TimestampMixin):
    """
    Player-owned guild.

    Attributes:
        owner_id: Opaque external user id (unique)
        gold / xp: Spendable balances, never negative
        adventurer_count / adventurer_capacity: Headcount and base capacity
            (effective capacity adds upgrade capacity bonuses)
        last_collected_at: Start of the current idle accrual window
        prestige_level / prestige_points: Prestige progress and unspent points
    """

    # ========================================================================
    # TABLE CONFIGURATION
    # ========================================================================

    __tablename__ = "guilds"
    __table_args__ = (
        Index("ix_guilds_owner_id", "owner_id", unique=True),
        Index("ix_guilds_level", "level"),
        Index("ix_guilds_prestige_level", "prestige_level"),
        CheckConstraint("gold >= 0", name="gold_non_negative"),
        CheckConstraint("xp >= 0", name="xp_non_negative"),
        CheckConstraint("level >= 1", name="level_positive"),
    )

    # ========================================================================
    # IDENTITY
    # ========================================================================

    owner_id: Mapped[str] = mapped_column(String(64), nullable=False)
    name: Mapped[str] = mapped_column(String(50), nullable=False)

    # ========================================================================
    # PROGRESSION & BALANCES
    # ========================================================================

    level: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    xp: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    gold: Mapped[int] = mapped_column(BigInteger, nullable=False, default=25)

    adventurer_count: Mapped[int] = mapped_column(Integer, nullable=False, default=5)
    adventurer_capacity: Mapped[int] = mapped_column(Integer, nullable=False, default=10)

    last_collected_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
        doc="Start of the current idle accrual window",
    )

    # ========================================================================
    # PRESTIGE
    # ========================================================================

    prestige_level: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    prestige_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    auto_prestige_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # ========================================================================
    # LIFETIME COUNTERS (never reset)
    # ========================================================================

    lifetime_gold_earned: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    lifetime_xp_earned: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    lifetime_adventurers_recruited: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    lifetime_gold_spent: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    lifetime_upgrades_purchased: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    lifetime_prestiges: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_prestige_points_earned: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    peak_gold_balance: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    lifetime_battles_won: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    lifetime_battles_lost: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    battle_gold_won: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    battle_gold_lost: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    battle_xp_won: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    lifetime_grind_gold: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    lifetime_grind_clicks: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    lifetime_grind_sessions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # ========================================================================
    # BATTLE TRACKING
    # ========================================================================

    last_battle_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True, default=None
    )
    battles_today: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_battle_reset: Mapped[Optional[date]] = mapped_column(
        Date,
        nullable=True,
        default=None,
        doc="UTC date the battles_today counter belongs to",
    )

    def __repr__(self) -> str:
        return f"<Guild id={self.id} owner={self.owner_id} level={self.level} gold={self.gold}>"
