"""
Battle ledger.

Append-only record of every resolved battle. Declined or expired consent
challenges never produce a row.

A free revenge is recorded as a normal row with `is_free_revenge` set and
`revenge_of_id` pointing at the battle being avenged. The unique constraint
on `revenge_of_id` makes the revenge right single-use without mutating the
original row.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, Boolean, DateTime, Float, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from idleguild.core.database.base import Base, IdMixin, utc_now


class Battle(Base, IdMixin):
    __tablename__ = "battles"
    __table_args__ = (
        Index("ix_battles_attacker_created", "attacker_id", "created_at"),
        Index("ix_battles_defender_created", "defender_id", "created_at"),
    )

    attacker_id: Mapped[int] = mapped_column(
        ForeignKey("guilds.id", ondelete="CASCADE"), nullable=False
    )
    defender_id: Mapped[int] = mapped_column(
        ForeignKey("guilds.id", ondelete="CASCADE"), nullable=False
    )
    winner_id: Mapped[int] = mapped_column(Integer, nullable=False)

    bet_amount: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    gold_transferred: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    xp_transferred: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    attacker_power: Mapped[float] = mapped_column(Float, nullable=False)
    defender_power: Mapped[float] = mapped_column(Float, nullable=False)
    win_chance: Mapped[float] = mapped_column(Float, nullable=False)
    risk_tier: Mapped[str] = mapped_column(String(16), nullable=False)

    is_free_revenge: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    revenge_of_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("battles.id", ondelete="SET NULL"),
        nullable=True,
        unique=True,
        default=None,
        doc="Battle this free revenge consumed",
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    @property
    def attacker_won(self) -> bool:
        return self.winner_id == self.attacker_id

    def __repr__(self) -> str:
        return (
            f"<Battle id={self.id} {self.attacker_id}->{self.defender_id} "
            f"winner={self.winner_id} gold={self.gold_transferred}>"
        )
