"""
NotificationSettings: per-guild DM preferences and soft-failure counter.
Pure schema.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer
from sqlalchemy.orm import Mapped, mapped_column

from idleguild.core.database.base import Base, IdMixin, TimestampMixin


class NotificationSettings(Base, IdMixin, TimestampMixin):
    __tablename__ = "notification_settings"

    guild_id: Mapped[int] = mapped_column(
        ForeignKey("guilds.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    dm_reminders_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    battle_notifications_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    dm_failures: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, doc="Consecutive failed DM deliveries"
    )
    last_reminder_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True, default=None
    )
