"""
Best-effort direct messages through a discord.py client.

Delivery failures are expected (closed DMs, deleted accounts, rate limits) and
are reported as `False` so the caller can count them; they never raise.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

import discord

from idleguild.core.logging.logger import get_logger

if TYPE_CHECKING:
    from logging import Logger

logger = get_logger(__name__)


class DirectMessageNotifier:
    def __init__(self, client: discord.Client, log: Optional[Logger] = None) -> None:
        self._client = client
        self.log = log or logger

    async def _resolve_user(self, user_id: int) -> discord.abc.User:
        user = self._client.get_user(user_id)
        if user is None:
            user = await self._client.fetch_user(user_id)
        return user

    async def send(self, owner_id: str, content: str, embed: Optional[discord.Embed] = None) -> bool:
        """
        DM `owner_id`.

        Returns:
            True if delivered, False on a soft failure.
        """
        try:
            user_id = int(owner_id)
        except (TypeError, ValueError):
            self.log.warning("DM skipped: owner id is not a user snowflake", extra={"owner_id": owner_id})
            return False

        try:
            user = await self._resolve_user(user_id)
            await user.send(content=content, embed=embed)
        except discord.Forbidden:
            self.log.info("DM refused by recipient", extra={"owner_id": owner_id})
            return False
        except discord.NotFound:
            self.log.info("DM recipient not found", extra={"owner_id": owner_id})
            return False
        except discord.HTTPException as exc:
            self.log.warning(
                "DM delivery failed",
                extra={"owner_id": owner_id, "status": getattr(exc, "status", None), "error": str(exc)},
            )
            return False
        return True
