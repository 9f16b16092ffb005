"""
Common plumbing for the game services.

Economy, prestige, battle, grind, guild and notification services all take
the same three collaborators: the `ConfigManager` holding balance values, the
`EventBus`, and a module logger. Services open their own transactions through
`DatabaseService`; nothing here touches the database.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict

from idleguild.modules.shared.exceptions import get_error_severity

if TYPE_CHECKING:
    from logging import Logger

    from idleguild.core.config.manager import ConfigManager
    from idleguild.core.event.bus import EventBus


class BaseService:
    def __init__(self, config_manager: ConfigManager, event_bus: EventBus, logger: Logger) -> None:
        self._config = config_manager
        self._events = event_bus
        self.log = logger

    def get_config(self, key: str, default: Any = None) -> Any:
        """Balance value by dotted key, e.g. `self.get_config("battle.minimum_bet", 200)`."""
        return self._config.get(key, default)

    async def emit_event(self, event_type: str, data: Dict[str, Any]) -> None:
        """
        Publish a domain event.

        Call only after the transaction that produced `data` has committed;
        listeners may read the rows back.
        """
        self.log.debug("Publishing event", extra={"event_name": event_type})
        await self._events.publish(event_type, data)

    def log_operation(self, operation: str, **fields: Any) -> None:
        self.log.info(f"{operation} completed", extra={"operation": operation, **fields})

    def log_error(self, operation: str, error: Exception, **fields: Any) -> None:
        """
        Log at the level the exception's severity asks for.

        Cooldowns and bad input stay at DEBUG/INFO; only ERROR and above get
        a traceback.
        """
        level = get_error_severity(error).log_level
        self.log.log(
            level,
            f"{operation} failed: {error}",
            extra={"operation": operation, "error_type": type(error).__name__, **fields},
            exc_info=level >= logging.ERROR,
        )
