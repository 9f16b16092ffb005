"""
EventBus: async pub/sub with tiered listener execution.

Purpose
-------
Decouples game services from their side effects. Services publish domain
events (`guild.collected`, `battle.resolved`, `prestige.completed`, ...)
after their transaction commits; notifications and other modules subscribe
without the publisher knowing about them.

Dispatch
--------
Listeners run in priority order, grouped by `ListenerPriority.dispatch`:
  * CRITICAL / HIGH: one at a time, each bounded by the listener timeout
  * NORMAL: together via gather, awaited by `publish`
  * LOW: background tasks; `drain()` waits for them

A failing listener is logged and counted; it never fails the publisher and
never stops the other listeners.
"""

from __future__ import annotations

import asyncio
import inspect
from collections import Counter
from typing import Any, Dict, List, Optional, Set

from idleguild.core.event.types import (
    CallbackType,
    DispatchMode,
    EventListener,
    EventPayload,
    ListenerPriority,
)
from idleguild.core.logging.logger import get_logger

logger = get_logger(__name__)


class EventBus:
    """
    Examples
    --------
    >>> bus = EventBus()
    >>> bus.subscribe("battle.resolved", notify_defender, identifier="notify")
    >>> await bus.publish("battle.resolved", {"battle_id": 12})
    """

    def __init__(self, listener_timeout_seconds: float = 5.0) -> None:
        self._listeners: List[EventListener] = []
        self._background: Set[asyncio.Task[Any]] = set()
        self._timeout = listener_timeout_seconds
        self._published: Counter = Counter()
        self._errors: Counter = Counter()

    # ------------------------------------------------------------------ #
    # Subscription
    # ------------------------------------------------------------------ #

    def subscribe(
        self,
        event_name: str,
        callback: CallbackType,
        *,
        priority: ListenerPriority = ListenerPriority.NORMAL,
        identifier: Optional[str] = None,
        once: bool = False,
    ) -> str:
        """
        Subscribe to an event name or a `prefix.*` / `*` pattern.

        Returns:
            The listener identifier, for `unsubscribe`.

        Raises:
            ValueError: The callback does not take exactly one argument.
        """
        try:
            arity = len(inspect.signature(callback).parameters)
        except (TypeError, ValueError):
            arity = 1
        if arity != 1:
            raise ValueError(f"Event listener must accept exactly 1 parameter, got {arity}")

        listener = EventListener.create(event_name, callback, priority, identifier, once)
        if any(l.pattern == event_name and l.identifier == listener.identifier for l in self._listeners):
            logger.warning(
                "EventBus: duplicate listener ignored",
                extra={"event_name": event_name, "listener_id": listener.identifier},
            )
            return listener.identifier

        self._listeners.append(listener)
        logger.debug(
            "EventBus: listener subscribed",
            extra={"event_name": event_name, "listener_id": listener.identifier, "priority": priority.name},
        )
        return listener.identifier

    def unsubscribe(self, event_name: str, identifier: str) -> bool:
        before = len(self._listeners)
        self._listeners = [
            l for l in self._listeners if not (l.pattern == event_name and l.identifier == identifier)
        ]
        return len(self._listeners) != before

    def clear(self) -> None:
        self._listeners.clear()

    def _take_matching(self, event_name: str) -> List[EventListener]:
        matched = [l for l in self._listeners if l.matches(event_name)]
        if any(l.once for l in matched):
            spent = {id(l) for l in matched if l.once}
            self._listeners = [l for l in self._listeners if id(l) not in spent]
        return sorted(matched, key=lambda l: l.priority)

    # ------------------------------------------------------------------ #
    # Publishing
    # ------------------------------------------------------------------ #

    async def _invoke(self, event_name: str, listener: EventListener, data: EventPayload) -> Any:
        try:
            result = listener.callback(data)
            if not inspect.isawaitable(result):
                return result
            if listener.priority.dispatch is DispatchMode.SEQUENTIAL:
                return await asyncio.wait_for(result, timeout=self._timeout)
            return await result
        except Exception as exc:
            self._errors[event_name] += 1
            logger.error(
                "EventBus: listener failed",
                extra={
                    "event_name": event_name,
                    "listener_id": listener.identifier,
                    "error_type": type(exc).__name__,
                    "error": str(exc),
                },
                exc_info=True,
            )
            return None

    async def publish(self, event_name: str, data: EventPayload) -> List[Any]:
        """
        Deliver `data` to every matching listener.

        Returns:
            Results of the sequential and concurrent listeners, in that order.
        """
        self._published[event_name] += 1
        listeners = self._take_matching(event_name)
        if not listeners:
            return []

        groups: Dict[DispatchMode, List[EventListener]] = {mode: [] for mode in DispatchMode}
        for listener in listeners:
            groups[listener.priority.dispatch].append(listener)

        results = [await self._invoke(event_name, l, data) for l in groups[DispatchMode.SEQUENTIAL]]
        if groups[DispatchMode.CONCURRENT]:
            results += await asyncio.gather(
                *(self._invoke(event_name, l, data) for l in groups[DispatchMode.CONCURRENT])
            )
        for listener in groups[DispatchMode.BACKGROUND]:
            task = asyncio.create_task(self._invoke(event_name, listener, data))
            self._background.add(task)
            task.add_done_callback(self._background.discard)
        return results

    async def drain(self) -> None:
        """Wait for background listeners to finish."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    def get_metrics_summary(self) -> Dict[str, Any]:
        return {
            "events_by_type": dict(self._published),
            "errors_by_event": dict(self._errors),
            "total_listeners": len(self._listeners),
        }
