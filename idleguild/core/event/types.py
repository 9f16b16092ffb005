"""
Listener types for the EventBus.

A listener subscribes to an exact event name (`battle.resolved`), a prefix
pattern (`battle.*`) or everything (`*`). Its priority decides both the order
and the way it is dispatched.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Any, Awaitable, Callable, Dict, Optional, Union

EventPayload = Dict[str, Any]

CallbackType = Union[
    Callable[[EventPayload], Any],
    Callable[[EventPayload], Awaitable[Any]],
]


class DispatchMode(Enum):
    SEQUENTIAL = "sequential"  # awaited one by one, with a timeout
    CONCURRENT = "concurrent"  # gathered, awaited
    BACKGROUND = "background"  # scheduled, not awaited


class ListenerPriority(IntEnum):
    """Lower value runs earlier."""

    CRITICAL = 0
    HIGH = 10
    NORMAL = 50
    LOW = 100

    @property
    def dispatch(self) -> DispatchMode:
        if self <= ListenerPriority.HIGH:
            return DispatchMode.SEQUENTIAL
        if self is ListenerPriority.NORMAL:
            return DispatchMode.CONCURRENT
        return DispatchMode.BACKGROUND


@dataclass(frozen=True)
class EventListener:
    pattern: str
    callback: CallbackType
    priority: ListenerPriority
    identifier: str
    once: bool = False

    def matches(self, event_name: str) -> bool:
        if self.pattern in ("*", event_name):
            return True
        return self.pattern.endswith(".*") and event_name.startswith(self.pattern[:-1])

    @classmethod
    def create(
        cls,
        pattern: str,
        callback: CallbackType,
        priority: ListenerPriority = ListenerPriority.NORMAL,
        identifier: Optional[str] = None,
        once: bool = False,
    ) -> "EventListener":
        if identifier is None:
            owner = getattr(callback, "__module__", None) or "anonymous"
            name = getattr(callback, "__qualname__", None) or type(callback).__name__
            identifier = f"{owner}.{name}@{pattern}"
        return cls(pattern=pattern, callback=callback, priority=priority, identifier=identifier, once=once)
