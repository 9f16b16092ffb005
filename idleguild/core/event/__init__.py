"""
Event system with a global runtime EventBus singleton.
"""

from idleguild.core.event.bus import EventBus
from idleguild.core.event.types import (
    CallbackType,
    DispatchMode,
    EventListener,
    EventPayload,
    ListenerPriority,
)

# Global runtime singleton EventBus
event_bus = EventBus()

__all__ = [
    "event_bus",
    "EventBus",
    "EventPayload",
    "ListenerPriority",
    "DispatchMode",
    "EventListener",
    "CallbackType",
]
