"""
Unit tests for the EventBus.
"""

import asyncio

import pytest

from idleguild.core.event.bus import EventBus
from idleguild.core.event.types import DispatchMode, ListenerPriority


@pytest.mark.unit
@pytest.mark.asyncio
class TestEventBus:
    async def test_exact_and_wildcard_listeners(self):
        bus = EventBus()
        seen = []
        bus.subscribe("battle.resolved", lambda data: seen.append(("exact", data["battle_id"])), identifier="exact")
        bus.subscribe("battle.*", lambda data: seen.append(("prefix", data["battle_id"])), identifier="prefix")
        bus.subscribe("*", lambda data: seen.append(("all", data["battle_id"])), identifier="all")

        await bus.publish("battle.resolved", {"battle_id": 7})
        await bus.publish("guild.collected", {"battle_id": 0})

        assert sorted(seen) == [("all", 0), ("all", 7), ("exact", 7), ("prefix", 7)]

    async def test_priority_order(self):
        bus = EventBus()
        order = []
        bus.subscribe("x", lambda data: order.append("normal"), identifier="n")
        bus.subscribe("x", lambda data: order.append("critical"), priority=ListenerPriority.CRITICAL, identifier="c")
        bus.subscribe("x", lambda data: order.append("high"), priority=ListenerPriority.HIGH, identifier="h")

        await bus.publish("x", {})

        assert order == ["critical", "high", "normal"]

    async def test_failing_listener_is_isolated(self):
        bus = EventBus()
        seen = []

        async def broken(data):
            raise RuntimeError("boom")

        bus.subscribe("x", broken, identifier="broken")
        bus.subscribe("x", lambda data: seen.append(data), identifier="ok")

        await bus.publish("x", {"n": 1})

        assert seen == [{"n": 1}]
        assert bus.get_metrics_summary()["errors_by_event"] == {"x": 1}

    async def test_low_priority_runs_in_background(self):
        bus = EventBus()
        done = asyncio.Event()

        async def slow(data):
            await asyncio.sleep(0.01)
            done.set()

        bus.subscribe("x", slow, priority=ListenerPriority.LOW, identifier="slow")
        results = await bus.publish("x", {})

        assert results == []
        await bus.drain()
        assert done.is_set()

    async def test_once_listener_fires_once(self):
        bus = EventBus()
        calls = []
        bus.subscribe("x", calls.append, identifier="once", once=True)

        await bus.publish("x", {"n": 1})
        await bus.publish("x", {"n": 2})

        assert calls == [{"n": 1}]

    async def test_duplicate_identifier_ignored(self):
        bus = EventBus()
        calls = []
        bus.subscribe("x", calls.append, identifier="same")
        bus.subscribe("x", calls.append, identifier="same")

        await bus.publish("x", {})

        assert len(calls) == 1

    async def test_unsubscribe(self):
        bus = EventBus()
        calls = []
        bus.subscribe("x", calls.append, identifier="gone")

        assert bus.unsubscribe("x", "gone")
        await bus.publish("x", {})
        assert calls == []


@pytest.mark.unit
def test_callback_arity_checked():
    bus = EventBus()
    with pytest.raises(ValueError):
        bus.subscribe("x", lambda a, b: None)


@pytest.mark.unit
@pytest.mark.parametrize(
    "priority, mode",
    [
        (ListenerPriority.CRITICAL, DispatchMode.SEQUENTIAL),
        (ListenerPriority.HIGH, DispatchMode.SEQUENTIAL),
        (ListenerPriority.NORMAL, DispatchMode.CONCURRENT),
        (ListenerPriority.LOW, DispatchMode.BACKGROUND),
    ],
)
def test_priority_dispatch_mode(priority, mode):
    assert priority.dispatch is mode
